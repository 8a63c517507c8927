"""Domain errors raised by the forecasting pipeline.

Each error carries a stable ``code`` and an HTTP ``status_code`` so routers can
translate it into the ``fail()`` envelope without a lookup table.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ForecastingError(Exception):
    code = "FORECASTING_ERROR"
    status_code = 400

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class InsufficientDataError(ForecastingError):
    code = "INSUFFICIENT_DATA"
    status_code = 422

    def __init__(self, observed: int, required: int):
        super().__init__(
            f"At least {required} historical points are required to forecast; got {observed}.",
            details={"observed": observed, "required": required},
        )
        self.observed = observed
        self.required = required


class AuthorizationError(ForecastingError):
    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, subject_id: int):
        super().__init__(
            f"Caller is not permitted to access subject {subject_id}.",
            details={"subject_id": subject_id},
        )
        self.subject_id = subject_id


class UnknownSubjectError(ForecastingError):
    code = "UNKNOWN_SUBJECT"
    status_code = 404

    def __init__(self, subject_id: int):
        super().__init__(f"Subject {subject_id} does not exist.", details={"subject_id": subject_id})
        self.subject_id = subject_id


class PersistenceWriteError(ForecastingError):
    code = "PERSISTENCE_WRITE_FAILED"
    status_code = 500


class PersistenceReadError(ForecastingError):
    code = "PERSISTENCE_READ_FAILED"
    status_code = 500
