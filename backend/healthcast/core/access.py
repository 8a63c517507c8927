from __future__ import annotations

from typing import Optional, Protocol

from healthcast.exceptions import AuthorizationError
from healthcast.models.user import ROLE_HEALTHCARE_ADMIN, ROLE_SUPER_ADMIN


class Caller(Protocol):
    id: Optional[int]
    role: str
    assigned_subject_id: Optional[int]


class AccessGate(Protocol):
    def authorize(self, caller: Caller, subject_id: int) -> bool: ...


class RoleAccessGate:
    """
    Global operators (super_admin) may touch any subject; scoped operators
    (healthcare_admin) only their assigned subject. Every other role is denied.
    """

    def authorize(self, caller: Caller, subject_id: int) -> bool:
        role = getattr(caller, "role", None)
        if role == ROLE_SUPER_ADMIN:
            return True
        if role == ROLE_HEALTHCARE_ADMIN:
            assigned = getattr(caller, "assigned_subject_id", None)
            return assigned is not None and int(assigned) == int(subject_id)
        return False


def require_access(gate: AccessGate, caller: Caller, subject_id: int) -> None:
    if not gate.authorize(caller, subject_id):
        raise AuthorizationError(subject_id)
