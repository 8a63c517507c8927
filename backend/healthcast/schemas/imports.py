from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import BaseModel


class ImportStats(BaseModel):
    subject_id: int
    ingested_rows: int
    skipped_rows: int
    total_count: int
    warnings: List[str]
    min_date: Optional[date] = None
    max_date: Optional[date] = None
