"""
Historical series merger.

Live transactional events and manually imported tallies are normalized into
one ``CountContribution`` shape, then folded into a zero-filled, date-indexed
count series. Both sources are additive; nothing is deduplicated.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Literal, Optional, Protocol, Sequence, Tuple

import pandas as pd
import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from healthcast.config import get_settings
from healthcast.models.imported_statistic import ImportedStatistic
from healthcast.models.raw_event import RawEvent
from healthcast.schemas.forecast import Granularity, HistoricalPoint

logger = structlog.get_logger(__name__)

Origin = Literal["event", "import"]
_FREQ = {Granularity.daily: "D", Granularity.monthly: "MS"}


@dataclass(frozen=True)
class CountContribution:
    day: date
    count: int
    origin: Origin


@dataclass
class MergedHistory:
    points: List[HistoricalPoint] = field(default_factory=list)
    event_count: int = 0
    import_count: int = 0  # imported rows, not their summed counts

    def __len__(self) -> int:
        return len(self.points)


def month_start(d: date) -> date:
    return d.replace(day=1)


# ---------------------------------------------------------------------------
# Readers
# ---------------------------------------------------------------------------

class EventReader(Protocol):
    def list_events(
        self,
        subject_id: int,
        area_id: Optional[int],
        start: Optional[date],
        end: Optional[date],
        allowed_states: Sequence[str],
    ) -> List[RawEvent]: ...


class ImportReader(Protocol):
    def list_imports(
        self,
        subject_id: int,
        area_id: Optional[int],
        start: Optional[date],
        end: Optional[date],
    ) -> List[ImportedStatistic]: ...


class SqlEventReader:
    def __init__(self, db: Session):
        self.db = db

    def list_events(self, subject_id, area_id, start, end, allowed_states):
        stmt = select(RawEvent).where(
            RawEvent.subject_id == subject_id,
            RawEvent.status.in_(list(allowed_states)),
        )
        if area_id is not None:
            stmt = stmt.where(RawEvent.area_id == area_id)
        if start is not None:
            stmt = stmt.where(RawEvent.occurred_on >= start)
        if end is not None:
            stmt = stmt.where(RawEvent.occurred_on <= end)
        return list(self.db.execute(stmt.order_by(RawEvent.occurred_on)).scalars())


class SqlImportReader:
    def __init__(self, db: Session):
        self.db = db

    def list_imports(self, subject_id, area_id, start, end):
        stmt = select(ImportedStatistic).where(ImportedStatistic.subject_id == subject_id)
        if area_id is not None:
            stmt = stmt.where(ImportedStatistic.area_id == area_id)
        if start is not None:
            stmt = stmt.where(ImportedStatistic.record_date >= start)
        if end is not None:
            stmt = stmt.where(ImportedStatistic.record_date <= end)
        return list(self.db.execute(stmt.order_by(ImportedStatistic.record_date)).scalars())


# ---------------------------------------------------------------------------
# Event counting strategies
#
# Precedence: AggregateEventCounts (GROUP BY on the server) first; when it
# raises a database error, ScanEventCounts counts one per fetched row.
# ---------------------------------------------------------------------------

class EventCounts(Protocol):
    name: str

    def count_by_day(
        self,
        subject_id: int,
        area_id: Optional[int],
        start: Optional[date],
        end: Optional[date],
        allowed_states: Sequence[str],
    ) -> List[Tuple[date, int]]: ...


class AggregateEventCounts:
    name = "aggregate"

    def __init__(self, db: Session):
        self.db = db

    def statement(self, subject_id, area_id, start, end, allowed_states):
        stmt = (
            select(RawEvent.occurred_on, func.count(RawEvent.id))
            .where(
                RawEvent.subject_id == subject_id,
                RawEvent.status.in_(list(allowed_states)),
            )
            .group_by(RawEvent.occurred_on)
        )
        if area_id is not None:
            stmt = stmt.where(RawEvent.area_id == area_id)
        if start is not None:
            stmt = stmt.where(RawEvent.occurred_on >= start)
        if end is not None:
            stmt = stmt.where(RawEvent.occurred_on <= end)
        return stmt

    def count_by_day(self, subject_id, area_id, start, end, allowed_states):
        stmt = self.statement(subject_id, area_id, start, end, allowed_states)
        # savepoint: a rejected GROUP BY must not abort the session's transaction
        with self.db.begin_nested():
            rows = self.db.execute(stmt).all()
        return [(day, int(n)) for day, n in rows]


class ScanEventCounts:
    name = "scan"

    def __init__(self, reader: EventReader):
        self.reader = reader

    def count_by_day(self, subject_id, area_id, start, end, allowed_states):
        events = self.reader.list_events(subject_id, area_id, start, end, allowed_states)
        return [(ev.occurred_on, 1) for ev in events]


class FallbackEventCounts:
    def __init__(self, primary: EventCounts, fallback: EventCounts):
        self.primary = primary
        self.fallback = fallback
        self.last_strategy: Optional[str] = None

    def count_by_day(self, subject_id, area_id, start, end, allowed_states):
        try:
            rows = self.primary.count_by_day(subject_id, area_id, start, end, allowed_states)
            self.last_strategy = self.primary.name
            return rows
        except SQLAlchemyError as exc:
            logger.warning(
                "history.event_counts_fallback",
                primary=self.primary.name,
                fallback=self.fallback.name,
                error=str(exc),
            )
        rows = self.fallback.count_by_day(subject_id, area_id, start, end, allowed_states)
        self.last_strategy = self.fallback.name
        return rows


# ---------------------------------------------------------------------------
# Merger
# ---------------------------------------------------------------------------

def fold_contributions(
    contributions: Iterable[CountContribution],
    granularity: Granularity,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[HistoricalPoint]:
    """Seed every day (or month) of the window with 0 and sum contributions into it."""
    contributions = list(contributions)
    if not contributions:
        return []

    frame = pd.DataFrame(
        {
            "day": pd.to_datetime([c.day for c in contributions]),
            "count": [int(c.count) for c in contributions],
        }
    )
    if granularity == Granularity.monthly:
        frame["day"] = frame["day"].dt.to_period("M").dt.to_timestamp()

    lo = pd.Timestamp(start) if start is not None else frame["day"].min()
    hi = pd.Timestamp(end) if end is not None else frame["day"].max()
    if granularity == Granularity.monthly:
        lo = lo.to_period("M").to_timestamp()
        hi = hi.to_period("M").to_timestamp()

    index = pd.date_range(lo, hi, freq=_FREQ[granularity])
    totals = frame.groupby("day")["count"].sum().reindex(index, fill_value=0)
    return [HistoricalPoint(date=ts.date(), value=int(v)) for ts, v in totals.items()]


class HistoryMerger:
    def __init__(
        self,
        event_counts: EventCounts,
        import_reader: ImportReader,
        countable_states: Optional[Sequence[str]] = None,
    ):
        self.event_counts = event_counts
        self.import_reader = import_reader
        self.countable_states = list(countable_states or get_settings().FORECAST_COUNTABLE_STATES)

    @classmethod
    def from_session(cls, db: Session) -> "HistoryMerger":
        counts = FallbackEventCounts(AggregateEventCounts(db), ScanEventCounts(SqlEventReader(db)))
        return cls(counts, SqlImportReader(db))

    def contributions(
        self,
        subject_id: int,
        area_id: Optional[int],
        start: Optional[date],
        end: Optional[date],
    ) -> List[CountContribution]:
        imports = self.import_reader.list_imports(subject_id, area_id, start, end)
        events = self.event_counts.count_by_day(subject_id, area_id, start, end, self.countable_states)
        out = [CountContribution(day=row.record_date, count=int(row.count), origin="import") for row in imports]
        out.extend(CountContribution(day=day, count=n, origin="event") for day, n in events)
        return out

    def build(
        self,
        subject_id: int,
        area_id: Optional[int],
        granularity: Granularity,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> MergedHistory:
        granularity = Granularity(granularity)
        if granularity == Granularity.monthly and start is not None:
            start = month_start(start)
        if start is not None and end is not None and start > end:
            return MergedHistory()

        parts = self.contributions(subject_id, area_id, start, end)
        points = fold_contributions(parts, granularity, start, end)
        merged = MergedHistory(
            points=points,
            event_count=sum(c.count for c in parts if c.origin == "event"),
            import_count=sum(1 for c in parts if c.origin == "import"),
        )
        logger.info(
            "history.merged",
            subject_id=subject_id,
            area_id=area_id,
            granularity=granularity.value,
            points=len(points),
            events=merged.event_count,
            imports=merged.import_count,
        )
        return merged
