from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from healthcast.db.base import Base


class RawEvent(Base):
    """
    RawEvent = one real occurrence (e.g. a completed appointment) counted as 1.
    Written by the transactional subsystem; the forecaster only reads it.
    """

    __tablename__ = "raw_events"

    id = Column(Integer, primary_key=True, index=True)
    subject_id = Column(
        Integer,
        ForeignKey("subjects.id", ondelete="RESTRICT"),
        nullable=False,
    )
    area_id = Column(Integer, ForeignKey("areas.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(32), nullable=False)
    occurred_on = Column(Date, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    subject = relationship("Subject")

    __table_args__ = (
        Index("ix_raw_events_subject_date", "subject_id", "occurred_on"),
        Index("ix_raw_events_subject_area_date", "subject_id", "area_id", "occurred_on"),
    )
