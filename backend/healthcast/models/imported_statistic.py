from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.sql import func
from healthcast.db.base import Base


class ImportedStatistic(Base):
    """Manually imported historical tally (legacy paper records, spreadsheets)."""

    __tablename__ = "imported_statistics"

    id = Column(Integer, primary_key=True, index=True)
    subject_id = Column(Integer, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)
    area_id = Column(Integer, ForeignKey("areas.id", ondelete="SET NULL"), nullable=True)
    record_date = Column(Date, nullable=False)
    count = Column(Integer, nullable=False)
    provenance = Column(String(128), nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("count >= 0", name="ck_imported_statistics_count_nonneg"),
        Index("ix_imported_statistics_subject_date", "subject_id", "record_date"),
    )
