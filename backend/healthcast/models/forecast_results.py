from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from healthcast.db.base import Base
from healthcast.db.types import JSON_PAYLOAD

SYSTEM_WIDE_SCOPE = "all"


def area_scope(area_id: int | None) -> str:
    """Non-null key column value: 'all' for system-wide, else the area id."""
    return SYSTEM_WIDE_SCOPE if area_id is None else str(area_id)


class ForecastResults(Base):
    __tablename__ = "forecast_results"
    id = Column(Integer, primary_key=True)
    subject_id = Column(Integer, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)
    area_id = Column(Integer, ForeignKey("areas.id", ondelete="CASCADE"), nullable=True)
    area_scope = Column(String(32), nullable=False, default=SYSTEM_WIDE_SCOPE)
    granularity = Column(String(16), nullable=False)
    target_date = Column(Date, nullable=False)
    yhat = Column(Float, nullable=False)
    yhat_lower = Column(Float, nullable=False)
    yhat_upper = Column(Float, nullable=False)
    confidence_level = Column(Float, nullable=True)
    model_version = Column(String(64), nullable=True)
    # accuracy metrics, data quality, seasonality and trend of the batch
    prediction_data = Column(JSON_PAYLOAD, nullable=True)
    generated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    generated_at = Column(DateTime(timezone=True), nullable=False)
    __table_args__ = (
        UniqueConstraint("subject_id", "area_scope", "granularity", "target_date", name="uq_forecast_point"),
    )
