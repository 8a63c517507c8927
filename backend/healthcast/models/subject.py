from sqlalchemy import Column, Integer, String, UniqueConstraint
from healthcast.db.base import Base

class Subject(Base):
    """A forecastable entity: a health-office service or a disease category."""

    __tablename__ = "subjects"
    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(16), nullable=False, default="service")  # service | disease
    code = Column(String(64), nullable=False)
    name = Column(String(255), nullable=False)

    __table_args__ = (UniqueConstraint("kind", "code", name="uq_subjects_kind_code"),)
