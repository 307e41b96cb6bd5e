from sqlalchemy import Column, Integer

from app.core.database import Base

class ControlNumberCounter(Base):
    """Last change-control sequence issued in a calendar year."""
    __tablename__ = "control_number_counters"
    year = Column(Integer, primary_key=True, autoincrement=False)
    last_value = Column(Integer, nullable=False, default=0)
