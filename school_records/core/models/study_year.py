from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Integer, String
from sqlalchemy.orm import relationship

from school_records.db.session import Base


class StudyYear(Base):
    """
    Academic year, the temporal partition root. Students, quarters and monitoring
    entries each belong to exactly one study year; rollover is the only operation
    that moves a student to another one.
    """

    __tablename__ = "study_years"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)  # e.g. "2024-2025"
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    quarters = relationship("Quarter", back_populates="study_year", order_by="Quarter.id")
    students = relationship("Student", back_populates="study_year", order_by="Student.id")
