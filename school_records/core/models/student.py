from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from school_records.db.session import Base


class Student(Base):
    """
    Student enrolled in exactly one study year at a time. The id is issued by the school
    (what students type into the bot), not generated here.
    """

    __tablename__ = "students"

    id = Column(String(64), primary_key=True)
    full_name = Column(String(255), nullable=False)
    grade_id = Column(Integer, ForeignKey("grades.id", ondelete="SET NULL"), nullable=True, index=True)
    study_year_id = Column(Integer, ForeignKey("study_years.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    grade = relationship("Grade", back_populates="students")
    study_year = relationship("StudyYear", back_populates="students")
