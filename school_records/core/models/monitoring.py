from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from school_records.db.session import Base


class Monitoring(Base):
    """
    Monthly monitoring score. month is canonical "YYYY-MM" or a legacy free-text label
    (e.g. "Yanvar"); legacy labels are stored verbatim.
    """

    __tablename__ = "monitorings"
    __table_args__ = (
        UniqueConstraint("student_id", "subject_id", "study_year_id", "month", name="uq_monitoring_entry"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    month = Column(Text, nullable=False)
    score = Column(Float, nullable=False)
    student_id = Column(String(64), ForeignKey("students.id", onupdate="CASCADE"), nullable=False, index=True)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False)
    study_year_id = Column(Integer, ForeignKey("study_years.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    student = relationship("Student")
    subject = relationship("Subject")
    study_year = relationship("StudyYear")
