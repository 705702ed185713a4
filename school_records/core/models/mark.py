from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from school_records.db.session import Base


class Mark(Base):
    """
    Quarter mark. One per (student, subject, quarter); the quarter must belong to the
    student's study year.
    """

    __tablename__ = "marks"
    __table_args__ = (
        UniqueConstraint("student_id", "subject_id", "quarter_id", name="uq_mark_student_subject_quarter"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    score = Column(Float, nullable=False)
    student_id = Column(String(64), ForeignKey("students.id", onupdate="CASCADE"), nullable=False, index=True)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False)
    quarter_id = Column(Integer, ForeignKey("quarters.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    student = relationship("Student")
    subject = relationship("Subject")
    quarter = relationship("Quarter")
