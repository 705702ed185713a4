from sqlalchemy import Column, Date, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from school_records.db.session import Base


class Quarter(Base):
    """Sub-period of a study year that groups marks. Cannot be deleted while marks reference it."""

    __tablename__ = "quarters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    study_year_id = Column(Integer, ForeignKey("study_years.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)

    study_year = relationship("StudyYear", back_populates="quarters")
