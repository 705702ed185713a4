from datetime import datetime
from typing import Any, List, Optional

from pydantic import Field

from school_records.api.years.schemas import StudyYearResponse
from school_records.core.schemas import CamelModel, StudentBrief, SubjectBrief


class MonitoringCreate(CamelModel):
    month: Any = None
    score: Any = None
    student_id: Any = None
    subject_id: Any = None
    study_year_id: Any = None


class MonitoringUpdate(CamelModel):
    """Partial update. Only fields present in the request body are applied."""

    month: Any = None
    score: Any = None
    subject_id: Any = None
    study_year_id: Any = None


class MonitoringResponse(CamelModel):
    id: int
    month: str
    score: float
    student_id: str
    subject_id: int
    study_year_id: int
    created_at: Optional[datetime] = None


class MonitoringDetail(MonitoringResponse):
    student: StudentBrief
    subject: SubjectBrief
    study_year: StudyYearResponse


class MonitoringBulkRequest(CamelModel):
    entries: Any = Field(default=None)
    grade_id: Any = None


class SubjectSummary(CamelModel):
    subject_id: int
    subject_name: str
    average_score: Optional[float] = None
    entries: int


class MonitoringSummary(CamelModel):
    total_entries: int
    overall_average: Optional[float] = None
    by_subject: List[SubjectSummary]
