from datetime import datetime
from typing import Any, List, Optional

from pydantic import Field

from school_records.api.quarters.schemas import QuarterResponse
from school_records.api.years.schemas import StudyYearResponse
from school_records.core.schemas import CamelModel, GradeBrief, SubjectBrief


class StudentCreate(CamelModel):
    id: Any = None
    full_name: Any = None
    grade_id: Any = None
    study_year_id: Any = None


class StudentUpdate(CamelModel):
    """
    Partial update. gradeId distinguishes absent (keep), null or "" (clear) and a
    number (set), so the service looks at model_fields_set.
    """

    id: Any = None
    full_name: Any = None
    grade_id: Any = None


class StudentResponse(CamelModel):
    id: str
    full_name: str
    grade_id: Optional[int] = None
    study_year_id: int
    created_at: Optional[datetime] = None
    grade: Optional[GradeBrief] = None


class StudentOption(CamelModel):
    id: str
    full_name: str
    study_year_id: int
    grade: Optional[GradeBrief] = None


class StudentMarkItem(CamelModel):
    id: int
    score: float
    subject_id: int
    quarter_id: int
    subject: SubjectBrief
    quarter: QuarterResponse


class StudentMonitoringItem(CamelModel):
    id: int
    month: str
    score: float
    subject_id: int
    study_year_id: int
    subject: SubjectBrief


class StudentDetail(StudentResponse):
    study_year: StudyYearResponse
    marks: List[StudentMarkItem] = Field(default_factory=list)
    monitorings: List[StudentMonitoringItem] = Field(default_factory=list)


class MarkLine(CamelModel):
    subject: str
    quarter: str
    score: float


class MonitoringLine(CamelModel):
    subject: str
    month: str
    score: float


class StudentMarksReport(CamelModel):
    """Flattened view of a student's current-year results, as shown to students and parents."""

    id: str
    name: str
    grade: Optional[str] = None
    marks: List[MarkLine]
    monitoring: List[MonitoringLine]


class RemovedCounts(CamelModel):
    marks: int
    monitorings: int


class StudentDeleteResponse(CamelModel):
    message: str
    removed: RemovedCounts


class StudentImportRequest(CamelModel):
    study_year_id: Any = None
    grade_id: Any = None
    update_existing: Any = None
    entries: Any = None


class StudentImportResponse(CamelModel):
    message: str
    total: int
    created: int
    updated: int
    skipped_existing: int
    duplicates_merged: int
    invalid: int
