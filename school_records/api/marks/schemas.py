from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from school_records.api.quarters.schemas import QuarterResponse
from school_records.core.schemas import CamelModel, StudentBrief, SubjectBrief


class MarkCreate(CamelModel):
    score: Any = None
    student_id: Any = None
    subject_id: Any = None
    quarter_id: Any = None


class MarkUpdate(CamelModel):
    score: float = Field(..., allow_inf_nan=False)


class MarkResponse(CamelModel):
    id: int
    score: float
    student_id: str
    subject_id: int
    quarter_id: int
    created_at: Optional[datetime] = None


class MarkDetail(MarkResponse):
    student: StudentBrief
    subject: SubjectBrief
    quarter: QuarterResponse


class MarkBulkRequest(CamelModel):
    """Spreadsheet import. Rows stay untyped so one bad cell fails its row, not the batch."""

    entries: Any = Field(default=None)
    grade_id: Any = None
    study_year_id: Any = None
