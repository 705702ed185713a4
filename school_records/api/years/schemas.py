from datetime import date
from typing import Any, List, Optional, Union

from pydantic import Field

from school_records.core.schemas import CamelModel


class StudyYearCreate(CamelModel):
    """Create a study year. Dates are validated by the service so bad input is a 400."""

    name: Any = None
    start_date: Any = None
    end_date: Any = None


class StudyYearUpdate(CamelModel):
    """Partial update: only fields present in the body are touched."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class QuarterInYear(CamelModel):
    id: int
    name: str
    study_year_id: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class StudyYearResponse(CamelModel):
    id: int
    name: str
    start_date: date
    end_date: date


class StudyYearWithQuarters(StudyYearResponse):
    quarters: List[QuarterInYear] = Field(default_factory=list)


class RolloverRequest(CamelModel):
    """
    Body of POST /api/years/{id}/rollover. Flags are on unless the literal false is sent;
    graduateAt defaults to 11.
    """

    name: Any = None
    start_date: Any = None
    end_date: Any = None
    move_students: Any = True
    increment_grades: Any = True
    copy_quarters: Any = True
    graduate_at: Any = None


class RolloverOptions(CamelModel):
    move_students: bool
    increment_grades: bool
    copy_quarters: bool
    graduate_at: Union[int, float]


class RolloverResponse(CamelModel):
    message: str
    new_year: StudyYearResponse
    quarters_copied: int
    students_moved: int
    students_grade_incremented: int
    graduates_skipped: int
    options: RolloverOptions
