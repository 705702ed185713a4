from datetime import date
from typing import Any, Optional

from school_records.api.years.schemas import StudyYearResponse
from school_records.core.schemas import CamelModel


class QuarterCreate(CamelModel):
    name: Optional[str] = None
    study_year_id: Any = None
    start_date: Any = None
    end_date: Any = None


class QuarterResponse(CamelModel):
    id: int
    name: str
    study_year_id: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class QuarterWithYear(QuarterResponse):
    study_year: StudyYearResponse
