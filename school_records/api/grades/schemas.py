from typing import Optional

from pydantic import Field

from school_records.core.schemas import CamelModel


class GradeCreate(CamelModel):
    name: Optional[str] = None


class GradeUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)


class GradeResponse(CamelModel):
    id: int
    name: str


class GradeWithCount(GradeResponse):
    student_count: int = 0
