from typing import Optional

from pydantic import Field

from school_records.core.schemas import CamelModel


class SubjectCreate(CamelModel):
    name: Optional[str] = None


class SubjectUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)


class SubjectResponse(CamelModel):
    id: int
    name: str
