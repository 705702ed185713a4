from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for API payloads: snake_case attributes, camelCase JSON (studyYearId, fullName, ...)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(CamelModel):
    message: str


class GradeBrief(CamelModel):
    id: int
    name: str


class SubjectBrief(CamelModel):
    id: int
    name: str


class StudentBrief(CamelModel):
    id: str
    full_name: str
    grade: Optional[GradeBrief] = None


class BulkRowError(CamelModel):
    message: str


class BulkUpsertResponse(CamelModel):
    """Result of a bulk upsert. Rows listed in errors were skipped; the rest were written."""

    updated: int
    errors: List[BulkRowError] = Field(default_factory=list)
