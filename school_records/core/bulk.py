"""
Shared pieces of the marks and monitoring bulk imports.

Both imports follow the same shape: reject malformed batches up front, normalize each
row, preload every referenced student/subject/quarter/year with chunked IN queries,
validate rows in memory (collecting "Row N: ..." errors instead of failing), and commit
the surviving rows as natural-key upserts in fixed-size transactions.

Chunks are committed one after another. If a later chunk fails, earlier chunks stay
committed; the upserts are idempotent so the client can simply resubmit the file.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set

from fastapi import status
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from school_records.core.config import settings
from school_records.core.exceptions import ServiceError
from school_records.core.models import Student, Subject
from school_records.core.normalization import coerce_id
from school_records.core.schemas import BulkRowError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StudentScope:
    """What row validation needs to know about a student: current grade and study year."""

    grade_id: Optional[int]
    study_year_id: int


def require_entries(entries: Any) -> List[Any]:
    if not isinstance(entries, list) or not entries:
        raise ServiceError("Entries array is required", status.HTTP_400_BAD_REQUEST)
    return entries


def parse_scope_id(raw: Any, field: str) -> Optional[int]:
    """Optional batch-level filter (gradeId, studyYearId). Blank means no filter; garbage rejects the batch."""
    if raw is None or raw == "":
        return None
    value = coerce_id(raw)
    if value is None:
        raise ServiceError(f"{field} must be a number", status.HTTP_400_BAD_REQUEST)
    return value


def distinct(values: Iterable[Any]) -> List[Any]:
    """Unique non-empty values in first-seen order."""
    return list(dict.fromkeys(v for v in values if v is not None and v != ""))


def row_error(row: int, message: str) -> BulkRowError:
    return BulkRowError(message=f"Row {row}: {message}")


def chunked(values: Sequence[Any], size: Optional[int] = None) -> Iterator[Sequence[Any]]:
    """Consecutive slices of at most `size` values (BULK_CHUNK_SIZE by default)."""
    size = size or settings.bulk_chunk_size
    for start in range(0, len(values), size):
        yield values[start : start + size]


async def preload_students(db: AsyncSession, student_ids: Sequence[str]) -> Dict[str, StudentScope]:
    scopes: Dict[str, StudentScope] = {}
    for batch in chunked(student_ids):
        result = await db.execute(
            select(Student.id, Student.grade_id, Student.study_year_id).where(Student.id.in_(batch))
        )
        for student_id, grade_id, study_year_id in result.all():
            scopes[student_id] = StudentScope(grade_id=grade_id, study_year_id=study_year_id)
    return scopes


async def preload_subject_ids(db: AsyncSession, subject_ids: Sequence[int]) -> Set[int]:
    found: Set[int] = set()
    for batch in chunked(subject_ids):
        result = await db.execute(select(Subject.id).where(Subject.id.in_(batch)))
        found.update(result.scalars().all())
    return found


def check_student(
    student_id: str,
    students: Dict[str, StudentScope],
    grade_id: Optional[int],
) -> Optional[str]:
    """Existence and grade-filter checks shared by both imports. Returns an error message or None."""
    student = students.get(student_id)
    if student is None:
        return f'student "{student_id}" not found'
    if grade_id is not None and student.grade_id != grade_id:
        return f'student "{student_id}" not in selected grade'
    return None


def _dialect_insert(db: AsyncSession):
    dialect = db.bind.dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise ServiceError(f"Upsert is not supported for database dialect '{dialect}'")


def build_upsert(
    db: AsyncSession,
    model: Any,
    values: Dict[str, Any],
    conflict_columns: Sequence[str],
    update_columns: Sequence[str],
):
    """INSERT ... ON CONFLICT (natural key) DO UPDATE for a single row."""
    insert = _dialect_insert(db)
    stmt = insert(model).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_={column: stmt.excluded[column] for column in update_columns},
    )


async def commit_in_chunks(
    db: AsyncSession,
    statements: Sequence[Any],
    label: str,
    chunk_size: Optional[int] = None,
) -> int:
    """
    Execute statements in order, committing every `chunk_size` of them as one transaction.
    Returns the number executed. The failing chunk is rolled back and the error re-raised.
    """
    size = chunk_size or settings.bulk_chunk_size
    executed = 0
    for start in range(0, len(statements), size):
        chunk = statements[start : start + size]
        try:
            for stmt in chunk:
                await db.execute(stmt)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception(
                f"{label}: chunk starting at {start} failed; {executed} upserts already committed"
            )
            raise
        executed += len(chunk)
        logger.debug(f"{label}: committed {executed}/{len(statements)}")
    return executed
