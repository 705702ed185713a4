import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from school_records.core.bulk import (
    build_upsert,
    check_student,
    chunked,
    commit_in_chunks,
    distinct,
    parse_scope_id,
    preload_students,
    preload_subject_ids,
    require_entries,
    row_error,
)
from school_records.core.exceptions import ServiceError
from school_records.core.filters import student_conditions
from school_records.core.models import Mark, Quarter, Student, Subject
from school_records.core.normalization import as_mapping, coerce_id, coerce_number, coerce_str
from school_records.core.schemas import BulkRowError, BulkUpsertResponse

from .schemas import MarkBulkRequest, MarkCreate, MarkDetail, MarkUpdate

logger = logging.getLogger(__name__)

MARK_CONFLICT_COLUMNS = ("student_id", "subject_id", "quarter_id")


@dataclass
class _MarkRow:
    row: int
    student_id: str
    subject_id: Optional[int]
    quarter_id: Optional[int]
    score: Optional[float]


def _detail_options():
    return (
        selectinload(Mark.student).selectinload(Student.grade),
        selectinload(Mark.subject),
        selectinload(Mark.quarter),
    )


async def _get_mark(db: AsyncSession, mark_id: int) -> Mark:
    result = await db.execute(
        select(Mark)
        .where(Mark.id == mark_id)
        .options(*_detail_options())
        .execution_options(populate_existing=True)
    )
    mark = result.scalar_one_or_none()
    if not mark:
        raise ServiceError("Mark not found", status.HTTP_404_NOT_FOUND)
    return mark


async def list_marks(
    db: AsyncSession,
    student_id: Optional[str] = None,
    subject_id: Optional[int] = None,
    quarter_id: Optional[int] = None,
    grade_id: Optional[int] = None,
    study_year_id: Optional[int] = None,
    search: Optional[str] = None,
) -> List[MarkDetail]:
    stmt = select(Mark).join(Mark.student).options(*_detail_options())
    if student_id:
        stmt = stmt.where(Mark.student_id == student_id)
    if subject_id is not None:
        stmt = stmt.where(Mark.subject_id == subject_id)
    if quarter_id is not None:
        stmt = stmt.where(Mark.quarter_id == quarter_id)
    conditions = student_conditions(search=search, grade_id=grade_id, study_year_id=study_year_id)
    if conditions:
        stmt = stmt.where(*conditions)
    stmt = stmt.order_by(Mark.created_at.desc(), Mark.id.desc())
    result = await db.execute(stmt)
    return [MarkDetail.model_validate(m) for m in result.scalars().all()]


async def get_mark(db: AsyncSession, mark_id: int) -> MarkDetail:
    return MarkDetail.model_validate(await _get_mark(db, mark_id))


async def create_mark(db: AsyncSession, payload: MarkCreate) -> MarkDetail:
    score = coerce_number(payload.score)
    student_id = coerce_str(payload.student_id)
    subject_id = coerce_id(payload.subject_id)
    quarter_id = coerce_id(payload.quarter_id)
    if score is None or not student_id or subject_id is None or quarter_id is None:
        raise ServiceError(
            "score, studentId, subjectId and quarterId are required",
            status.HTTP_400_BAD_REQUEST,
        )

    student = await db.get(Student, student_id)
    quarter = await db.get(Quarter, quarter_id)
    subject = await db.get(Subject, subject_id)
    if not student or not quarter or not subject:
        raise ServiceError("Invalid student, subject, or quarter reference", status.HTTP_400_BAD_REQUEST)
    if student.study_year_id != quarter.study_year_id:
        raise ServiceError("Quarter belongs to a different study year than the student", status.HTTP_400_BAD_REQUEST)

    mark = Mark(score=score, student_id=student_id, subject_id=subject_id, quarter_id=quarter_id)
    db.add(mark)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError(
            "Mark already exists for this student, subject and quarter",
            status.HTTP_409_CONFLICT,
        )
    return MarkDetail.model_validate(await _get_mark(db, mark.id))


async def update_mark(db: AsyncSession, mark_id: int, payload: MarkUpdate) -> MarkDetail:
    mark = await _get_mark(db, mark_id)
    mark.score = payload.score
    await db.commit()
    return MarkDetail.model_validate(await _get_mark(db, mark_id))


async def delete_mark(db: AsyncSession, mark_id: int) -> None:
    mark = await db.get(Mark, mark_id)
    if not mark:
        raise ServiceError("Mark not found", status.HTTP_404_NOT_FOUND)
    await db.delete(mark)
    await db.commit()


def _normalize_rows(entries: List[Any]) -> List[_MarkRow]:
    rows = []
    for index, entry in enumerate(entries, start=1):
        data = as_mapping(entry)
        rows.append(
            _MarkRow(
                row=index,
                student_id=coerce_str(data.get("studentId")),
                subject_id=coerce_id(data.get("subjectId")),
                quarter_id=coerce_id(data.get("quarterId")),
                score=coerce_number(data.get("score")),
            )
        )
    return rows


async def _preload_quarter_years(db: AsyncSession, quarter_ids: List[int]) -> Dict[int, int]:
    years: Dict[int, int] = {}
    for batch in chunked(quarter_ids):
        result = await db.execute(select(Quarter.id, Quarter.study_year_id).where(Quarter.id.in_(batch)))
        years.update(result.all())
    return years


async def upsert_bulk_marks(db: AsyncSession, payload: MarkBulkRequest) -> BulkUpsertResponse:
    """
    Upsert quarter marks from a spreadsheet import.

    Bad rows are reported as "Row N: ..." and skipped; only a missing entries list or a
    non-numeric gradeId/studyYearId rejects the whole batch. Valid rows are written as
    (student, subject, quarter) upserts, so resubmitting the same sheet only corrects scores.
    """
    entries = require_entries(payload.entries)
    study_year_id = parse_scope_id(payload.study_year_id, "studyYearId")
    grade_id = parse_scope_id(payload.grade_id, "gradeId")

    rows = _normalize_rows(entries)
    students = await preload_students(db, distinct(r.student_id for r in rows))
    subject_ids = await preload_subject_ids(db, distinct(r.subject_id for r in rows))
    quarter_years = await _preload_quarter_years(db, distinct(r.quarter_id for r in rows))

    errors: List[BulkRowError] = []
    statements = []
    for r in rows:
        if not r.student_id:
            errors.append(row_error(r.row, "studentId is required"))
            continue
        if r.subject_id is None or r.quarter_id is None:
            errors.append(row_error(r.row, "subjectId and quarterId are required numbers"))
            continue
        if r.score is None:
            errors.append(row_error(r.row, "score must be a number"))
            continue
        student_problem = check_student(r.student_id, students, grade_id)
        if student_problem:
            errors.append(row_error(r.row, student_problem))
            continue
        quarter_year_id = quarter_years.get(r.quarter_id)
        if quarter_year_id is None:
            errors.append(row_error(r.row, f"quarter {r.quarter_id} not found"))
            continue
        if study_year_id is not None and quarter_year_id != study_year_id:
            errors.append(row_error(r.row, f"quarter {r.quarter_id} not in selected study year"))
            continue
        if students[r.student_id].study_year_id != quarter_year_id:
            errors.append(row_error(r.row, f'student "{r.student_id}" is in another study year'))
            continue
        if r.subject_id not in subject_ids:
            errors.append(row_error(r.row, f"subject {r.subject_id} not found"))
            continue

        statements.append(
            build_upsert(
                db,
                Mark,
                {
                    "student_id": r.student_id,
                    "subject_id": r.subject_id,
                    "quarter_id": r.quarter_id,
                    "score": r.score,
                },
                MARK_CONFLICT_COLUMNS,
                ("score",),
            )
        )

    logger.info(f"Marks bulk: {len(rows)} rows, {len(statements)} valid, {len(errors)} rejected")
    try:
        updated = await commit_in_chunks(db, statements, "Marks bulk")
    except IntegrityError as e:
        raise ServiceError(
            "One or more entries reference missing students, subjects, or quarters",
            status.HTTP_400_BAD_REQUEST,
        ) from e
    except SQLAlchemyError as e:
        raise ServiceError("Failed to upsert marks", status.HTTP_500_INTERNAL_SERVER_ERROR) from e
    return BulkUpsertResponse(updated=updated, errors=errors)
