import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import status
from sqlalchemy import func, select
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
from school_records.core.models import Monitoring, Student, StudyYear, Subject
from school_records.core.normalization import (
    as_mapping,
    coerce_id,
    coerce_number,
    coerce_str,
    is_month_within_study_year,
    normalize_month,
)
from school_records.core.schemas import BulkRowError, BulkUpsertResponse

from .schemas import (
    MonitoringBulkRequest,
    MonitoringCreate,
    MonitoringDetail,
    MonitoringSummary,
    MonitoringUpdate,
    SubjectSummary,
)

logger = logging.getLogger(__name__)

MONITORING_CONFLICT_COLUMNS = ("student_id", "subject_id", "study_year_id", "month")


@dataclass
class _MonitoringRow:
    row: int
    student_id: str
    subject_id: Optional[int]
    study_year_id: Optional[int]
    month: Optional[str]
    score: Optional[float]


def _json_number(value: Any) -> Optional[float]:
    """Score from a JSON number. Numeric strings are not accepted by the single-entry endpoints."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return coerce_number(value)


def _detail_options():
    return (
        selectinload(Monitoring.student).selectinload(Student.grade),
        selectinload(Monitoring.subject),
        selectinload(Monitoring.study_year),
    )


async def _get_monitoring(db: AsyncSession, monitoring_id: int) -> Monitoring:
    result = await db.execute(
        select(Monitoring)
        .where(Monitoring.id == monitoring_id)
        .options(*_detail_options())
        .execution_options(populate_existing=True)
    )
    monitoring = result.scalar_one_or_none()
    if not monitoring:
        raise ServiceError("Monitoring not found", status.HTTP_404_NOT_FOUND)
    return monitoring


def _filtered(stmt, study_year_id, grade_id, search, month):
    if study_year_id is not None:
        stmt = stmt.where(Monitoring.study_year_id == study_year_id)
    normalized_month = normalize_month(month)
    if normalized_month:
        stmt = stmt.where(Monitoring.month == normalized_month)
    conditions = student_conditions(search=search, grade_id=grade_id)
    if conditions:
        stmt = stmt.join_from(Monitoring, Student, Student.id == Monitoring.student_id).where(*conditions)
    return stmt


async def list_monitorings(
    db: AsyncSession,
    study_year_id: Optional[int] = None,
    grade_id: Optional[int] = None,
    search: Optional[str] = None,
    month: Optional[str] = None,
) -> List[MonitoringDetail]:
    stmt = _filtered(select(Monitoring), study_year_id, grade_id, search, month)
    stmt = stmt.options(*_detail_options()).order_by(Monitoring.month, Monitoring.id)
    result = await db.execute(stmt)
    return [MonitoringDetail.model_validate(m) for m in result.scalars().all()]


async def get_monitoring_summary(
    db: AsyncSession,
    study_year_id: Optional[int] = None,
    grade_id: Optional[int] = None,
    search: Optional[str] = None,
    month: Optional[str] = None,
) -> MonitoringSummary:
    """Entry count and average score overall and per subject, under the listing filters."""
    overall_stmt = _filtered(
        select(func.count(Monitoring.id), func.avg(Monitoring.score)),
        study_year_id, grade_id, search, month,
    )
    total, overall_average = (await db.execute(overall_stmt)).one()

    by_subject_stmt = _filtered(
        select(Monitoring.subject_id, func.avg(Monitoring.score), func.count(Monitoring.id)),
        study_year_id, grade_id, search, month,
    )
    by_subject_stmt = by_subject_stmt.group_by(Monitoring.subject_id).order_by(Monitoring.subject_id)
    groups = (await db.execute(by_subject_stmt)).all()

    names: Dict[int, str] = {}
    if groups:
        subject_rows = await db.execute(
            select(Subject.id, Subject.name).where(Subject.id.in_([g[0] for g in groups]))
        )
        names = dict(subject_rows.all())

    return MonitoringSummary(
        total_entries=total or 0,
        overall_average=overall_average,
        by_subject=[
            SubjectSummary(
                subject_id=subject_id,
                subject_name=names.get(subject_id, "Unknown subject"),
                average_score=average,
                entries=count,
            )
            for subject_id, average, count in groups
        ],
    )


async def get_monitoring(db: AsyncSession, monitoring_id: int) -> MonitoringDetail:
    return MonitoringDetail.model_validate(await _get_monitoring(db, monitoring_id))


async def create_monitoring(db: AsyncSession, payload: MonitoringCreate) -> MonitoringDetail:
    """Create or overwrite the score for (student, subject, study year, month)."""
    month = normalize_month(payload.month)
    student_id = payload.student_id.strip() if isinstance(payload.student_id, str) else ""
    if not month or not student_id:
        raise ServiceError("month and studentId are required", status.HTTP_400_BAD_REQUEST)
    subject_id = coerce_id(payload.subject_id)
    study_year_id = coerce_id(payload.study_year_id)
    if subject_id is None or study_year_id is None:
        raise ServiceError("subjectId and studyYearId are required", status.HTTP_400_BAD_REQUEST)
    score = _json_number(payload.score)
    if score is None:
        raise ServiceError("score must be a number", status.HTTP_400_BAD_REQUEST)

    student = await db.get(Student, student_id)
    if not student:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)
    if student.study_year_id != study_year_id:
        raise ServiceError("Student belongs to a different study year", status.HTTP_400_BAD_REQUEST)
    study_year = await db.get(StudyYear, study_year_id)
    if not study_year:
        raise ServiceError("Study year not found", status.HTTP_400_BAD_REQUEST)
    if not is_month_within_study_year(month, study_year):
        raise ServiceError("month is outside the selected study year range", status.HTTP_400_BAD_REQUEST)
    if not await db.get(Subject, subject_id):
        raise ServiceError("Invalid student, subject, or study year reference", status.HTTP_400_BAD_REQUEST)

    existing = await db.execute(
        select(Monitoring).where(
            Monitoring.student_id == student_id,
            Monitoring.subject_id == subject_id,
            Monitoring.study_year_id == study_year_id,
            Monitoring.month == month,
        )
    )
    monitoring = existing.scalar_one_or_none()
    if monitoring:
        monitoring.score = score
    else:
        monitoring = Monitoring(
            month=month,
            score=score,
            student_id=student_id,
            subject_id=subject_id,
            study_year_id=study_year_id,
        )
        db.add(monitoring)
    await db.commit()
    return MonitoringDetail.model_validate(await _get_monitoring(db, monitoring.id))


async def update_monitoring(
    db: AsyncSession,
    monitoring_id: int,
    payload: MonitoringUpdate,
) -> MonitoringDetail:
    provided = payload.model_fields_set
    month = normalize_month(payload.month)
    if "month" in provided and not month:
        raise ServiceError("month must be a non-empty string", status.HTTP_400_BAD_REQUEST)

    monitoring = await _get_monitoring(db, monitoring_id)

    study_year_id = monitoring.study_year_id
    if "study_year_id" in provided and payload.study_year_id is not None:
        study_year_id = coerce_id(payload.study_year_id)
        if study_year_id is None:
            raise ServiceError("studyYearId must be a number", status.HTTP_400_BAD_REQUEST)
    study_year = await db.get(StudyYear, study_year_id)
    if not study_year:
        raise ServiceError("Study year not found", status.HTTP_400_BAD_REQUEST)
    if not is_month_within_study_year(month or monitoring.month, study_year):
        raise ServiceError("month is outside the study year range", status.HTTP_400_BAD_REQUEST)

    if "subject_id" in provided and payload.subject_id is not None:
        subject_id = coerce_id(payload.subject_id)
        if subject_id is None or not await db.get(Subject, subject_id):
            raise ServiceError("Invalid student, subject, or study year reference", status.HTTP_400_BAD_REQUEST)
        monitoring.subject_id = subject_id
    score = _json_number(payload.score)
    if score is not None:
        monitoring.score = score
    if month:
        monitoring.month = month
    monitoring.study_year_id = study_year_id

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError(
            "Another monitoring entry already exists for this student, subject, year and month",
            status.HTTP_409_CONFLICT,
        )
    return MonitoringDetail.model_validate(await _get_monitoring(db, monitoring_id))


async def delete_monitoring(db: AsyncSession, monitoring_id: int) -> None:
    monitoring = await db.get(Monitoring, monitoring_id)
    if not monitoring:
        raise ServiceError("Monitoring not found", status.HTTP_404_NOT_FOUND)
    await db.delete(monitoring)
    await db.commit()


def _normalize_rows(entries: List[Any]) -> List[_MonitoringRow]:
    rows = []
    for index, entry in enumerate(entries, start=1):
        data = as_mapping(entry)
        rows.append(
            _MonitoringRow(
                row=index,
                student_id=coerce_str(data.get("studentId")),
                subject_id=coerce_id(data.get("subjectId")),
                study_year_id=coerce_id(data.get("studyYearId")),
                month=normalize_month(data.get("month")),
                score=coerce_number(data.get("score")),
            )
        )
    return rows


async def _preload_study_years(db: AsyncSession, study_year_ids: List[int]) -> Dict[int, StudyYear]:
    years: Dict[int, StudyYear] = {}
    for batch in chunked(study_year_ids):
        result = await db.execute(select(StudyYear).where(StudyYear.id.in_(batch)))
        years.update((year.id, year) for year in result.scalars().all())
    return years


async def upsert_bulk_monitoring(db: AsyncSession, payload: MonitoringBulkRequest) -> BulkUpsertResponse:
    """
    Upsert monthly monitoring scores from a spreadsheet import.

    Same contract as the marks import, keyed by (student, subject, study year, month).
    ISO months must fall inside the target study year; legacy month labels are stored as given.
    """
    entries = require_entries(payload.entries)
    grade_id = parse_scope_id(payload.grade_id, "gradeId")

    rows = _normalize_rows(entries)
    students = await preload_students(db, distinct(r.student_id for r in rows))
    subject_ids = await preload_subject_ids(db, distinct(r.subject_id for r in rows))
    study_years = await _preload_study_years(db, distinct(r.study_year_id for r in rows))

    errors: List[BulkRowError] = []
    statements = []
    for r in rows:
        if not r.student_id:
            errors.append(row_error(r.row, "studentId is required"))
            continue
        if r.subject_id is None or r.study_year_id is None or not r.month:
            errors.append(row_error(r.row, "subjectId, studyYearId, and month are required"))
            continue
        if r.score is None:
            errors.append(row_error(r.row, "score must be a number"))
            continue
        student_problem = check_student(r.student_id, students, grade_id)
        if student_problem:
            errors.append(row_error(r.row, student_problem))
            continue
        study_year = study_years.get(r.study_year_id)
        if study_year is None:
            errors.append(row_error(r.row, f"study year {r.study_year_id} not found"))
            continue
        if students[r.student_id].study_year_id != r.study_year_id:
            errors.append(row_error(r.row, f'student "{r.student_id}" is in another study year'))
            continue
        if r.subject_id not in subject_ids:
            errors.append(row_error(r.row, f"subject {r.subject_id} not found"))
            continue
        if not is_month_within_study_year(r.month, study_year):
            errors.append(row_error(r.row, f'month "{r.month}" is outside the study year range'))
            continue

        statements.append(
            build_upsert(
                db,
                Monitoring,
                {
                    "student_id": r.student_id,
                    "subject_id": r.subject_id,
                    "study_year_id": r.study_year_id,
                    "month": r.month,
                    "score": r.score,
                },
                MONITORING_CONFLICT_COLUMNS,
                ("score",),
            )
        )

    logger.info(f"Monitoring bulk: {len(rows)} rows, {len(statements)} valid, {len(errors)} rejected")
    try:
        updated = await commit_in_chunks(db, statements, "Monitoring bulk")
    except IntegrityError as e:
        raise ServiceError(
            "One or more entries reference missing students, subjects, or study years",
            status.HTTP_400_BAD_REQUEST,
        ) from e
    except SQLAlchemyError as e:
        raise ServiceError("Failed to upsert monitoring entries", status.HTTP_500_INTERNAL_SERVER_ERROR) from e
    return BulkUpsertResponse(updated=updated, errors=errors)
