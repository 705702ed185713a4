import logging
from typing import Any, Dict, List, Optional

from fastapi import status
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from school_records.api.years.schemas import StudyYearResponse
from school_records.core.bulk import distinct
from school_records.core.config import settings
from school_records.core.exceptions import ServiceError
from school_records.core.filters import student_conditions
from school_records.core.models import Grade, Mark, Monitoring, Quarter, Student, StudyYear, Subject
from school_records.core.normalization import as_mapping, coerce_id, coerce_str, parse_bool

from .schemas import (
    MarkLine,
    MonitoringLine,
    RemovedCounts,
    StudentCreate,
    StudentDeleteResponse,
    StudentDetail,
    StudentImportRequest,
    StudentImportResponse,
    StudentMarkItem,
    StudentMarksReport,
    StudentMonitoringItem,
    StudentOption,
    StudentResponse,
    StudentUpdate,
)

logger = logging.getLogger(__name__)


def _optional_grade_id(raw: Any, message: str = "gradeId must be a number") -> Optional[int]:
    """None or "" means no grade; anything else must be an integer id."""
    if raw is None or raw == "":
        return None
    grade_id = coerce_id(raw)
    if grade_id is None:
        raise ServiceError(message, status.HTTP_400_BAD_REQUEST)
    return grade_id


async def _get_student(db: AsyncSession, student_id: str, *extra_options) -> Student:
    result = await db.execute(
        select(Student)
        .where(Student.id == student_id)
        .options(selectinload(Student.grade), *extra_options)
        .execution_options(populate_existing=True)
    )
    student = result.scalar_one_or_none()
    if not student:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)
    return student


async def _current_year_results(db: AsyncSession, student: Student):
    """Marks and monitoring entries of the student's current study year only."""
    marks_result = await db.execute(
        select(Mark)
        .join(Quarter, Quarter.id == Mark.quarter_id)
        .join(Subject, Subject.id == Mark.subject_id)
        .where(Mark.student_id == student.id, Quarter.study_year_id == student.study_year_id)
        .options(selectinload(Mark.subject), selectinload(Mark.quarter))
        .order_by(Mark.quarter_id, Subject.name)
    )
    monitorings_result = await db.execute(
        select(Monitoring)
        .join(Subject, Subject.id == Monitoring.subject_id)
        .where(Monitoring.student_id == student.id, Monitoring.study_year_id == student.study_year_id)
        .options(selectinload(Monitoring.subject))
        .order_by(Subject.name, Monitoring.month, Monitoring.created_at)
    )
    return marks_result.scalars().all(), monitorings_result.scalars().all()


async def list_student_options(
    db: AsyncSession,
    search: Optional[str] = None,
    study_year_id: Optional[int] = None,
    grade_id: Optional[int] = None,
    limit: Optional[int] = None,
) -> List[StudentOption]:
    """Lightweight student list for pickers in the admin panel."""
    stmt = select(Student).options(selectinload(Student.grade))
    conditions = student_conditions(search=search, grade_id=grade_id, study_year_id=study_year_id)
    if conditions:
        stmt = stmt.where(*conditions)
    stmt = stmt.order_by(Student.full_name).limit(limit or settings.student_options_limit)
    result = await db.execute(stmt)
    return [StudentOption.model_validate(s) for s in result.scalars().all()]


async def list_students(
    db: AsyncSession,
    search: Optional[str] = None,
    study_year_id: Optional[int] = None,
    grade_id: Optional[int] = None,
) -> List[StudentResponse]:
    stmt = select(Student).options(selectinload(Student.grade))
    conditions = student_conditions(search=search, grade_id=grade_id, study_year_id=study_year_id)
    if conditions:
        stmt = stmt.where(*conditions)
    result = await db.execute(stmt.order_by(Student.full_name))
    return [StudentResponse.model_validate(s) for s in result.scalars().all()]


async def get_student(db: AsyncSession, student_id: str) -> StudentDetail:
    student = await _get_student(db, student_id, selectinload(Student.study_year))
    marks, monitorings = await _current_year_results(db, student)
    return StudentDetail(
        **StudentResponse.model_validate(student).model_dump(),
        study_year=StudyYearResponse.model_validate(student.study_year),
        marks=[StudentMarkItem.model_validate(m) for m in marks],
        monitorings=[StudentMonitoringItem.model_validate(m) for m in monitorings],
    )


async def get_student_marks(db: AsyncSession, student_id: str) -> StudentMarksReport:
    student = await _get_student(db, student_id)
    marks, monitorings = await _current_year_results(db, student)
    return StudentMarksReport(
        id=student.id,
        name=student.full_name,
        grade=student.grade.name if student.grade else None,
        marks=[MarkLine(subject=m.subject.name, quarter=m.quarter.name, score=m.score) for m in marks],
        monitoring=[
            MonitoringLine(subject=m.subject.name, month=m.month, score=m.score) for m in monitorings
        ],
    )


async def create_student(db: AsyncSession, payload: StudentCreate) -> StudentResponse:
    student_id = coerce_str(payload.id)
    full_name = coerce_str(payload.full_name)
    study_year_id = coerce_id(payload.study_year_id)
    if not student_id or not full_name or study_year_id is None:
        raise ServiceError("id, fullName, and studyYearId are required", status.HTTP_400_BAD_REQUEST)
    grade_id = _optional_grade_id(payload.grade_id)

    if await db.get(Student, student_id):
        raise ServiceError("Student with this ID already exists", status.HTTP_400_BAD_REQUEST)
    if not await db.get(StudyYear, study_year_id) or (
        grade_id is not None and not await db.get(Grade, grade_id)
    ):
        raise ServiceError("Invalid grade or study year reference for the student", status.HTTP_400_BAD_REQUEST)

    db.add(Student(id=student_id, full_name=full_name, grade_id=grade_id, study_year_id=study_year_id))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Student with this ID already exists", status.HTTP_400_BAD_REQUEST)
    return StudentResponse.model_validate(await _get_student(db, student_id))


async def update_student(db: AsyncSession, student_id: str, payload: StudentUpdate) -> StudentResponse:
    """
    Update a student in place. A new id renames the student (marks and monitoring entries
    follow through ON UPDATE CASCADE); a blank fullName is ignored.
    """
    provided = payload.model_fields_set
    student = await _get_student(db, student_id)

    new_id = payload.id.strip() if isinstance(payload.id, str) else ""
    if new_id and new_id != student_id:
        if await db.get(Student, new_id):
            raise ServiceError("Student with this ID already exists", status.HTTP_400_BAD_REQUEST)
        student.id = new_id

    if isinstance(payload.full_name, str) and payload.full_name.strip():
        student.full_name = payload.full_name.strip()

    if "grade_id" in provided:
        grade_id = _optional_grade_id(payload.grade_id)
        if grade_id is not None and not await db.get(Grade, grade_id):
            raise ServiceError("Invalid grade reference for the student", status.HTTP_400_BAD_REQUEST)
        student.grade_id = grade_id

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Invalid grade reference for the student", status.HTTP_400_BAD_REQUEST)
    return StudentResponse.model_validate(await _get_student(db, student.id))


async def delete_student(db: AsyncSession, student_id: str, force: bool = False) -> StudentDeleteResponse:
    """
    Delete a student. When marks or monitoring entries exist the caller has to confirm
    with force; those results are then removed in the same transaction.
    """
    if not await db.get(Student, student_id):
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)

    marks_count = (
        await db.execute(select(func.count()).select_from(Mark).where(Mark.student_id == student_id))
    ).scalar_one()
    monitorings_count = (
        await db.execute(select(func.count()).select_from(Monitoring).where(Monitoring.student_id == student_id))
    ).scalar_one()
    if not force and (marks_count or monitorings_count):
        raise ServiceError(
            "Student has related marks or monitoring records. Confirm deletion to remove them as well.",
            status.HTTP_409_CONFLICT,
            details={
                "code": "STUDENT_HAS_RESULTS",
                "details": {"marks": marks_count, "monitorings": monitorings_count},
                "hint": "Retry with ?force=true to delete the student with related records.",
            },
        )

    try:
        removed_monitorings = await db.execute(delete(Monitoring).where(Monitoring.student_id == student_id))
        removed_marks = await db.execute(delete(Mark).where(Mark.student_id == student_id))
        await db.execute(delete(Student).where(Student.id == student_id))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"Failed to delete student {student_id}")
        raise ServiceError("Failed to delete student", status.HTTP_500_INTERNAL_SERVER_ERROR) from e

    logger.info(
        f"Deleted student {student_id} with {removed_marks.rowcount} marks "
        f"and {removed_monitorings.rowcount} monitoring entries"
    )
    return StudentDeleteResponse(
        message="Student deleted",
        removed=RemovedCounts(marks=removed_marks.rowcount, monitorings=removed_monitorings.rowcount),
    )


async def import_students(db: AsyncSession, payload: StudentImportRequest) -> StudentImportResponse:
    """
    Enroll a roster into a study year.

    Rows without id or fullName are counted as invalid. Repeated ids are merged, the last
    row winning. Existing students are only touched when updateExisting is set, in which
    case they are moved into the target year with the imported name and grade.
    """
    study_year_id = coerce_id(payload.study_year_id)
    if study_year_id is None:
        raise ServiceError("studyYearId is required", status.HTTP_400_BAD_REQUEST)
    if not isinstance(payload.entries, list) or not payload.entries:
        raise ServiceError("entries array is required", status.HTTP_400_BAD_REQUEST)
    default_grade_id = _optional_grade_id(payload.grade_id)
    update_existing = parse_bool(payload.update_existing)

    merged: Dict[str, Dict[str, Any]] = {}
    duplicates = 0
    invalid = 0
    for entry in payload.entries:
        data = as_mapping(entry)
        student_id = coerce_str(data.get("id"))
        full_name = coerce_str(data.get("fullName"))
        if not student_id or not full_name:
            invalid += 1
            continue
        raw_grade = data.get("gradeId")
        if raw_grade is None or raw_grade == "":
            grade_id = default_grade_id
        else:
            grade_id = _optional_grade_id(raw_grade, f"Invalid gradeId for student {student_id}")
        if student_id in merged:
            duplicates += 1
        merged[student_id] = {"full_name": full_name, "grade_id": grade_id}

    if not merged:
        raise ServiceError(
            "No valid students found in payload",
            status.HTTP_400_BAD_REQUEST,
            details={"details": {"invalidCount": invalid}},
        )
    if not await db.get(StudyYear, study_year_id):
        raise ServiceError("Study year not found", status.HTTP_400_BAD_REQUEST)

    grade_ids = distinct(row["grade_id"] for row in merged.values())
    if grade_ids:
        found = set((await db.execute(select(Grade.id).where(Grade.id.in_(grade_ids)))).scalars().all())
        missing = [str(grade_id) for grade_id in grade_ids if grade_id not in found]
        if missing:
            raise ServiceError(f"Unknown grade ids: {', '.join(missing)}", status.HTTP_400_BAD_REQUEST)

    existing_result = await db.execute(select(Student).where(Student.id.in_(list(merged))))
    existing = {student.id: student for student in existing_result.scalars().all()}

    created = 0
    updated = 0
    try:
        for student_id, row in merged.items():
            student = existing.get(student_id)
            if student is None:
                db.add(Student(id=student_id, study_year_id=study_year_id, **row))
                created += 1
            elif update_existing:
                student.full_name = row["full_name"]
                student.grade_id = row["grade_id"]
                student.study_year_id = study_year_id
                updated += 1
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ServiceError("Invalid grade or study year reference", status.HTTP_400_BAD_REQUEST) from e

    logger.info(f"Imported students into study year {study_year_id}: created={created}, updated={updated}")
    return StudentImportResponse(
        message="Students imported",
        total=len(merged),
        created=created,
        updated=updated,
        skipped_existing=0 if update_existing else len(existing),
        duplicates_merged=duplicates,
        invalid=invalid,
    )
