import logging
from datetime import date
from typing import Dict, List, Tuple

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from school_records.core.config import settings
from school_records.core.exceptions import ServiceError
from school_records.core.models import Grade, Monitoring, Quarter, Student, StudyYear
from school_records.core.normalization import (
    coerce_number,
    increment_first_number_in_text,
    parse_date,
    parse_first_number,
    shift_date_by_years,
)

from .schemas import (
    QuarterInYear,
    RolloverOptions,
    RolloverRequest,
    RolloverResponse,
    StudyYearCreate,
    StudyYearResponse,
    StudyYearUpdate,
    StudyYearWithQuarters,
)

logger = logging.getLogger(__name__)


def _to_response(year: StudyYear) -> StudyYearResponse:
    return StudyYearResponse(
        id=year.id,
        name=year.name,
        start_date=year.start_date,
        end_date=year.end_date,
    )


def _to_response_with_quarters(year: StudyYear) -> StudyYearWithQuarters:
    quarters = sorted(year.quarters, key=lambda q: (q.start_date is None, q.start_date or date.min, q.id))
    return StudyYearWithQuarters(
        id=year.id,
        name=year.name,
        start_date=year.start_date,
        end_date=year.end_date,
        quarters=[QuarterInYear.model_validate(q) for q in quarters],
    )


def _validate_dates(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise ServiceError("startDate must be on or before endDate", status.HTTP_400_BAD_REQUEST)


def _parse_name_and_dates(raw_name, raw_start, raw_end) -> Tuple[str, date, date]:
    name = raw_name.strip() if isinstance(raw_name, str) else ""
    start = parse_date(raw_start)
    end = parse_date(raw_end)
    if not name or not start or not end:
        raise ServiceError("Invalid name or dates", status.HTTP_400_BAD_REQUEST)
    _validate_dates(start, end)
    return name, start, end


async def _get_year_with_quarters(db: AsyncSession, year_id: int) -> StudyYear:
    result = await db.execute(
        select(StudyYear)
        .where(StudyYear.id == year_id)
        .options(selectinload(StudyYear.quarters))
        .execution_options(populate_existing=True)
    )
    year = result.scalar_one_or_none()
    if not year:
        raise ServiceError("Study year not found", status.HTTP_404_NOT_FOUND)
    return year


async def list_study_years(db: AsyncSession) -> List[StudyYearWithQuarters]:
    """Study years newest first, each with its quarters ordered by start date."""
    result = await db.execute(
        select(StudyYear)
        .options(selectinload(StudyYear.quarters))
        .order_by(StudyYear.start_date.desc())
        .execution_options(populate_existing=True)
    )
    return [_to_response_with_quarters(y) for y in result.scalars().all()]


async def create_study_year(db: AsyncSession, payload: StudyYearCreate) -> StudyYearResponse:
    name, start, end = _parse_name_and_dates(payload.name, payload.start_date, payload.end_date)
    year = StudyYear(name=name, start_date=start, end_date=end)
    db.add(year)
    await db.commit()
    await db.refresh(year)
    return _to_response(year)


async def update_study_year(
    db: AsyncSession,
    year_id: int,
    payload: StudyYearUpdate,
) -> StudyYearWithQuarters:
    year = await _get_year_with_quarters(db, year_id)
    if payload.name is not None and payload.name.strip():
        year.name = payload.name.strip()
    if payload.start_date is not None:
        year.start_date = payload.start_date
    if payload.end_date is not None:
        year.end_date = payload.end_date
    if payload.start_date is not None or payload.end_date is not None:
        _validate_dates(year.start_date, year.end_date)
    await db.commit()
    return _to_response_with_quarters(year)


async def delete_study_year(db: AsyncSession, year_id: int) -> None:
    year = await db.get(StudyYear, year_id)
    if not year:
        raise ServiceError("Study year not found", status.HTTP_404_NOT_FOUND)
    references = 0
    for model in (Quarter, Student, Monitoring):
        count = await db.execute(select(func.count()).select_from(model).where(model.study_year_id == year_id))
        references += count.scalar_one()
    if references:
        raise ServiceError(
            "Cannot delete study year because related quarters, students, or monitorings exist",
            status.HTTP_409_CONFLICT,
        )
    await db.delete(year)
    await db.commit()


async def _resolve_promoted_grade_id(
    db: AsyncSession,
    source_grade: Grade,
    next_name: str,
    grade_cache: Dict[int, int],
) -> int:
    """Find or create the grade named `next_name`, once per source grade within a rollover."""
    cached = grade_cache.get(source_grade.id)
    if cached is not None:
        return cached
    result = await db.execute(select(Grade).where(Grade.name == next_name))
    target = result.scalar_one_or_none()
    if target is None:
        target = Grade(name=next_name)
        db.add(target)
        await db.flush()
        logger.info(f"Rollover created grade '{next_name}' (id={target.id})")
    grade_cache[source_grade.id] = target.id
    return target.id


async def rollover_study_year(
    db: AsyncSession,
    source_year_id: int,
    payload: RolloverRequest,
) -> RolloverResponse:
    """
    Start a new study year from an existing one.

    Creates the year, optionally copies the source quarters one calendar year later,
    and optionally moves the source roster into the new year. Students whose grade
    number is at or above graduate_at stay behind; the others are promoted to the
    next grade name ("Grade 5" -> "Grade 6", created on demand) when increment_grades
    is on. Everything is committed once at the end; any failure rolls all of it back.
    """
    name, start, end = _parse_name_and_dates(payload.name, payload.start_date, payload.end_date)

    move_students = payload.move_students is not False
    increment_grades = payload.increment_grades is not False
    copy_quarters = payload.copy_quarters is not False
    if payload.graduate_at is None:
        graduate_at = settings.default_graduate_at
    else:
        graduate_number = coerce_number(payload.graduate_at)
        if graduate_number is None:
            raise ServiceError("graduateAt must be a number", status.HTTP_400_BAD_REQUEST)
        graduate_at = int(graduate_number) if graduate_number.is_integer() else graduate_number

    result = await db.execute(
        select(StudyYear)
        .where(StudyYear.id == source_year_id)
        .options(
            selectinload(StudyYear.quarters),
            selectinload(StudyYear.students).selectinload(Student.grade),
        )
        .execution_options(populate_existing=True)
    )
    source_year = result.scalar_one_or_none()
    if not source_year:
        raise ServiceError("Study year not found", status.HTTP_404_NOT_FOUND)

    source_quarters = list(source_year.quarters)
    roster = list(source_year.students)
    logger.info(
        f"Rollover of study year {source_year_id} into '{name}': "
        f"{len(roster)} students, {len(source_quarters)} quarters"
    )

    quarters_copied = 0
    students_moved = 0
    students_grade_incremented = 0
    graduates_skipped = 0
    grade_cache: Dict[int, int] = {}

    try:
        new_year = StudyYear(name=name, start_date=start, end_date=end)
        db.add(new_year)
        await db.flush()

        if copy_quarters:
            for quarter in source_quarters:
                db.add(
                    Quarter(
                        name=quarter.name,
                        study_year_id=new_year.id,
                        start_date=shift_date_by_years(quarter.start_date, 1) if quarter.start_date else None,
                        end_date=shift_date_by_years(quarter.end_date, 1) if quarter.end_date else None,
                    )
                )
                quarters_copied += 1

        if move_students:
            for student in roster:
                grade = student.grade
                if grade is not None and grade.name:
                    grade_number = parse_first_number(grade.name)
                    if grade_number is not None and grade_number >= graduate_at:
                        graduates_skipped += 1
                        continue

                next_grade_id = student.grade_id
                if increment_grades and grade is not None:
                    next_name = increment_first_number_in_text(grade.name)
                    if next_name and next_name != grade.name:
                        next_grade_id = await _resolve_promoted_grade_id(db, grade, next_name, grade_cache)
                        students_grade_incremented += 1

                student.study_year_id = new_year.id
                student.grade_id = next_grade_id
                students_moved += 1

        await db.commit()
        await db.refresh(new_year)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"Rollover of study year {source_year_id} failed; nothing was applied")
        raise ServiceError("Failed to rollover year", status.HTTP_500_INTERNAL_SERVER_ERROR) from e

    logger.info(
        f"Rollover of study year {source_year_id} done: new year id={new_year.id}, "
        f"quarters={quarters_copied}, moved={students_moved}, "
        f"promoted={students_grade_incremented}, graduates={graduates_skipped}"
    )
    return RolloverResponse(
        message="Rollover completed",
        new_year=_to_response(new_year),
        quarters_copied=quarters_copied,
        students_moved=students_moved,
        students_grade_incremented=students_grade_incremented,
        graduates_skipped=graduates_skipped,
        options=RolloverOptions(
            move_students=move_students,
            increment_grades=increment_grades,
            copy_quarters=copy_quarters,
            graduate_at=graduate_at,
        ),
    )
