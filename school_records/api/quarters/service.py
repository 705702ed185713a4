from typing import List, Optional

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from school_records.core.exceptions import ServiceError
from school_records.core.models import Mark, Quarter, StudyYear
from school_records.core.normalization import coerce_id, parse_date

from .schemas import QuarterCreate, QuarterResponse, QuarterWithYear


async def list_quarters(db: AsyncSession, study_year_id: Optional[int] = None) -> List[QuarterWithYear]:
    stmt = select(Quarter).options(selectinload(Quarter.study_year)).order_by(Quarter.id.desc())
    if study_year_id is not None:
        stmt = stmt.where(Quarter.study_year_id == study_year_id)
    result = await db.execute(stmt)
    return [QuarterWithYear.model_validate(q) for q in result.scalars().all()]


async def create_quarter(db: AsyncSession, payload: QuarterCreate) -> QuarterResponse:
    name = (payload.name or "").strip()
    study_year_id = coerce_id(payload.study_year_id)
    if not name or study_year_id is None:
        raise ServiceError("Name and studyYearId are required", status.HTTP_400_BAD_REQUEST)
    if not await db.get(StudyYear, study_year_id):
        raise ServiceError("Study year not found", status.HTTP_400_BAD_REQUEST)
    start = parse_date(payload.start_date)
    end = parse_date(payload.end_date)
    if start and end and start > end:
        raise ServiceError("startDate must be on or before endDate", status.HTTP_400_BAD_REQUEST)

    quarter = Quarter(name=name, study_year_id=study_year_id, start_date=start, end_date=end)
    db.add(quarter)
    await db.commit()
    await db.refresh(quarter)
    return QuarterResponse.model_validate(quarter)


async def delete_quarter(db: AsyncSession, quarter_id: int) -> None:
    quarter = await db.get(Quarter, quarter_id)
    if not quarter:
        raise ServiceError("Quarter not found", status.HTTP_404_NOT_FOUND)
    marks = await db.execute(select(func.count()).select_from(Mark).where(Mark.quarter_id == quarter_id))
    if marks.scalar_one():
        raise ServiceError("Cannot delete quarter while marks reference it", status.HTTP_409_CONFLICT)
    await db.delete(quarter)
    await db.commit()
