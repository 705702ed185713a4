from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_records.auth.dependencies import get_current_admin
from school_records.core.exceptions import ServiceError
from school_records.core.schemas import MessageResponse
from school_records.db.session import get_db

from .schemas import QuarterCreate, QuarterResponse, QuarterWithYear
from . import service

router = APIRouter(
    prefix="/api/quarters",
    tags=["quarters"],
    dependencies=[Depends(get_current_admin)],
)


@router.get("", response_model=List[QuarterWithYear])
async def list_quarters(
    study_year_id: Optional[int] = Query(None, alias="studyYearId"),
    db: AsyncSession = Depends(get_db),
) -> List[QuarterWithYear]:
    return await service.list_quarters(db, study_year_id=study_year_id)


@router.post("", response_model=QuarterResponse, status_code=status.HTTP_201_CREATED)
async def create_quarter(
    payload: QuarterCreate,
    db: AsyncSession = Depends(get_db),
) -> QuarterResponse:
    try:
        return await service.create_quarter(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{quarter_id}", response_model=MessageResponse)
async def delete_quarter(
    quarter_id: int,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Delete a quarter. Refused with 409 while marks reference it."""
    try:
        await service.delete_quarter(db, quarter_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return MessageResponse(message="Quarter deleted")
