from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_records.auth.dependencies import get_current_admin
from school_records.core.exceptions import ServiceError
from school_records.core.schemas import MessageResponse
from school_records.db.session import get_db

from .schemas import (
    RolloverRequest,
    RolloverResponse,
    StudyYearCreate,
    StudyYearResponse,
    StudyYearUpdate,
    StudyYearWithQuarters,
)
from . import service

router = APIRouter(prefix="/api/years", tags=["years"])


@router.get("", response_model=List[StudyYearWithQuarters])
async def list_study_years(
    db: AsyncSession = Depends(get_db),
) -> List[StudyYearWithQuarters]:
    """Public: study years newest first, with quarters."""
    return await service.list_study_years(db)


@router.post(
    "",
    response_model=StudyYearResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(get_current_admin)],
)
async def create_study_year(
    payload: StudyYearCreate,
    db: AsyncSession = Depends(get_db),
) -> StudyYearResponse:
    try:
        return await service.create_study_year(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put(
    "/{year_id}",
    response_model=StudyYearWithQuarters,
    dependencies=[Depends(get_current_admin)],
)
async def update_study_year(
    year_id: int,
    payload: StudyYearUpdate,
    db: AsyncSession = Depends(get_db),
) -> StudyYearWithQuarters:
    try:
        return await service.update_study_year(db, year_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{year_id}",
    response_model=MessageResponse,
    dependencies=[Depends(get_current_admin)],
)
async def delete_study_year(
    year_id: int,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    try:
        await service.delete_study_year(db, year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return MessageResponse(message="Study year deleted")


@router.post(
    "/{year_id}/rollover",
    response_model=RolloverResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(get_current_admin)],
)
async def rollover_study_year(
    year_id: int,
    payload: RolloverRequest,
    db: AsyncSession = Depends(get_db),
) -> RolloverResponse:
    """
    Open a new study year from this one: copy quarters (dates shifted one year) and move
    students into it, promoting grades and leaving graduates behind. All or nothing.
    """
    try:
        return await service.rollover_study_year(db, year_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
