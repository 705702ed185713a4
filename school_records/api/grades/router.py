from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_records.auth.dependencies import get_current_admin
from school_records.core.exceptions import ServiceError
from school_records.core.schemas import MessageResponse
from school_records.db.session import get_db

from .schemas import GradeCreate, GradeResponse, GradeUpdate, GradeWithCount
from . import service

router = APIRouter(
    prefix="/api/grades",
    tags=["grades"],
    dependencies=[Depends(get_current_admin)],
)


@router.get("", response_model=List[GradeWithCount])
async def list_grades(
    db: AsyncSession = Depends(get_db),
) -> List[GradeWithCount]:
    return await service.list_grades(db)


@router.post("", response_model=GradeResponse, status_code=status.HTTP_201_CREATED)
async def create_grade(
    payload: GradeCreate,
    db: AsyncSession = Depends(get_db),
) -> GradeResponse:
    try:
        return await service.create_grade(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/{grade_id}", response_model=GradeResponse)
async def update_grade(
    grade_id: int,
    payload: GradeUpdate,
    db: AsyncSession = Depends(get_db),
) -> GradeResponse:
    try:
        return await service.update_grade(db, grade_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{grade_id}", response_model=MessageResponse)
async def delete_grade(
    grade_id: int,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    try:
        await service.delete_grade(db, grade_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return MessageResponse(message="Grade deleted")
