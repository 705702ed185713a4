from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_records.auth.dependencies import get_current_admin
from school_records.core.exceptions import ServiceError
from school_records.core.schemas import BulkUpsertResponse, MessageResponse
from school_records.db.session import get_db

from .schemas import MarkBulkRequest, MarkCreate, MarkDetail, MarkUpdate
from . import service

router = APIRouter(
    prefix="/api/marks",
    tags=["marks"],
    dependencies=[Depends(get_current_admin)],
)


@router.get("", response_model=List[MarkDetail])
async def list_marks(
    student_id: Optional[str] = Query(None, alias="studentId"),
    subject_id: Optional[int] = Query(None, alias="subjectId"),
    quarter_id: Optional[int] = Query(None, alias="quarterId"),
    grade_id: Optional[int] = Query(None, alias="gradeId"),
    study_year_id: Optional[int] = Query(None, alias="studyYearId"),
    search: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await service.list_marks(
        db,
        student_id=student_id,
        subject_id=subject_id,
        quarter_id=quarter_id,
        grade_id=grade_id,
        study_year_id=study_year_id,
        search=search,
    )


@router.post("/bulk", response_model=BulkUpsertResponse)
async def upsert_bulk_marks(
    payload: MarkBulkRequest,
    db: AsyncSession = Depends(get_db),
):
    """Upsert many marks at once. Row-level problems come back in `errors`."""
    try:
        return await service.upsert_bulk_marks(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{mark_id}", response_model=MarkDetail)
async def get_mark(
    mark_id: int,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.get_mark(db, mark_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("", response_model=MarkDetail, status_code=status.HTTP_201_CREATED)
async def create_mark(
    payload: MarkCreate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.create_mark(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/{mark_id}", response_model=MarkDetail)
async def update_mark(
    mark_id: int,
    payload: MarkUpdate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.update_mark(db, mark_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{mark_id}", response_model=MessageResponse)
async def delete_mark(
    mark_id: int,
    db: AsyncSession = Depends(get_db),
):
    try:
        await service.delete_mark(db, mark_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return MessageResponse(message="Mark deleted")
