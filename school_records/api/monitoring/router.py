from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_records.auth.dependencies import get_current_admin
from school_records.core.exceptions import ServiceError
from school_records.core.schemas import BulkUpsertResponse, MessageResponse
from school_records.db.session import get_db

from .schemas import (
    MonitoringBulkRequest,
    MonitoringCreate,
    MonitoringDetail,
    MonitoringSummary,
    MonitoringUpdate,
)
from . import service

router = APIRouter(
    prefix="/api/monitoring",
    tags=["monitoring"],
    dependencies=[Depends(get_current_admin)],
)


@router.get("", response_model=List[MonitoringDetail])
async def list_monitorings(
    study_year_id: Optional[int] = Query(None, alias="studyYearId"),
    grade_id: Optional[int] = Query(None, alias="gradeId"),
    search: Optional[str] = Query(None),
    month: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await service.list_monitorings(
        db, study_year_id=study_year_id, grade_id=grade_id, search=search, month=month
    )


@router.get("/summary", response_model=MonitoringSummary)
async def get_monitoring_summary(
    study_year_id: Optional[int] = Query(None, alias="studyYearId"),
    grade_id: Optional[int] = Query(None, alias="gradeId"),
    search: Optional[str] = Query(None),
    month: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await service.get_monitoring_summary(
        db, study_year_id=study_year_id, grade_id=grade_id, search=search, month=month
    )


@router.post("/bulk", response_model=BulkUpsertResponse)
async def upsert_bulk_monitoring(
    payload: MonitoringBulkRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.upsert_bulk_monitoring(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{monitoring_id}", response_model=MonitoringDetail)
async def get_monitoring(
    monitoring_id: int,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.get_monitoring(db, monitoring_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("", response_model=MonitoringDetail, status_code=status.HTTP_201_CREATED)
async def create_monitoring(
    payload: MonitoringCreate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.create_monitoring(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/{monitoring_id}", response_model=MonitoringDetail)
async def update_monitoring(
    monitoring_id: int,
    payload: MonitoringUpdate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.update_monitoring(db, monitoring_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{monitoring_id}", response_model=MessageResponse)
async def delete_monitoring(
    monitoring_id: int,
    db: AsyncSession = Depends(get_db),
):
    try:
        await service.delete_monitoring(db, monitoring_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return MessageResponse(message="Monitoring deleted")
