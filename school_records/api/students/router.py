from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_records.auth.dependencies import get_current_admin
from school_records.core.exceptions import ServiceError
from school_records.core.normalization import parse_bool
from school_records.db.session import get_db

from .schemas import (
    StudentCreate,
    StudentDeleteResponse,
    StudentDetail,
    StudentImportRequest,
    StudentImportResponse,
    StudentMarksReport,
    StudentOption,
    StudentResponse,
    StudentUpdate,
)
from . import service

router = APIRouter(prefix="/api/students", tags=["students"])


def _http_error(e: ServiceError) -> HTTPException:
    detail = {"message": e.message, **e.details} if e.details else e.message
    return HTTPException(status_code=e.status_code, detail=detail)


@router.get(
    "/options",
    response_model=List[StudentOption],
    dependencies=[Depends(get_current_admin)],
)
async def list_student_options(
    search: Optional[str] = Query(None),
    study_year_id: Optional[int] = Query(None, alias="studyYearId"),
    grade_id: Optional[int] = Query(None, alias="gradeId"),
    limit: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
):
    return await service.list_student_options(
        db, search=search, study_year_id=study_year_id, grade_id=grade_id, limit=limit
    )


@router.get(
    "",
    response_model=List[StudentResponse],
    dependencies=[Depends(get_current_admin)],
)
async def list_students(
    search: Optional[str] = Query(None),
    study_year_id: Optional[int] = Query(None, alias="studyYearId"),
    grade_id: Optional[int] = Query(None, alias="gradeId"),
    db: AsyncSession = Depends(get_db),
):
    return await service.list_students(db, search=search, study_year_id=study_year_id, grade_id=grade_id)


@router.post(
    "/import",
    response_model=StudentImportResponse,
    dependencies=[Depends(get_current_admin)],
)
async def import_students(
    payload: StudentImportRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.import_students(db, payload)
    except ServiceError as e:
        raise _http_error(e)


@router.get("/{student_id}", response_model=StudentDetail)
async def get_student(
    student_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Public: student card with current-year marks and monitoring."""
    try:
        return await service.get_student(db, student_id)
    except ServiceError as e:
        raise _http_error(e)


@router.get("/{student_id}/marks", response_model=StudentMarksReport)
async def get_student_marks(
    student_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Public: flat list of current-year marks and monitoring scores."""
    try:
        return await service.get_student_marks(db, student_id)
    except ServiceError as e:
        raise _http_error(e)


@router.post(
    "",
    response_model=StudentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(get_current_admin)],
)
async def create_student(
    payload: StudentCreate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.create_student(db, payload)
    except ServiceError as e:
        raise _http_error(e)


@router.put(
    "/{student_id}",
    response_model=StudentResponse,
    dependencies=[Depends(get_current_admin)],
)
async def update_student(
    student_id: str,
    payload: StudentUpdate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.update_student(db, student_id, payload)
    except ServiceError as e:
        raise _http_error(e)


@router.delete(
    "/{student_id}",
    response_model=StudentDeleteResponse,
    dependencies=[Depends(get_current_admin)],
)
async def delete_student(
    student_id: str,
    force: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.delete_student(db, student_id, force=parse_bool(force))
    except ServiceError as e:
        raise _http_error(e)
