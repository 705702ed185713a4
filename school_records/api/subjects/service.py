from typing import List, Optional

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_records.core.exceptions import ServiceError
from school_records.core.models import Mark, Monitoring, Subject

from .schemas import SubjectCreate, SubjectResponse, SubjectUpdate


def _to_response(subject: Subject) -> SubjectResponse:
    return SubjectResponse(id=subject.id, name=subject.name)


async def _existing_by_name(
    db: AsyncSession, name: str, exclude_subject_id: Optional[int] = None
) -> Optional[Subject]:
    stmt = select(Subject).where(Subject.name == name)
    if exclude_subject_id is not None:
        stmt = stmt.where(Subject.id != exclude_subject_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_subjects(db: AsyncSession) -> List[SubjectResponse]:
    result = await db.execute(select(Subject).order_by(Subject.name))
    return [_to_response(s) for s in result.scalars().all()]


async def create_subject(db: AsyncSession, payload: SubjectCreate) -> SubjectResponse:
    name = (payload.name or "").strip()
    if not name:
        raise ServiceError("Name is required", status.HTTP_400_BAD_REQUEST)
    if await _existing_by_name(db, name):
        raise ServiceError("Subject with this name already exists", status.HTTP_409_CONFLICT)
    subject = Subject(name=name)
    db.add(subject)
    try:
        await db.commit()
        await db.refresh(subject)
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Subject with this name already exists", status.HTTP_409_CONFLICT)
    return _to_response(subject)


async def update_subject(db: AsyncSession, subject_id: int, payload: SubjectUpdate) -> SubjectResponse:
    subject = await db.get(Subject, subject_id)
    if not subject:
        raise ServiceError("Subject not found", status.HTTP_404_NOT_FOUND)
    if payload.name is not None and payload.name.strip():
        name = payload.name.strip()
        if await _existing_by_name(db, name, exclude_subject_id=subject_id):
            raise ServiceError("Subject with this name already exists", status.HTTP_409_CONFLICT)
        subject.name = name
    try:
        await db.commit()
        await db.refresh(subject)
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Subject with this name already exists", status.HTTP_409_CONFLICT)
    return _to_response(subject)


async def delete_subject(db: AsyncSession, subject_id: int) -> None:
    subject = await db.get(Subject, subject_id)
    if not subject:
        raise ServiceError("Subject not found", status.HTTP_404_NOT_FOUND)
    for model in (Mark, Monitoring):
        count = await db.execute(select(func.count()).select_from(model).where(model.subject_id == subject_id))
        if count.scalar_one():
            raise ServiceError(
                "Cannot delete subject because marks or monitoring records reference it",
                status.HTTP_409_CONFLICT,
            )
    await db.delete(subject)
    await db.commit()
