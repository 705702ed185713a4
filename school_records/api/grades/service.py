from typing import List, Optional

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_records.core.exceptions import ServiceError
from school_records.core.models import Grade, Student

from .schemas import GradeCreate, GradeResponse, GradeUpdate, GradeWithCount


def _to_response(grade: Grade) -> GradeResponse:
    return GradeResponse(id=grade.id, name=grade.name)


async def _name_taken(db: AsyncSession, name: str, exclude_id: Optional[int] = None) -> bool:
    stmt = select(Grade.id).where(Grade.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Grade.id != exclude_id)
    result = await db.execute(stmt)
    return result.first() is not None


async def list_grades(db: AsyncSession) -> List[GradeWithCount]:
    """Grades by name with the number of students currently in each."""
    stmt = (
        select(Grade, func.count(Student.id))
        .outerjoin(Student, Student.grade_id == Grade.id)
        .group_by(Grade.id)
        .order_by(Grade.name)
    )
    result = await db.execute(stmt)
    return [
        GradeWithCount(id=grade.id, name=grade.name, student_count=count)
        for grade, count in result.all()
    ]


async def create_grade(db: AsyncSession, payload: GradeCreate) -> GradeResponse:
    name = (payload.name or "").strip()
    if not name:
        raise ServiceError("Name is required", status.HTTP_400_BAD_REQUEST)
    if await _name_taken(db, name):
        raise ServiceError(f"Grade '{name}' already exists", status.HTTP_409_CONFLICT)
    grade = Grade(name=name)
    db.add(grade)
    try:
        await db.commit()
        await db.refresh(grade)
    except IntegrityError:
        await db.rollback()
        raise ServiceError(f"Grade '{name}' already exists", status.HTTP_409_CONFLICT)
    return _to_response(grade)


async def update_grade(db: AsyncSession, grade_id: int, payload: GradeUpdate) -> GradeResponse:
    grade = await db.get(Grade, grade_id)
    if not grade:
        raise ServiceError("Grade not found", status.HTTP_404_NOT_FOUND)
    if payload.name is not None and payload.name.strip():
        name = payload.name.strip()
        if await _name_taken(db, name, exclude_id=grade_id):
            raise ServiceError(f"Grade '{name}' already exists", status.HTTP_409_CONFLICT)
        grade.name = name
    try:
        await db.commit()
        await db.refresh(grade)
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Grade name already exists", status.HTTP_409_CONFLICT)
    return _to_response(grade)


async def delete_grade(db: AsyncSession, grade_id: int) -> None:
    """Delete a grade. Students in it keep their enrollment with no grade."""
    grade = await db.get(Grade, grade_id)
    if not grade:
        raise ServiceError("Grade not found", status.HTTP_404_NOT_FOUND)
    result = await db.execute(select(Student).where(Student.grade_id == grade_id))
    for student in result.scalars().all():
        student.grade_id = None
    await db.delete(grade)
    await db.commit()
