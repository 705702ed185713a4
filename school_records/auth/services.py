import logging

from fastapi import status
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_records.auth.schemas import (
    AdminInfo,
    AdminLoginRequest,
    AdminLoginResponse,
    AdminRegisterRequest,
    AdminRegisterResponse,
)
from school_records.auth.security import create_access_token, hash_password, verify_password
from school_records.core.exceptions import ServiceError
from school_records.core.models import Admin

logger = logging.getLogger(__name__)


def _to_info(admin: Admin) -> AdminInfo:
    return AdminInfo(id=admin.id, username=admin.username, email=admin.email)


async def register_admin(db: AsyncSession, payload: AdminRegisterRequest) -> AdminRegisterResponse:
    username = payload.username.strip()
    email = payload.email.lower()
    existing = await db.execute(
        select(Admin).where(or_(Admin.username == username, Admin.email == email))
    )
    if existing.scalars().first():
        raise ServiceError("Admin already exists", status.HTTP_409_CONFLICT)

    admin = Admin(
        username=username,
        email=email,
        password_hash=hash_password(payload.password),
    )
    db.add(admin)
    try:
        await db.commit()
        await db.refresh(admin)
    except IntegrityError as e:
        await db.rollback()
        raise ServiceError("Admin already exists", status.HTTP_409_CONFLICT) from e
    logger.info(f"Registered admin {admin.username} (id={admin.id})")
    return AdminRegisterResponse(message="Admin created", admin=_to_info(admin))


async def login_admin(db: AsyncSession, payload: AdminLoginRequest) -> AdminLoginResponse:
    result = await db.execute(select(Admin).where(Admin.email == payload.email.lower()))
    admin = result.scalar_one_or_none()
    if not admin:
        raise ServiceError("Admin not found", status.HTTP_404_NOT_FOUND)
    if not verify_password(payload.password, admin.password_hash):
        raise ServiceError("Invalid password", status.HTTP_401_UNAUTHORIZED)

    token = create_access_token(
        subject={"sub": str(admin.id), "admin_id": admin.id, "email": admin.email}
    )
    return AdminLoginResponse(message="Login successful", token=token, admin=_to_info(admin))
