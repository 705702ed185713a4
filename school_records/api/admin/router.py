from fastapi import APIRouter, Depends, HTTPException
from fastapi import status as http_status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from school_records.auth.dependencies import get_current_admin
from school_records.auth.schemas import (
    AdminLoginRequest,
    AdminLoginResponse,
    AdminProfile,
    AdminRegisterRequest,
    AdminRegisterResponse,
)
from school_records.auth.services import login_admin, register_admin
from school_records.core.exceptions import ServiceError
from school_records.core.models import Admin
from school_records.db.session import get_db

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post(
    "/register",
    response_model=AdminRegisterResponse,
    status_code=http_status.HTTP_201_CREATED,
)
async def register(
    payload: AdminRegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> AdminRegisterResponse:
    try:
        return await register_admin(db, payload)
    except ServiceError as e:
        if e.status_code == http_status.HTTP_500_INTERNAL_SERVER_ERROR:
            raise HTTPException(status_code=e.status_code, detail="Internal server error")
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/login",
    response_model=AdminLoginResponse,
    status_code=http_status.HTTP_200_OK,
)
async def login(
    payload: AdminLoginRequest,
    db: AsyncSession = Depends(get_db),
) -> AdminLoginResponse:
    try:
        return await login_admin(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/login-oauth")
async def login_oauth(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    """Token endpoint for the OpenAPI "Authorize" button; the username field takes the email."""
    try:
        payload = AdminLoginRequest(email=form_data.username.strip(), password=form_data.password)
    except ValueError:
        raise HTTPException(status_code=http_status.HTTP_400_BAD_REQUEST, detail="Invalid email")
    try:
        result = await login_admin(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {
        "access_token": result.token,
        "token_type": "bearer",
    }


@router.get("/profile", response_model=AdminProfile)
async def profile(
    current_admin: Admin = Depends(get_current_admin),
) -> AdminProfile:
    return AdminProfile.model_validate(current_admin)
