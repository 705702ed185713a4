from datetime import datetime

from pydantic import EmailStr, Field

from school_records.core.schemas import CamelModel


class AdminRegisterRequest(CamelModel):
    username: str = Field(..., min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)


class AdminLoginRequest(CamelModel):
    email: EmailStr
    password: str


class AdminInfo(CamelModel):
    id: int
    username: str
    email: str


class AdminProfile(AdminInfo):
    created_at: datetime


class AdminRegisterResponse(CamelModel):
    message: str
    admin: AdminInfo


class AdminLoginResponse(CamelModel):
    message: str
    token: str
    token_type: str = "bearer"
    admin: AdminInfo
