from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from school_records.core.config import settings
from school_records.core.models import Admin
from school_records.db.session import get_db


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/admin/login-oauth")


async def get_current_admin(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Admin:
    """Resolve the authenticated admin from the bearer token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise credentials_exception

    admin_id_raw = payload.get("admin_id") or payload.get("sub")
    try:
        admin_id = int(admin_id_raw)
    except (TypeError, ValueError):
        raise credentials_exception

    admin = await db.get(Admin, admin_id)
    if not admin:
        raise credentials_exception
    return admin
