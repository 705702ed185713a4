import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from school_records.auth.security import verify_password
from school_records.core.models import Admin


REGISTER = {"username": "registrar", "email": "Registrar@Example.com", "password": "StrongPass123"}


@pytest.mark.asyncio
async def test_register_success(client: AsyncClient, db_session: AsyncSession) -> None:
    response = await client.post("/api/admin/register", json=REGISTER)
    assert response.status_code == 201
    data = response.json()
    assert data["message"] == "Admin created"
    assert data["admin"]["email"] == "registrar@example.com"

    admin = (await db_session.execute(select(Admin).where(Admin.username == "registrar"))).scalar_one()
    assert admin.password_hash != REGISTER["password"]
    assert verify_password(REGISTER["password"], admin.password_hash)


@pytest.mark.asyncio
async def test_register_duplicate(client: AsyncClient, db_session: AsyncSession) -> None:
    await client.post("/api/admin/register", json=REGISTER)
    response = await client.post("/api/admin/register", json={**REGISTER, "username": "other"})
    assert response.status_code == 409
    assert response.json()["detail"] == "Admin already exists"


@pytest.mark.asyncio
async def test_login_and_profile(client: AsyncClient, db_session: AsyncSession) -> None:
    await client.post("/api/admin/register", json=REGISTER)

    response = await client.post(
        "/api/admin/login", json={"email": "registrar@example.com", "password": "StrongPass123"}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Login successful"
    assert data["tokenType"] == "bearer"

    response = await client.get("/api/admin/profile", headers={"Authorization": f"Bearer {data['token']}"})
    assert response.status_code == 200
    assert response.json()["username"] == "registrar"


@pytest.mark.asyncio
async def test_login_oauth_form(client: AsyncClient, db_session: AsyncSession) -> None:
    await client.post("/api/admin/register", json=REGISTER)
    response = await client.post(
        "/api/admin/login-oauth",
        data={"username": "registrar@example.com", "password": "StrongPass123"},
    )
    assert response.status_code == 200
    assert response.json()["token_type"] == "bearer"


@pytest.mark.asyncio
async def test_login_failures(client: AsyncClient, db_session: AsyncSession) -> None:
    await client.post("/api/admin/register", json=REGISTER)

    response = await client.post("/api/admin/login", json={"email": "nobody@example.com", "password": "x"})
    assert response.status_code == 404
    response = await client.post(
        "/api/admin/login", json={"email": "registrar@example.com", "password": "wrong-password"}
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid password"


@pytest.mark.asyncio
async def test_protected_endpoints_reject_bad_tokens(client: AsyncClient, db_session: AsyncSession) -> None:
    response = await client.get("/api/admin/profile")
    assert response.status_code == 401
    response = await client.get("/api/students", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    response = await client.get("/api/grades")
    assert response.status_code == 401
