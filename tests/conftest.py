import os
from datetime import date
from types import SimpleNamespace
from typing import AsyncGenerator, Dict

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["AUTO_CREATE_TABLES"] = "false"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from school_records.core.models import Grade, Quarter, Student, StudyYear, Subject
from school_records.db.session import Base, get_db
from school_records.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """One in-memory SQLite database per test, shared by every connection through StaticPool."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for a test and override FastAPI dependency."""
    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.clear()


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
async def auth_headers(client: AsyncClient) -> Dict[str, str]:
    """Register an admin and return a bearer header for protected endpoints."""
    credentials = {"email": "admin@example.com", "password": "StrongPass123"}
    response = await client.post("/api/admin/register", json={"username": "admin", **credentials})
    assert response.status_code == 201
    response = await client.post("/api/admin/login", json=credentials)
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture()
async def school(db_session: AsyncSession) -> SimpleNamespace:
    """
    Study year 2024-2025 with two quarters, a Math subject and two students:
    S1 in "Grade 5" and S2 in "Grade 11".
    """
    year = StudyYear(name="2024-2025", start_date=date(2024, 9, 1), end_date=date(2025, 5, 31))
    grade5 = Grade(name="Grade 5")
    grade11 = Grade(name="Grade 11")
    math = Subject(name="Math")
    db_session.add_all([year, grade5, grade11, math])
    await db_session.flush()

    q1 = Quarter(
        name="Q1",
        study_year_id=year.id,
        start_date=date(2024, 9, 2),
        end_date=date(2024, 10, 31),
    )
    q2 = Quarter(
        name="Q2",
        study_year_id=year.id,
        start_date=date(2024, 11, 11),
        end_date=date(2024, 12, 27),
    )
    s1 = Student(id="S1", full_name="Aziz Karimov", grade_id=grade5.id, study_year_id=year.id)
    s2 = Student(id="S2", full_name="Dilnoza Rashidova", grade_id=grade11.id, study_year_id=year.id)
    db_session.add_all([q1, q2, s1, s2])
    await db_session.commit()

    return SimpleNamespace(
        year_id=year.id,
        q1_id=q1.id,
        q2_id=q2.id,
        grade5_id=grade5.id,
        grade11_id=grade11.id,
        math_id=math.id,
    )
