import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from school_records.core.models import Student


@pytest.mark.asyncio
async def test_grades_crud(client: AsyncClient, db_session: AsyncSession, auth_headers, school) -> None:
    response = await client.get("/api/grades", headers=auth_headers)
    assert response.json() == [
        {"id": school.grade11_id, "name": "Grade 11", "studentCount": 1},
        {"id": school.grade5_id, "name": "Grade 5", "studentCount": 1},
    ]

    response = await client.post("/api/grades", json={"name": "Grade 5"}, headers=auth_headers)
    assert response.status_code == 409
    response = await client.post("/api/grades", json={"name": "  "}, headers=auth_headers)
    assert response.status_code == 400

    response = await client.post("/api/grades", json={"name": "Grade 7"}, headers=auth_headers)
    assert response.status_code == 201
    grade7_id = response.json()["id"]
    response = await client.put(f"/api/grades/{grade7_id}", json={"name": "Grade 11"}, headers=auth_headers)
    assert response.status_code == 409

    response = await client.delete(f"/api/grades/{school.grade5_id}", headers=auth_headers)
    assert response.status_code == 200
    grade = await db_session.execute(select(Student.grade_id).where(Student.id == "S1"))
    assert grade.scalar_one() is None

    response = await client.delete(f"/api/grades/{school.grade5_id}", headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_quarters(client: AsyncClient, auth_headers, school) -> None:
    response = await client.get("/api/quarters", params={"studyYearId": school.year_id}, headers=auth_headers)
    quarters = response.json()
    assert [q["name"] for q in quarters] == ["Q2", "Q1"]
    assert quarters[0]["studyYear"]["name"] == "2024-2025"

    response = await client.post("/api/quarters", json={"name": "Q3"}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Name and studyYearId are required"
    response = await client.post("/api/quarters", json={"name": "Q3", "studyYearId": 9999}, headers=auth_headers)
    assert response.status_code == 400

    response = await client.post(
        "/api/quarters",
        json={"name": "Q3", "studyYearId": school.year_id, "startDate": "2025-01-08", "endDate": "2025-03-21"},
        headers=auth_headers,
    )
    assert response.status_code == 201
    assert response.json()["startDate"] == "2025-01-08"

    response = await client.delete(f"/api/quarters/{response.json()['id']}", headers=auth_headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_quarter_with_marks_cannot_be_deleted(client: AsyncClient, auth_headers, school) -> None:
    entries = [{"studentId": "S1", "subjectId": school.math_id, "quarterId": school.q1_id, "score": 5}]
    await client.post("/api/marks/bulk", json={"entries": entries}, headers=auth_headers)

    response = await client.delete(f"/api/quarters/{school.q1_id}", headers=auth_headers)
    assert response.status_code == 409
    assert response.json()["detail"] == "Cannot delete quarter while marks reference it"

    response = await client.delete("/api/quarters/9999", headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_subjects(client: AsyncClient, auth_headers, school) -> None:
    response = await client.post("/api/subjects", json={"name": "Biology"}, headers=auth_headers)
    assert response.status_code == 201
    biology_id = response.json()["id"]

    response = await client.get("/api/subjects", headers=auth_headers)
    assert [s["name"] for s in response.json()] == ["Biology", "Math"]

    response = await client.post("/api/subjects", json={"name": "Math"}, headers=auth_headers)
    assert response.status_code == 409
    response = await client.put(f"/api/subjects/{biology_id}", json={"name": "Math"}, headers=auth_headers)
    assert response.status_code == 409
    response = await client.put(f"/api/subjects/{biology_id}", json={"name": "Chemistry"}, headers=auth_headers)
    assert response.json()["name"] == "Chemistry"

    entries = [{"studentId": "S1", "subjectId": school.math_id, "quarterId": school.q1_id, "score": 5}]
    await client.post("/api/marks/bulk", json={"entries": entries}, headers=auth_headers)
    response = await client.delete(f"/api/subjects/{school.math_id}", headers=auth_headers)
    assert response.status_code == 409

    response = await client.delete(f"/api/subjects/{biology_id}", headers=auth_headers)
    assert response.status_code == 200
    response = await client.put(f"/api/subjects/{biology_id}", json={"name": "X"}, headers=auth_headers)
    assert response.status_code == 404
