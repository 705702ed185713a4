import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_records.core.models import Mark, Monitoring, Student


async def _seed_results(client: AsyncClient, auth_headers, school) -> None:
    marks = [
        {"studentId": "S1", "subjectId": school.math_id, "quarterId": school.q1_id, "score": 5},
        {"studentId": "S1", "subjectId": school.math_id, "quarterId": school.q2_id, "score": 4},
    ]
    monitoring = [
        {"studentId": "S1", "subjectId": school.math_id, "studyYearId": school.year_id, "month": "2024-10", "score": 88},
    ]
    assert (await client.post("/api/marks/bulk", json={"entries": marks}, headers=auth_headers)).json()["updated"] == 2
    assert (
        await client.post("/api/monitoring/bulk", json={"entries": monitoring}, headers=auth_headers)
    ).json()["updated"] == 1


@pytest.mark.asyncio
async def test_student_marks_report_is_public(client: AsyncClient, auth_headers, school) -> None:
    await _seed_results(client, auth_headers, school)

    response = await client.get("/api/students/S1/marks")
    assert response.status_code == 200
    assert response.json() == {
        "id": "S1",
        "name": "Aziz Karimov",
        "grade": "Grade 5",
        "marks": [
            {"subject": "Math", "quarter": "Q1", "score": 5.0},
            {"subject": "Math", "quarter": "Q2", "score": 4.0},
        ],
        "monitoring": [{"subject": "Math", "month": "2024-10", "score": 88.0}],
    }

    response = await client.get("/api/students/S1")
    assert response.status_code == 200
    detail = response.json()
    assert detail["studyYear"]["name"] == "2024-2025"
    assert len(detail["marks"]) == 2
    assert detail["monitorings"][0]["month"] == "2024-10"

    response = await client.get("/api/students/NOPE/marks")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_student_card_only_shows_current_year(client: AsyncClient, auth_headers, school) -> None:
    await _seed_results(client, auth_headers, school)
    body = {"name": "2025-2026", "startDate": "2025-09-01", "endDate": "2026-05-31", "copyQuarters": False}
    response = await client.post(f"/api/years/{school.year_id}/rollover", json=body, headers=auth_headers)
    assert response.status_code == 201

    response = await client.get("/api/students/S1/marks")
    assert response.json()["grade"] == "Grade 6"
    assert response.json()["marks"] == []
    assert response.json()["monitoring"] == []


@pytest.mark.asyncio
async def test_create_and_list_students(client: AsyncClient, auth_headers, school) -> None:
    body = {"id": " S3 ", "fullName": "Bekzod Aliev", "gradeId": school.grade5_id, "studyYearId": school.year_id}
    response = await client.post("/api/students", json=body, headers=auth_headers)
    assert response.status_code == 201
    assert response.json()["id"] == "S3"
    assert response.json()["grade"]["name"] == "Grade 5"

    response = await client.post("/api/students", json={**body, "id": "S3"}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Student with this ID already exists"

    response = await client.post("/api/students", json={**body, "id": "S4", "gradeId": 9999}, headers=auth_headers)
    assert response.status_code == 400
    response = await client.post("/api/students", json={"id": "S5"}, headers=auth_headers)
    assert response.status_code == 400

    response = await client.get("/api/students", params={"gradeId": school.grade5_id}, headers=auth_headers)
    assert [s["id"] for s in response.json()] == ["S1", "S3"]
    response = await client.get("/api/students", params={"search": "s2"}, headers=auth_headers)
    assert [s["id"] for s in response.json()] == ["S2"]

    response = await client.get("/api/students/options", params={"limit": 1}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json() == [
        {
            "id": "S1",
            "fullName": "Aziz Karimov",
            "studyYearId": school.year_id,
            "grade": {"id": school.grade5_id, "name": "Grade 5"},
        }
    ]


@pytest.mark.asyncio
async def test_update_student_grade_three_states(client: AsyncClient, auth_headers, school) -> None:
    response = await client.put("/api/students/S1", json={"fullName": "  "}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["fullName"] == "Aziz Karimov"
    assert response.json()["gradeId"] == school.grade5_id

    response = await client.put("/api/students/S1", json={"gradeId": school.grade11_id}, headers=auth_headers)
    assert response.json()["gradeId"] == school.grade11_id

    response = await client.put("/api/students/S1", json={"gradeId": ""}, headers=auth_headers)
    assert response.json()["gradeId"] is None
    assert response.json()["grade"] is None

    response = await client.put("/api/students/S1", json={"gradeId": "abc"}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "gradeId must be a number"

    response = await client.put("/api/students/NOPE", json={"fullName": "X"}, headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_rename_student(client: AsyncClient, db_session: AsyncSession, auth_headers, school) -> None:
    response = await client.put("/api/students/S1", json={"id": "S2"}, headers=auth_headers)
    assert response.status_code == 400

    response = await client.put("/api/students/S1", json={"id": "S100"}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["id"] == "S100"
    ids = await db_session.execute(select(Student.id).order_by(Student.id))
    assert ids.scalars().all() == ["S100", "S2"]


@pytest.mark.asyncio
async def test_delete_student_with_results_requires_force(
    client: AsyncClient, db_session: AsyncSession, auth_headers, school
) -> None:
    await _seed_results(client, auth_headers, school)

    response = await client.delete("/api/students/S1", headers=auth_headers)
    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["code"] == "STUDENT_HAS_RESULTS"
    assert detail["details"] == {"marks": 2, "monitorings": 1}
    assert "force=true" in detail["hint"]

    response = await client.delete("/api/students/S1", params={"force": "true"}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json() == {"message": "Student deleted", "removed": {"marks": 2, "monitorings": 1}}

    assert (await db_session.execute(select(func.count()).select_from(Mark))).scalar_one() == 0
    assert (await db_session.execute(select(func.count()).select_from(Monitoring))).scalar_one() == 0
    remaining = await db_session.execute(select(Student.id))
    assert remaining.scalars().all() == ["S2"]

    # A student without results is deleted straight away
    response = await client.delete("/api/students/S2", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["removed"] == {"marks": 0, "monitorings": 0}

    response = await client.delete("/api/students/S2", headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_import_students(client: AsyncClient, db_session: AsyncSession, auth_headers, school) -> None:
    body = {
        "studyYearId": school.year_id,
        "gradeId": school.grade5_id,
        "entries": [
            {"id": "S10", "fullName": "New One"},
            {"id": 1001.0, "fullName": "Numeric Id", "gradeId": school.grade11_id},
            {"id": "S10", "fullName": "New One (fixed)"},
            {"id": "S1", "fullName": "Renamed"},
            {"id": "", "fullName": "No id"},
            {"id": "S11"},
        ],
    }
    response = await client.post("/api/students/import", json=body, headers=auth_headers)
    assert response.status_code == 200
    assert response.json() == {
        "message": "Students imported",
        "total": 3,
        "created": 2,
        "updated": 0,
        "skippedExisting": 1,
        "duplicatesMerged": 1,
        "invalid": 2,
    }
    rows = await db_session.execute(
        select(Student.id, Student.full_name, Student.grade_id).where(Student.id.in_(["S10", "1001", "S1"])).order_by(Student.id)
    )
    assert rows.all() == [
        ("1001", "Numeric Id", school.grade11_id),
        ("S1", "Aziz Karimov", school.grade5_id),
        ("S10", "New One (fixed)", school.grade5_id),
    ]

    response = await client.post(
        "/api/students/import", json={**body, "updateExisting": "yes", "gradeId": None}, headers=auth_headers
    )
    assert response.json()["updated"] == 3
    assert response.json()["created"] == 0
    renamed = await db_session.execute(select(Student.full_name, Student.grade_id).where(Student.id == "S1"))
    assert renamed.one() == ("Renamed", None)


@pytest.mark.asyncio
async def test_import_students_rejects_bad_batches(client: AsyncClient, auth_headers, school) -> None:
    entries = [{"id": "S10", "fullName": "New One"}]
    response = await client.post("/api/students/import", json={"entries": entries}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "studyYearId is required"

    response = await client.post(
        "/api/students/import",
        json={"studyYearId": school.year_id, "entries": [{"id": "S10", "fullName": "X", "gradeId": 9999}]},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Unknown grade ids: 9999"

    response = await client.post(
        "/api/students/import",
        json={"studyYearId": school.year_id, "entries": [{"id": ""}]},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"]["details"] == {"invalidCount": 1}
