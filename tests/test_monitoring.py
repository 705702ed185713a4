from datetime import date

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from school_records.core.models import Monitoring, Student, StudyYear, Subject


async def _entries(db_session: AsyncSession):
    result = await db_session.execute(
        select(Monitoring.student_id, Monitoring.month, Monitoring.score).order_by(Monitoring.id)
    )
    return result.all()


def _row(school, **overrides):
    return {
        "studentId": "S1",
        "subjectId": school.math_id,
        "studyYearId": school.year_id,
        "month": "2024-10",
        "score": 80,
        **overrides,
    }


@pytest.mark.asyncio
async def test_bulk_monitoring_months(client: AsyncClient, db_session: AsyncSession, auth_headers, school) -> None:
    entries = [
        _row(school),
        _row(school, month="2024-11-15", score=75),
        _row(school, month="Yanvar", score=90),
        _row(school, month="2025-06"),
        _row(school, month="2024-08-31"),
    ]
    response = await client.post("/api/monitoring/bulk", json={"entries": entries}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json() == {
        "updated": 3,
        "errors": [
            {"message": 'Row 4: month "2025-06" is outside the study year range'},
            {"message": 'Row 5: month "2024-08" is outside the study year range'},
        ],
    }
    assert await _entries(db_session) == [
        ("S1", "2024-10", 80.0),
        ("S1", "2024-11", 75.0),
        ("S1", "Yanvar", 90.0),
    ]


@pytest.mark.asyncio
async def test_bulk_monitoring_row_errors(
    client: AsyncClient, db_session: AsyncSession, auth_headers, school
) -> None:
    other = StudyYear(name="2025-2026", start_date=date(2025, 9, 1), end_date=date(2026, 5, 31))
    db_session.add(other)
    await db_session.commit()

    entries = [
        _row(school, studentId="  "),
        _row(school, month=""),
        _row(school, score=None),
        _row(school, studentId="NOPE"),
        _row(school, studentId="S2"),
        _row(school, studyYearId=9999),
        _row(school, studyYearId=other.id, month="2025-10"),
        _row(school, subjectId=9999),
    ]
    body = {"entries": entries, "gradeId": school.grade5_id}
    response = await client.post("/api/monitoring/bulk", json=body, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["updated"] == 0
    assert [e["message"] for e in response.json()["errors"]] == [
        "Row 1: studentId is required",
        "Row 2: subjectId, studyYearId, and month are required",
        "Row 3: score must be a number",
        'Row 4: student "NOPE" not found',
        'Row 5: student "S2" not in selected grade',
        "Row 6: study year 9999 not found",
        'Row 7: student "S1" is in another study year',
        "Row 8: subject 9999 not found",
    ]


@pytest.mark.asyncio
async def test_bulk_monitoring_resubmission_and_scope(
    client: AsyncClient, db_session: AsyncSession, auth_headers, school
) -> None:
    await client.post("/api/monitoring/bulk", json={"entries": [_row(school)]}, headers=auth_headers)
    response = await client.post(
        "/api/monitoring/bulk", json={"entries": [_row(school, score=95)]}, headers=auth_headers
    )
    assert response.json()["updated"] == 1
    assert await _entries(db_session) == [("S1", "2024-10", 95.0)]

    response = await client.post(
        "/api/monitoring/bulk", json={"entries": [_row(school)], "gradeId": "five"}, headers=auth_headers
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "gradeId must be a number"

    response = await client.post("/api/monitoring/bulk", json={"entries": "nope"}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Entries array is required"


@pytest.mark.asyncio
async def test_create_monitoring_upserts(client: AsyncClient, db_session: AsyncSession, auth_headers, school) -> None:
    response = await client.post("/api/monitoring", json=_row(school, month="2024-10-01"), headers=auth_headers)
    assert response.status_code == 201
    created = response.json()
    assert created["month"] == "2024-10"
    assert created["subject"]["name"] == "Math"
    assert created["studyYear"]["name"] == "2024-2025"

    response = await client.post("/api/monitoring", json=_row(school, score=60), headers=auth_headers)
    assert response.status_code == 201
    assert response.json()["id"] == created["id"]
    assert await _entries(db_session) == [("S1", "2024-10", 60.0)]


@pytest.mark.asyncio
async def test_create_monitoring_validation(client: AsyncClient, db_session: AsyncSession, auth_headers, school) -> None:
    cases = [
        (_row(school, month=" "), 400, "month and studentId are required"),
        (_row(school, subjectId="math"), 400, "subjectId and studyYearId are required"),
        (_row(school, score="80"), 400, "score must be a number"),
        (_row(school, studentId="NOPE"), 404, "Student not found"),
        (_row(school, studyYearId=9999), 400, "Student belongs to a different study year"),
        (_row(school, month="2025-07"), 400, "month is outside the selected study year range"),
    ]
    for body, status_code, detail in cases:
        response = await client.post("/api/monitoring", json=body, headers=auth_headers)
        assert response.status_code == status_code, body
        assert response.json()["detail"] == detail
    assert await _entries(db_session) == []


@pytest.mark.asyncio
async def test_update_monitoring(client: AsyncClient, auth_headers, school) -> None:
    created = (await client.post("/api/monitoring", json=_row(school), headers=auth_headers)).json()

    response = await client.put(f"/api/monitoring/{created['id']}", json={"month": ""}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "month must be a non-empty string"

    response = await client.put(f"/api/monitoring/{created['id']}", json={"month": "2025-09"}, headers=auth_headers)
    assert response.status_code == 400

    response = await client.put(
        f"/api/monitoring/{created['id']}", json={"month": "2025-03", "score": 99}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["month"] == "2025-03"
    assert response.json()["score"] == 99

    response = await client.put("/api/monitoring/9999", json={"score": 1}, headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_and_summary(client: AsyncClient, db_session: AsyncSession, auth_headers, school) -> None:
    physics = Subject(name="Physics")
    db_session.add(physics)
    await db_session.commit()

    entries = [
        _row(school, score=80),
        _row(school, month="2024-11", score=60),
        _row(school, studentId="S2", score=90),
        _row(school, subjectId=physics.id, score=70),
    ]
    await client.post("/api/monitoring/bulk", json={"entries": entries}, headers=auth_headers)

    response = await client.get("/api/monitoring", params={"month": "2024-10-05"}, headers=auth_headers)
    assert [m["score"] for m in response.json()] == [80, 90, 70]

    response = await client.get("/api/monitoring", params={"gradeId": school.grade11_id}, headers=auth_headers)
    assert [m["studentId"] for m in response.json()] == ["S2"]

    response = await client.get("/api/monitoring/summary", params={"search": "aziz"}, headers=auth_headers)
    assert response.status_code == 200
    summary = response.json()
    assert summary["totalEntries"] == 3
    assert summary["overallAverage"] == pytest.approx(70.0)
    assert summary["bySubject"] == [
        {"subjectId": school.math_id, "subjectName": "Math", "averageScore": 70.0, "entries": 2},
        {"subjectId": physics.id, "subjectName": "Physics", "averageScore": 70.0, "entries": 1},
    ]

    response = await client.get("/api/monitoring/summary", params={"studyYearId": 9999}, headers=auth_headers)
    assert response.json() == {"totalEntries": 0, "overallAverage": None, "bySubject": []}


@pytest.mark.asyncio
async def test_delete_monitoring(client: AsyncClient, auth_headers, school) -> None:
    created = (await client.post("/api/monitoring", json=_row(school), headers=auth_headers)).json()
    response = await client.delete(f"/api/monitoring/{created['id']}", headers=auth_headers)
    assert response.status_code == 200
    response = await client.get(f"/api/monitoring/{created['id']}", headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_bulk_monitoring_rejects_ids_outside_integer_range(
    client: AsyncClient, db_session: AsyncSession, auth_headers, school
) -> None:
    entries = [_row(school), _row(school, studyYearId=1e20), _row(school, subjectId=-(2**40))]
    response = await client.post("/api/monitoring/bulk", json={"entries": entries}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json() == {
        "updated": 1,
        "errors": [
            {"message": "Row 2: subjectId, studyYearId, and month are required"},
            {"message": "Row 3: subjectId, studyYearId, and month are required"},
        ],
    }
    assert await _entries(db_session) == [("S1", "2024-10", 80.0)]


@pytest.mark.asyncio
async def test_bulk_monitoring_keeps_long_legacy_labels(
    client: AsyncClient, db_session: AsyncSession, auth_headers, school
) -> None:
    label = "Oraliq nazorat " * 5
    response = await client.post(
        "/api/monitoring/bulk", json={"entries": [_row(school, month=label)]}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json() == {"updated": 1, "errors": []}
    assert await _entries(db_session) == [("S1", label.strip(), 80.0)]
    assert Monitoring.__table__.c.month.type.length is None
