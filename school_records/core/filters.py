from typing import Any, List, Optional

from sqlalchemy import or_

from school_records.core.models import Student


def student_conditions(
    search: Optional[str] = None,
    grade_id: Optional[int] = None,
    study_year_id: Optional[int] = None,
) -> List[Any]:
    """WHERE clauses on Student shared by the students, marks and monitoring listings."""
    conditions: List[Any] = []
    if study_year_id is not None:
        conditions.append(Student.study_year_id == study_year_id)
    if grade_id is not None:
        conditions.append(Student.grade_id == grade_id)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        conditions.append(or_(Student.full_name.ilike(pattern), Student.id.ilike(pattern)))
    return conditions
