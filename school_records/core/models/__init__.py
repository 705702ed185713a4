from school_records.core.models.admin import Admin
from school_records.core.models.grade import Grade
from school_records.core.models.mark import Mark
from school_records.core.models.monitoring import Monitoring
from school_records.core.models.quarter import Quarter
from school_records.core.models.student import Student
from school_records.core.models.study_year import StudyYear
from school_records.core.models.subject import Subject

__all__ = [
    "Admin",
    "Grade",
    "Mark",
    "Monitoring",
    "Quarter",
    "Student",
    "StudyYear",
    "Subject",
]
