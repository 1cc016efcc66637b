"""Course records referenced by token enrolment instances."""

from .models import COURSES_TABLES_CQL, Course
from .service import CourseService


__all__ = [
    "COURSES_TABLES_CQL",
    "Course",
    "CourseService",
]
