"""Cohorts: named user groups used to restrict token enrolment."""

from .models import COHORTS_TABLES_CQL, Cohort


__all__ = [
    "COHORTS_TABLES_CQL",
    "Cohort",
]
