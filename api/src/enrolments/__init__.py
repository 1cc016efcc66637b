"""Token enrolment instances, user enrolments and role assignments."""

from .models import (
    ENROLMENTS_TABLES_CQL,
    EnrolmentInstance,
    EnrolmentStatus,
    ExpiryNotifyMode,
    InstanceStatus,
    RoleAssignment,
    UserEnrolment,
    WelcomeSendMode,
)


__all__ = [
    "ENROLMENTS_TABLES_CQL",
    "EnrolmentInstance",
    "EnrolmentStatus",
    "ExpiryNotifyMode",
    "InstanceStatus",
    "RoleAssignment",
    "UserEnrolment",
    "WelcomeSendMode",
]
