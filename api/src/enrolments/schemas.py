"""Pydantic schemas for token enrolment.

Request/Response models for:
- Redeeming a token on a course
- Instance info for the enrol form
- Creating and updating instances
"""

from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .gateway import EnrolByTokenResult, InstanceInfo
from .models import (
    EnrolmentInstance,
    ExpiryNotifyMode,
    InstanceStatus,
    UserEnrolment,
    WelcomeSendMode,
    timedelta_to_seconds,
)


# Request fields carried in seconds, mapped to timedelta instance fields
_SECONDS_FIELDS = {
    "enrol_period_seconds": "enrol_period",
    "inactivity_timeout_seconds": "inactivity_timeout",
    "expiry_threshold_seconds": "expiry_threshold",
}


def _to_instance_fields(values: dict[str, Any]) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for key, value in values.items():
        if key in _SECONDS_FIELDS:
            fields[_SECONDS_FIELDS[key]] = (
                timedelta(seconds=value) if value is not None else None
            )
        else:
            fields[key] = value
    return fields


# ==============================================================================
# Redemption
# ==============================================================================


class EnrolByTokenRequest(BaseModel):
    """Request to enrol the current user with a token."""

    token: str = Field(min_length=1, max_length=255, description="Token secret")
    instance_id: UUID | None = Field(
        default=None,
        description="Restrict redemption to one instance of the course",
    )

    @field_validator("token")
    @classmethod
    def strip_token(cls, v: str) -> str:
        return v.strip()


class EnrolWarningResponse(BaseModel):
    """One instance that rejected the token."""

    item: str = "instance"
    instance_id: UUID
    code: int
    message: str


class EnrolmentResponse(BaseModel):
    """A user enrolment."""

    model_config = ConfigDict(from_attributes=True)

    instance_id: UUID
    user_id: UUID
    course_id: UUID
    role: str
    status: str
    time_start: datetime
    time_end: datetime | None = None

    @classmethod
    def from_enrolment(cls, enrolment: UserEnrolment) -> "EnrolmentResponse":
        return cls(
            instance_id=enrolment.instance_id,
            user_id=enrolment.user_id,
            course_id=enrolment.course_id,
            role=enrolment.role,
            status=enrolment.status.value,
            time_start=enrolment.time_start,
            time_end=enrolment.time_end,
        )


class EnrolByTokenResponse(BaseModel):
    """Outcome of a redemption: success flag plus per-instance warnings."""

    status: bool
    warnings: list[EnrolWarningResponse] = Field(default_factory=list)
    enrolment: EnrolmentResponse | None = None

    @classmethod
    def from_result(cls, result: EnrolByTokenResult) -> "EnrolByTokenResponse":
        return cls(
            status=result.status,
            warnings=[EnrolWarningResponse(**w.to_dict()) for w in result.warnings],
            enrolment=EnrolmentResponse.from_enrolment(result.enrolment)
            if result.enrolment
            else None,
        )


class InstanceInfoResponse(BaseModel):
    """Public description of an instance for the enrol form."""

    id: UUID
    course_id: UUID
    type: str
    name: str
    status: str
    enrol_available: bool
    required_params: list[str] | None = None
    follow_up_operation: str | None = None
    message: str | None = None

    @classmethod
    def from_info(cls, info: InstanceInfo) -> "InstanceInfoResponse":
        return cls(
            id=info.id,
            course_id=info.course_id,
            type=info.type,
            name=info.name,
            status=info.status,
            enrol_available=info.enrol_available,
            required_params=info.required_params,
            follow_up_operation=info.follow_up_operation,
            message=info.message,
        )


# ==============================================================================
# Instance Management
# ==============================================================================


class CreateInstanceRequest(BaseModel):
    """Request to add the token method to a course.

    Omitted fields take the plugin defaults. Durations are in seconds.
    """

    course_id: UUID
    name: str | None = Field(default=None, max_length=255)
    status: InstanceStatus | None = None
    role: str | None = Field(default=None, max_length=50)
    enrol_start: datetime | None = None
    enrol_end: datetime | None = None
    enrol_period_seconds: int | None = None
    max_enrolled: int | None = None
    inactivity_timeout_seconds: int | None = None
    new_enrolments: bool | None = None
    cohort_id: UUID | None = None
    expiry_notify: ExpiryNotifyMode | None = None
    expiry_threshold_seconds: int | None = None
    welcome_message: str | None = None
    welcome_send_mode: WelcomeSendMode | None = None

    def to_fields(self) -> dict[str, Any]:
        return _to_instance_fields(self.model_dump(exclude={"course_id"}))


# Update fields that cannot be cleared
_NON_NULLABLE = frozenset(
    {
        "status",
        "role",
        "enrol_period_seconds",
        "max_enrolled",
        "inactivity_timeout_seconds",
        "new_enrolments",
        "expiry_notify",
        "expiry_threshold_seconds",
        "welcome_send_mode",
    }
)


class UpdateInstanceRequest(BaseModel):
    """Partial update of an instance.

    Only fields present in the request body are changed; an explicit null
    clears an optional field (dates, cohort, welcome text).
    """

    name: str | None = Field(default=None, max_length=255)
    status: InstanceStatus | None = None
    role: str | None = Field(default=None, max_length=50)
    enrol_start: datetime | None = None
    enrol_end: datetime | None = None
    enrol_period_seconds: int | None = None
    max_enrolled: int | None = None
    inactivity_timeout_seconds: int | None = None
    new_enrolments: bool | None = None
    cohort_id: UUID | None = None
    expiry_notify: ExpiryNotifyMode | None = None
    expiry_threshold_seconds: int | None = None
    welcome_message: str | None = None
    welcome_send_mode: WelcomeSendMode | None = None

    def to_changes(self) -> dict[str, Any]:
        values = {
            k: v
            for k, v in self.model_dump(exclude_unset=True).items()
            if v is not None or k not in _NON_NULLABLE
        }
        return _to_instance_fields(values)


class InstanceResponse(BaseModel):
    """A configured instance."""

    id: UUID
    course_id: UUID
    name: str
    status: str
    role: str
    enrol_start: datetime | None = None
    enrol_end: datetime | None = None
    enrol_period_seconds: int
    max_enrolled: int
    inactivity_timeout_seconds: int
    new_enrolments: bool
    cohort_id: UUID | None = None
    expiry_notify: str
    expiry_threshold_seconds: int
    welcome_message: str | None = None
    welcome_send_mode: str
    created_at: datetime
    updated_at: datetime | None = None

    @classmethod
    def from_instance(cls, instance: EnrolmentInstance) -> "InstanceResponse":
        return cls(
            id=instance.id,
            course_id=instance.course_id,
            name=instance.display_name,
            status=instance.status.value,
            role=instance.role,
            enrol_start=instance.enrol_start,
            enrol_end=instance.enrol_end,
            enrol_period_seconds=timedelta_to_seconds(instance.enrol_period),
            max_enrolled=instance.max_enrolled,
            inactivity_timeout_seconds=timedelta_to_seconds(
                instance.inactivity_timeout
            ),
            new_enrolments=instance.new_enrolments,
            cohort_id=instance.cohort_id,
            expiry_notify=instance.expiry_notify.value,
            expiry_threshold_seconds=timedelta_to_seconds(instance.expiry_threshold),
            welcome_message=instance.welcome_message,
            welcome_send_mode=instance.welcome_send_mode.value,
            created_at=instance.created_at,
            updated_at=instance.updated_at,
        )


class InstanceListResponse(BaseModel):
    items: list[InstanceResponse]
    total: int


# ==============================================================================
# Batch Jobs
# ==============================================================================


class JobRunResponse(BaseModel):
    """Outcome of a manually triggered batch job."""

    status: str
    instances_processed: int
    counts: dict[str, int] = Field(default_factory=dict)
    trace: list[str] = Field(default_factory=list)
