"""FastAPI router for token enrolment.

Endpoints:
- POST /v1/enrol-token/courses/{course_id}/enrol (Authenticated) - Redeem a token
- GET /v1/enrol-token/instances/{id}/info (Authenticated) - Enrol form info
- DELETE /v1/enrol-token/instances/{id}/enrolment (Authenticated) - Self-unenrol
- POST /v1/enrol-token/instances (Course config) - Add instance
- GET /v1/enrol-token/courses/{course_id}/instances (Course config) - List
- GET/PATCH /v1/enrol-token/instances/{id} (Course config) - Read/update
- POST /v1/enrol-token/admin/reconcile (Admin) - Run reconciliation now
- POST /v1/enrol-token/admin/notify-expiry (Admin) - Run expiry notifier now
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from src.auth.dependencies import AdminUser
from src.auth.permissions import Capability
from src.core.exceptions import NotFoundError

from .dependencies import (
    CapabilityCheckerDep,
    CourseServiceDep,
    EnrolmentGatewayDep,
    EnrolmentServiceDep,
    EnrollingUser,
    ExpiryNotifierDep,
    RateLimitRedeem,
    ReconciliationEngineDep,
    require_course_capability,
    require_instance_capability,
)
from .schemas import (
    CreateInstanceRequest,
    EnrolByTokenRequest,
    EnrolByTokenResponse,
    InstanceInfoResponse,
    InstanceListResponse,
    InstanceResponse,
    JobRunResponse,
    UpdateInstanceRequest,
)


router = APIRouter(
    prefix="/v1/enrol-token",
    tags=["enrol-token"],
)


# ==============================================================================
# Self-service
# ==============================================================================


@router.post(
    "/courses/{course_id}/enrol",
    response_model=EnrolByTokenResponse,
    summary="Enrol with a token",
    description=(
        "Redeem a token on a course. Each enabled instance is tried in turn; "
        "instances that reject the token are reported as warnings."
    ),
)
async def enrol_with_token(
    course_id: UUID,
    request: EnrolByTokenRequest,
    _rate_limit: RateLimitRedeem,
    user: EnrollingUser,
    gateway: EnrolmentGatewayDep,
) -> EnrolByTokenResponse:
    result = await gateway.enrol_by_token(
        course_id, request.token, user, instance_id=request.instance_id
    )
    return EnrolByTokenResponse.from_result(result)


@router.get(
    "/instances/{instance_id}/info",
    response_model=InstanceInfoResponse,
    summary="Get instance info",
    description="Describe an instance and whether the caller could enrol with a token now.",
)
async def get_instance_info(
    instance_id: UUID,
    user: EnrollingUser,
    gateway: EnrolmentGatewayDep,
) -> InstanceInfoResponse:
    info = await gateway.get_instance_info(instance_id, user)
    return InstanceInfoResponse.from_info(info)


@router.delete(
    "/instances/{instance_id}/enrolment",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Unenrol myself",
)
async def unenrol_self(
    instance_id: UUID,
    user: EnrollingUser,
    gateway: EnrolmentGatewayDep,
) -> None:
    await gateway.unenrol_self(instance_id, user)


# ==============================================================================
# Instance Management
# ==============================================================================


@router.post(
    "/instances",
    response_model=InstanceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add token enrolment to a course",
    description="Create an instance. Omitted settings take the plugin defaults.",
)
async def create_instance(
    request: CreateInstanceRequest,
    user: EnrollingUser,
    enrolments: EnrolmentServiceDep,
    courses: CourseServiceDep,
    checker: CapabilityCheckerDep,
) -> InstanceResponse:
    if await courses.get_course(request.course_id) is None:
        raise NotFoundError("Course not found", code="course_not_found")
    await require_course_capability(user, request.course_id, Capability.CONFIG, checker)

    instance = await enrolments.create_instance(request.course_id, **request.to_fields())
    return InstanceResponse.from_instance(instance)


@router.get(
    "/courses/{course_id}/instances",
    response_model=InstanceListResponse,
    summary="List course instances",
)
async def list_instances(
    course_id: UUID,
    user: EnrollingUser,
    enrolments: EnrolmentServiceDep,
    checker: CapabilityCheckerDep,
) -> InstanceListResponse:
    await require_course_capability(user, course_id, Capability.CONFIG, checker)

    instances = await enrolments.list_instances(course_id)
    return InstanceListResponse(
        items=[InstanceResponse.from_instance(i) for i in instances],
        total=len(instances),
    )


@router.get(
    "/instances/{instance_id}",
    response_model=InstanceResponse,
    summary="Get instance",
)
async def get_instance(
    instance_id: UUID,
    user: EnrollingUser,
    enrolments: EnrolmentServiceDep,
    checker: CapabilityCheckerDep,
) -> InstanceResponse:
    instance = await require_instance_capability(
        instance_id, user, Capability.CONFIG, enrolments, checker
    )
    return InstanceResponse.from_instance(instance)


@router.patch(
    "/instances/{instance_id}",
    response_model=InstanceResponse,
    summary="Update instance",
    description="Change instance settings. Only fields present in the body are updated.",
)
async def update_instance(
    instance_id: UUID,
    request: UpdateInstanceRequest,
    user: EnrollingUser,
    enrolments: EnrolmentServiceDep,
    checker: CapabilityCheckerDep,
) -> InstanceResponse:
    await require_instance_capability(
        instance_id, user, Capability.CONFIG, enrolments, checker
    )
    instance = await enrolments.update_instance(instance_id, **request.to_changes())
    return InstanceResponse.from_instance(instance)


# ==============================================================================
# Batch Jobs (Admin)
# ==============================================================================


@router.post(
    "/admin/reconcile",
    response_model=JobRunResponse,
    summary="Run reconciliation",
    description="Apply inactivity and expiry rules now, optionally for one course.",
)
async def run_reconciliation(
    _admin: AdminUser,
    engine: ReconciliationEngineDep,
    course_id: UUID | None = Query(default=None),
) -> JobRunResponse:
    report = await engine.run(course_id=course_id)
    return JobRunResponse(
        status=report.status.value,
        instances_processed=report.instances_processed,
        counts={
            "unenrolled": report.unenrolled,
            "suspended": report.suspended,
            "failures": report.failures,
        },
        trace=report.trace,
    )


@router.post(
    "/admin/notify-expiry",
    response_model=JobRunResponse,
    summary="Run expiry notifier",
    description="Send expiry notifications now. Runs at most once per day.",
)
async def run_expiry_notifier(
    _admin: AdminUser,
    notifier: ExpiryNotifierDep,
) -> JobRunResponse:
    report = await notifier.run()
    return JobRunResponse(
        status=report.status.value,
        instances_processed=report.instances_processed,
        counts={
            "user_messages": report.user_messages,
            "summary_messages": report.summary_messages,
            "failures": report.failures,
        },
        trace=report.trace,
    )
