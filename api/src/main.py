"""Token Enrolment API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.activity.service import ActivityService
from src.auth.service import UserService
from src.cohorts.service import CohortService
from src.config import get_settings
from src.core.context import get_request_id
from src.core.database import init_async_cassandra, shutdown_async_cassandra
from src.core.exceptions import TokenEnrolError
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware
from src.core.redis import init_redis, shutdown_redis
from src.courses.service import CourseService
from src.email.service import EmailService
from src.enrolments.availability import AvailabilityEvaluator
from src.enrolments.capabilities import RoleCapabilityChecker
from src.enrolments.contacts import ContactResolver
from src.enrolments.gateway import EnrolmentGateway
from src.enrolments.messenger import EmailMessenger
from src.enrolments.router import router as enrol_token_router
from src.enrolments.service import EnrolmentService
from src.health import router as health_router
from src.jobs.expiry_notifier import ExpiryNotifier
from src.jobs.reconciliation import ReconciliationEngine
from src.jobs.scheduler import JobScheduler
from src.tokens.issuer import TokenIssuer
from src.tokens.router import router as tokens_router
from src.tokens.service import TokenService
from src.tokens.store import TokenStore


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


# Application state for dependency injection
class AppState:
    """Application state container."""

    cassandra_session: Any = None
    user_service: UserService | None = None
    course_service: CourseService | None = None
    enrolment_service: EnrolmentService | None = None
    token_service: TokenService | None = None
    capability_checker: RoleCapabilityChecker | None = None
    enrolment_gateway: EnrolmentGateway | None = None
    reconciliation_engine: ReconciliationEngine | None = None
    expiry_notifier: ExpiryNotifier | None = None
    email_service: EmailService | None = None
    job_scheduler: JobScheduler | None = None


app_state = AppState()


def _state_getter(attr: str, name: str):
    def getter():
        service = getattr(app_state, attr)
        if service is None:
            msg = f"{name} not initialized"
            raise RuntimeError(msg)
        return service

    return getter


get_user_service = _state_getter("user_service", "UserService")
get_course_service = _state_getter("course_service", "CourseService")
get_enrolment_service = _state_getter("enrolment_service", "EnrolmentService")
get_token_service = _state_getter("token_service", "TokenService")
get_capability_checker = _state_getter("capability_checker", "CapabilityChecker")
get_enrolment_gateway = _state_getter("enrolment_gateway", "EnrolmentGateway")
get_reconciliation_engine = _state_getter(
    "reconciliation_engine", "ReconciliationEngine"
)
get_expiry_notifier = _state_getter("expiry_notifier", "ExpiryNotifier")


def build_services(session: Any, email_service: EmailService | None) -> None:
    """Wire every enrolment component onto app_state."""
    keyspace = settings.cassandra_keyspace

    users = UserService(session=session, keyspace=keyspace)
    courses = CourseService(session=session, keyspace=keyspace)
    cohorts = CohortService(session=session, keyspace=keyspace)
    activity = ActivityService(session=session, keyspace=keyspace)
    enrolments = EnrolmentService(session=session, keyspace=keyspace, settings=settings)
    store = TokenStore(session=session, keyspace=keyspace)

    capabilities = RoleCapabilityChecker(enrolments)
    contacts = ContactResolver(enrolments, users, capabilities, settings)
    messenger = EmailMessenger(email_service)

    app_state.user_service = users
    app_state.course_service = courses
    app_state.enrolment_service = enrolments
    app_state.capability_checker = capabilities
    app_state.token_service = TokenService(
        store, TokenIssuer(store), enrolments, settings
    )
    app_state.enrolment_gateway = EnrolmentGateway(
        enrolments=enrolments,
        tokens=store,
        availability=AvailabilityEvaluator(enrolments, cohorts, capabilities),
        courses=courses,
        capabilities=capabilities,
        contacts=contacts,
        messenger=messenger,
        settings=settings,
    )
    app_state.reconciliation_engine = ReconciliationEngine(
        enrolments, activity, settings
    )
    app_state.expiry_notifier = ExpiryNotifier(
        enrolments, users, courses, contacts, messenger, settings
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Initialize Redis (non-critical - app works without it)
    try:
        await init_redis()
        logger.info("redis_initialized")
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - redemption rate limiting disabled",
        )

    # Initialize Email Service (independent of database)
    if settings.email_enabled:
        try:
            app_state.email_service = EmailService(
                credentials_path=settings.email_credentials_path,
                sender_address=settings.email_sender_address,
                sender_name=settings.email_sender_name,
            )
            logger.info(
                "email_service_initialized",
                sender=settings.email_sender_address,
            )
        except Exception as e:
            logger.warning(
                "email_service_init_skipped",
                error=str(e),
                message="Running without email service",
            )

    # Initialize Cassandra (async)
    try:
        app_state.cassandra_session = await init_async_cassandra()
        logger.info("cassandra_initialized")

        build_services(app_state.cassandra_session, app_state.email_service)
        logger.info("enrolment_services_initialized")
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    if (
        settings.scheduler_enabled
        and app_state.reconciliation_engine
        and app_state.expiry_notifier
    ):
        app_state.job_scheduler = JobScheduler(
            app_state.reconciliation_engine, app_state.expiry_notifier, settings
        )
        app_state.job_scheduler.start()

    yield

    # Shutdown
    logger.info("shutting_down_application")
    if app_state.job_scheduler:
        app_state.job_scheduler.stop()
    await shutdown_redis()
    await shutdown_async_cassandra()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # SECURITY: Always set debug=False to prevent Starlette's ServerErrorMiddleware
    # from exposing stack traces in responses.
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Token-based course enrolment - API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        """Get request_id from request state or context."""
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    @app.exception_handler(TokenEnrolError)
    async def token_enrol_exception_handler(
        request: Request, exc: TokenEnrolError
    ) -> ORJSONResponse:
        """Map domain errors to their HTTP status with a stable error code."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "token_enrol_error",
            status_code=exc.status_code,
            code=exc.code,
            detail=exc.message,
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=exc.status_code,
            content={
                "error": True,
                "code": exc.code,
                "message": exc.message
                if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
                else "Service temporarily unavailable",
                "status_code": exc.status_code,
                "request_id": request_id,
            },
        )

    # Global exception handlers (security: never expose stack traces)
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=exc.status_code,
            content={
                "error": True,
                "message": str(exc.detail)
                if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
                else "Internal server error",
                "status_code": exc.status_code,
                "request_id": request_id,
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle validation errors with safe error messages."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "message": "Validation error",
                "status_code": 422,
                "request_id": request_id,
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler for unhandled exceptions.

        SECURITY: Never expose stack traces or internal error details to users.
        """
        request_id = _get_request_id_safe(request)

        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": 500,
                "request_id": request_id,
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(enrol_token_router)
    app.include_router(tokens_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "Token Enrolment API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


# Configure router dependencies before creating app
from src.enrolments.dependencies import set_service_getter  # noqa: E402
from src.tokens.dependencies import (  # noqa: E402
    set_service_getter as set_token_service_getter,
)


set_service_getter("EnrolmentGateway", get_enrolment_gateway)
set_service_getter("EnrolmentService", get_enrolment_service)
set_service_getter("UserService", get_user_service)
set_service_getter("CourseService", get_course_service)
set_service_getter("CapabilityChecker", get_capability_checker)
set_service_getter("ReconciliationEngine", get_reconciliation_engine)
set_service_getter("ExpiryNotifier", get_expiry_notifier)
set_token_service_getter(get_token_service)


app = create_app()
