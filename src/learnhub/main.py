"""LearnHub API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from learnhub.auth.router import router as auth_router
from learnhub.auth.service import UserDirectory
from learnhub.catalog.service import CatalogReader
from learnhub.certificates.router import router as certificates_router
from learnhub.certificates.service import CertificateIssuer
from learnhub.completion.service import CompletionEvaluator
from learnhub.completion.submissions import SubmissionStore
from learnhub.config import get_settings
from learnhub.config.settings import Settings
from learnhub.core.context import get_request_id
from learnhub.core.database import init_async_cassandra, shutdown_async_cassandra
from learnhub.core.engine import EngineContext
from learnhub.core.errors import EngineError, status_for_error
from learnhub.core.logging import configure_structlog, get_logger
from learnhub.core.middleware import RequestContextMiddleware
from learnhub.core.redis import init_redis, shutdown_redis
from learnhub.email.service import EmailService
from learnhub.enrollments.router import admin_router as enrollments_admin_router
from learnhub.enrollments.router import router as enrollments_router
from learnhub.enrollments.service import EnrollmentManager
from learnhub.enrollments.store import EnrollmentStore
from learnhub.health.router import router as health_router
from learnhub.notifications.router import router as notifications_router
from learnhub.notifications.service import NotificationGateway
from learnhub.progress.router import router as progress_router
from learnhub.progress.service import ProgressTracker
from learnhub.scholarships.router import router as scholarships_router
from learnhub.scholarships.service import ScholarshipResolver


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


def build_email_service(settings: Settings) -> EmailService | None:
    """Create the Gmail sender when enabled (independent of the database)."""
    if not settings.email_enabled:
        return None
    try:
        service = EmailService(
            credentials_path=settings.email_credentials_path,
            sender_address=settings.email_sender_address,
            sender_name=settings.email_sender_name,
            frontend_url=settings.frontend_url,
        )
    except Exception as e:
        logger.warning(
            "email_service_init_skipped",
            error=str(e),
            message="Running without email service",
        )
        return None
    logger.info("email_service_initialized", sender=settings.email_sender_address)
    return service


def wire_engine(app: FastAPI, ctx: EngineContext) -> None:
    """Build the engine services and expose them on app.state.

    Construction order follows the call direction:
    manager -> tracker -> evaluator -> issuer.
    """
    settings = ctx.settings
    catalog = CatalogReader(
        session=ctx.session,
        keyspace=ctx.keyspace,
        redis=ctx.redis,
        cache_ttl_seconds=settings.catalog_cache_ttl_seconds,
    )
    users = UserDirectory(session=ctx.session, keyspace=ctx.keyspace)
    store = EnrollmentStore(
        session=ctx.session,
        keyspace=ctx.keyspace,
        cas_max_attempts=settings.capacity_cas_max_attempts,
    )
    submissions = SubmissionStore(session=ctx.session, keyspace=ctx.keyspace)

    scholarships = ScholarshipResolver(ctx, catalog, users)
    certificates = CertificateIssuer(ctx, catalog, users, store, submissions)
    evaluator = CompletionEvaluator(
        ctx, catalog, store, submissions, users=users, certificates=certificates
    )
    tracker = ProgressTracker(ctx, catalog, store, evaluator=evaluator)
    manager = EnrollmentManager(ctx, store, catalog, users, scholarships, tracker)

    app.state.engine = ctx
    app.state.user_directory = users
    app.state.notification_gateway = ctx.notifications
    app.state.scholarship_resolver = scholarships
    app.state.certificate_issuer = certificates
    app.state.completion_evaluator = evaluator
    app.state.progress_tracker = tracker
    app.state.enrollment_manager = manager
    logger.info("engine_services_initialized")


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

    # Redis is non-critical: caches are advisory, push is best effort
    redis_client = None
    try:
        redis_client = await init_redis()
        logger.info("redis_initialized")
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - real-time notifications disabled",
        )

    email_service = build_email_service(settings)
    app.state.email_service = email_service

    try:
        session = await init_async_cassandra()
        logger.info("cassandra_initialized")

        ctx = EngineContext(
            session=session,
            keyspace=settings.cassandra_keyspace,
            settings=settings,
            redis=redis_client,
            notifications=NotificationGateway(
                session=session,
                keyspace=settings.cassandra_keyspace,
                redis=redis_client,
            ),
            email=email_service,
        )
        wire_engine(app, ctx)
    except Exception as e:
        # Routes answer 503 until the database is reachable
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    yield

    logger.info("shutting_down_application")
    await shutdown_redis()
    await shutdown_async_cassandra()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # SECURITY: debug=False keeps Starlette from exposing stack traces; the
    # handlers below log full details and return safe messages.
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="LearnHub - Enrollment and progress API",
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

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    @app.exception_handler(EngineError)
    async def engine_error_handler(request: Request, exc: EngineError) -> ORJSONResponse:
        """Render domain errors that escaped a router."""
        status_code = status_for_error(exc)
        logger.warning(
            "engine_error",
            code=exc.code,
            status_code=status_code,
            detail=exc.message,
            path=request.url.path,
            method=request.method,
        )

        content = {
            "error": True,
            "code": exc.code,
            "message": exc.message,
            "status_code": status_code,
            "request_id": _get_request_id_safe(request),
        }
        details = exc.details()
        if details:
            content["details"] = details
        return ORJSONResponse(status_code=status_code, content=content)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )

        content = {
            "error": True,
            "message": "Internal server error"
            if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR
            else str(exc.detail),
            "status_code": exc.status_code,
            "request_id": _get_request_id_safe(request),
        }
        # Structured detail from handle_engine_error: {code, message, details?}
        if isinstance(exc.detail, dict):
            content.update(exc.detail)
        return ORJSONResponse(
            status_code=exc.status_code,
            content=content,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle validation errors with safe error messages."""
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
                "code": "validation_error",
                "message": "Validation error",
                "status_code": 422,
                "request_id": _get_request_id_safe(request),
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
        """Catch-all handler: log everything, expose nothing."""
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
                "request_id": _get_request_id_safe(request),
            },
        )

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(enrollments_router)
    app.include_router(enrollments_admin_router)
    app.include_router(progress_router)
    app.include_router(scholarships_router)
    app.include_router(certificates_router)
    app.include_router(notifications_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        return {
            "message": "LearnHub API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()
