"""
JobSafe API - AI replaceability scoring with paid premium reports

Main FastAPI application entry point.
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import redis.asyncio as redis
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import analyze, auth, billing, premium, webhooks
from app.core.cache import cache_ping, check_rate_limit, close_redis, create_redis
from app.core.config import Settings, get_settings
from app.core.database import Database
from app.core.locks import GenerationLocks
from app.core.posthog import Analytics
from app.services.errors import ServiceError
from app.services.llm_utils import LLMClient

# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)
logger = structlog.get_logger()

RATE_LIMIT_EXEMPT = {"/", "/docs", "/redoc", "/openapi.json", "/v1/health"}


def error_response(status_code: int, message: str, headers: Optional[dict] = None) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
        headers=headers,
    )


def client_ip(request: Request) -> str:
    # Check X-Forwarded-For for requests behind proxy/load balancer
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def validation_message(exc: RequestValidationError) -> str:
    """First validation problem as '<field> required' or '<field>: <reason>'."""
    errors = exc.errors()
    if not errors:
        return "Invalid request."
    first = errors[0]
    if first.get("type") == "json_invalid":
        return "Request body must be valid JSON."
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(loc) or "body"
    if first.get("type") == "missing":
        return f"{field} required"
    return f"{field}: {first.get('msg', 'invalid value')}"


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    llm: Optional[LLMClient] = None,
    redis_client: Optional[redis.Redis] = None,
    analytics: Optional[Analytics] = None,
) -> FastAPI:
    """
    Build the application.

    Anything not passed in is built from settings during startup and torn
    down on shutdown. Injected resources are owned by the caller.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        # Startup
        logger.info(
            "Starting JobSafe API",
            version=settings.api_version,
            analytics=app.state.analytics.enabled,
        )
        owned = []
        if app.state.database is None:
            app.state.database = Database(settings.database_url)
            owned.append("database")
        if app.state.llm is None:
            app.state.llm = LLMClient(settings.anthropic_api_key, settings.anthropic_model)
            owned.append("llm")
        if app.state.redis is None and settings.has_redis:
            app.state.redis = create_redis(settings.redis_url)
            app.state.generation_locks = GenerationLocks(
                app.state.redis, lock_timeout=settings.generation_lock_timeout_seconds
            )
            owned.append("redis")
        yield
        # Shutdown
        logger.info("Shutting down JobSafe API")
        if "redis" in owned:
            await close_redis(app.state.redis)
        if "llm" in owned:
            await app.state.llm.close()
        if "database" in owned:
            await app.state.database.dispose()
        app.state.analytics.shutdown()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description=settings.api_description,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
    )

    app.state.settings = settings
    app.state.database = database
    app.state.llm = llm
    app.state.redis = redis_client
    app.state.analytics = analytics or Analytics.from_settings(settings)
    app.state.generation_locks = GenerationLocks(
        redis_client, lock_timeout=settings.generation_lock_timeout_seconds
    )

    # Add middleware
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.allowed_origins.split(",") if origin.strip()],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Request logging middleware
    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Log all requests with timing."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        start = time.perf_counter()

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "request",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        response.headers["X-Request-ID"] = request_id
        return response

    # Rate limiting middleware
    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        """Apply rate limiting based on client IP."""
        path = request.url.path
        # Webhooks are provider retries; limiting them only delays reconciliation
        if path in RATE_LIMIT_EXEMPT or path.startswith("/v1/webhooks/"):
            return await call_next(request)

        ip = client_ip(request)
        allowed, remaining, reset = await check_rate_limit(
            request.app.state.redis,
            ip,
            limit=settings.rate_limit_requests,
            window=settings.rate_limit_window,
        )

        if not allowed:
            logger.warning("rate_limit_exceeded", client_ip=ip, path=path)
            return error_response(
                429,
                f"Rate limit exceeded. Try again in {reset} seconds.",
                headers={
                    "X-RateLimit-Limit": str(settings.rate_limit_requests),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(reset),
                    "Retry-After": str(reset),
                },
            )

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(settings.rate_limit_requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(reset)
        return response

    app.include_router(auth.router, prefix="/v1")
    app.include_router(analyze.router, prefix="/v1")
    app.include_router(billing.router, prefix="/v1")
    app.include_router(premium.router, prefix="/v1")
    app.include_router(webhooks.router, prefix="/v1")

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "name": "JobSafe API",
            "version": settings.api_version,
            "health": "/v1/health",
        }

    @app.get("/v1/health", tags=["System"])
    async def health(request: Request):
        """Liveness plus a best-effort view of optional dependencies."""
        _, redis_status = await cache_ping(request.app.state.redis)
        return {
            "status": "ok",
            "version": settings.api_version,
            "llm": bool(request.app.state.llm and request.app.state.llm.available),
            "redis": redis_status,
            "analytics": request.app.state.analytics.enabled,
        }

    # Error handlers
    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed."
        return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return error_response(400, validation_message(exc))

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error("service_error", path=request.url.path, error=exc.message)
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception):
        logger.exception("internal_error", path=request.url.path, error=str(exc))
        return error_response(500, "Internal server error")

    return app


app = create_app()
