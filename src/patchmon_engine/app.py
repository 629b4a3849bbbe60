"""FastAPI application factory for PatchMon-Engine."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from patchmon_engine.common.config import get_settings
from patchmon_engine.common.exceptions import PatchmonError
from patchmon_engine.common.logging import setup_logging
from patchmon_engine.common.ratelimit import limiter
from patchmon_engine.common.schemas import HealthResponse

logger = logging.getLogger("patchmon_engine.app")


def _field_errors(exc: RequestValidationError) -> list[dict]:
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "header")]
        errors.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return errors


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from patchmon_engine.auth.sessions import SessionCleanupScheduler
        from patchmon_engine.deps import (
            get_db,
            get_permission_service,
            get_session_manager,
            get_settings_service,
        )
        db = get_db()
        await db.init()
        await db.wait_until_available()
        await db.create_all()
        async with db.get_session() as session:
            await get_settings_service().get(session)
            await get_permission_service().ensure_default_roles(session)

        scheduler = SessionCleanupScheduler(
            get_session_manager(), db, settings.session_cleanup_interval_hours * 3600
        )
        scheduler.start()
        logger.info("PatchMon-Engine %s started (%s)", settings.api_version, settings.environment)
        yield
        # Shutdown
        await scheduler.stop()
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.state.limiter = limiter
    limiter.enabled = settings.rate_limit_enabled
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s -> %d (%.1fms)",
            request.method, request.url.path, response.status_code, elapsed_ms,
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round(elapsed_ms, 1),
            },
        )
        return response

    @app.exception_handler(PatchmonError)
    async def patchmon_error_handler(request: Request, exc: PatchmonError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "error": "Validation failed",
                "code": "VALIDATION_ERROR",
                "errors": _field_errors(exc),
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            return JSONResponse(status_code=404, content={"error": "Route not found"})
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        body = {"error": "Something went wrong!"}
        if settings.is_development:
            body["message"] = str(exc)
        return JSONResponse(status_code=500, content=body)

    @app.get("/health", response_model=HealthResponse)
    async def health():
        from patchmon_engine.deps import get_db

        connected = await get_db().ping()
        if not connected:
            return JSONResponse(
                status_code=503,
                content=HealthResponse(
                    status="unhealthy", version=settings.api_version, database="disconnected"
                ).model_dump(),
            )
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from patchmon_engine.auth.router import router as auth_router
    from patchmon_engine.auth.tfa_router import router as tfa_router
    from patchmon_engine.auth.permissions_router import router as permissions_router
    from patchmon_engine.hosts.router import router as hosts_router
    from patchmon_engine.hosts.groups_router import router as host_groups_router
    from patchmon_engine.packages.router import router as packages_router
    from patchmon_engine.repositories.router import router as repositories_router
    from patchmon_engine.enrollment.router import router as enrollment_router
    from patchmon_engine.server_settings.router import router as settings_router

    prefix = settings.api_prefix
    app.include_router(auth_router, prefix=prefix, tags=["auth"])
    app.include_router(tfa_router, prefix=prefix, tags=["tfa"])
    app.include_router(permissions_router, prefix=prefix, tags=["permissions"])
    app.include_router(hosts_router, prefix=prefix, tags=["hosts"])
    app.include_router(host_groups_router, prefix=prefix, tags=["host-groups"])
    app.include_router(packages_router, prefix=prefix, tags=["packages"])
    app.include_router(repositories_router, prefix=prefix, tags=["repositories"])
    app.include_router(enrollment_router, prefix=prefix, tags=["auto-enrollment"])
    app.include_router(settings_router, prefix=prefix, tags=["settings"])

    return app
