import logging
import traceback
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import IntegrityError
from studystack.core.config import Settings, get_settings
from studystack.core.logging import setup_logging
from studystack.core.request_id import RequestIdMiddleware
from studystack.core.response import err
from studystack.core.errors import AppError
from studystack.core.services import AppServices
from studystack.db.auto_migrate import run_migrations_safely
from studystack.api.routes import auth, files, resources, users

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION_MARKERS = ("unique", "duplicate")


def _field_errors(exc: RequestValidationError) -> list[dict]:
    out = []
    for e in exc.errors():
        loc = [str(p) for p in e.get("loc", ()) if p not in ("body", "query", "path", "header")]
        out.append({"field": ".".join(loc) or None, "message": e.get("msg")})
    return out


def create_app(settings: Settings | None = None, services: AppServices | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.services = services or AppServices.from_settings(settings)
        if settings.DB_AUTO_CREATE:
            run_migrations_safely(app.state.services.engine)
        logger.info("%s started (env=%s)", settings.APP_NAME, settings.ENVIRONMENT)
        try:
            yield
        finally:
            app.state.services.close()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(RequestIdMiddleware)

    origins = [x.strip() for x in settings.ALLOW_ORIGINS.split(",") if x.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["http://localhost:5173"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router)
    app.include_router(resources.router)
    app.include_router(users.router)
    app.include_router(files.router)

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return err(request, exc.code, exc.message, exc.status_code, exc.details or {})

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError):
        return err(request, "VALIDATION_ERROR", "Validation failed", 400, {"errors": _field_errors(exc)})

    @app.exception_handler(IntegrityError)
    async def integrity_handler(request: Request, exc: IntegrityError):
        logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
        if any(m in str(exc.orig).lower() for m in UNIQUE_VIOLATION_MARKERS):
            return err(request, "DUPLICATE_FIELD", "Duplicate field value entered", 400)
        return err(request, "INVALID_INPUT", "Invalid input data", 400)

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        details = {} if settings.is_production else {"traceback": traceback.format_exception(exc)}
        return err(request, "INTERNAL_ERROR", "Internal server error", 500, details)

    @app.get("/healthz")
    def healthz():
        return {"ok": True}

    return app
