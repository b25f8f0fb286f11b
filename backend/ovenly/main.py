"""
Ovenly Backend: FastAPI Application Factory
==============================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes middleware, exception handlers, static upload serving and
       lifecycle management in one place.
How:   create_app() returns a configured FastAPI instance; feature routes are
       not listed here. They are discovered and registered by the
       application initializer (ovenly.core.app_init).
Who:   uvicorn (uvicorn ovenly.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                       FastAPI App                        │
    │                                                          │
    │  Middleware Chain:                                       │
    │  ┌────────────┐ ┌──────────────┐ ┌──────┐ ┌──────────┐   │
    │  │ Request ID │→│ Init Guard * │→│ GZip │→│   CORS   │   │
    │  └────────────┘ └──────────────┘ └──────┘ └──────────┘   │
    │                 * production only                        │
    │                                                          │
    │  Routes (registered by the initializer):                 │
    │  ┌──────────┐ ┌──────────────────┐ ┌──────────────────┐  │
    │  │ GET /api │ │ POST|DELETE      │ │ GET|POST         │  │
    │  │ /health  │ │ /api/uploads     │ │ /api/users       │  │
    │  └──────────┘ └──────────────────┘ └──────────────────┘  │
    │  Static: GET /uploads/<filename>                         │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Development:  await initialization before serving; a failure stops
                  the process.
    Production:   start initialization in the background and serve at
                  once; the init guard holds requests until it is done.
    Shutdown:     disconnect from the database.
"""

import asyncio
import logging
import sys
import traceback
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import aiofiles.os
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import FileResponse, JSONResponse

from ovenly import __version__
from ovenly.config import settings
from ovenly.core.app_init import app_initializer
from ovenly.database import disconnect_from_db
from ovenly.exceptions import (
    DatabaseError,
    FileStorageError,
    NotFoundError,
    OvenlyError,
    ValidationError,
)
from ovenly.middleware.init_guard import InitGuardMiddleware
from ovenly.middleware.request_id import RequestIDMiddleware, request_id_var
from ovenly.shared.paths import (
    UPLOADS_FIELDNAME,
    get_allowed_uploads_path,
    is_path_within_uploads,
)

logger = logging.getLogger(__name__)

# Time given to log handlers to flush before a failed startup exits
STARTUP_FAILURE_FLUSH_SECONDS = 0.1


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger once for the whole application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Route completion lines come from the "ovenly.access" logger, so
    uvicorn's own access log is turned down to avoid duplicates.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("%s backend starting up (%s)...", settings.app_name, settings.app_env)
    logger.info("Uploads directory: %s", get_allowed_uploads_path())

    if settings.is_development:
        try:
            await app_initializer.initialize(app)
        except Exception:
            logger.error("Failed to initialize application, shutting down")
            await asyncio.sleep(STARTUP_FAILURE_FLUSH_SECONDS)
            raise
        logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    else:
        app_initializer.start(app)
        logger.info("Serving while initialization runs in the background")
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("%s backend shutting down...", settings.app_name)
    await disconnect_from_db()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(exc: OvenlyError, message: str, details: bool) -> dict:
    body = {"error": exc.error, "message": message, "request_id": request_id_var.get("")}
    if details:
        body["details"] = exc.context
    return body


def _with_stack(body: dict, exc: BaseException) -> dict:
    if settings.is_development:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the exception hierarchy onto JSON error responses.

    Body: {"error", "message", "details"?, "request_id"} plus "stack" for
    server errors in development. Client errors (4xx) include the context
    as details; server errors never expose it.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc, exc.message, True))

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        # Connection strings and driver errors stay in the log
        logger.error("[%s] Database error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        body = _error_body(exc, "An internal error occurred. Please try again later.", False)
        return JSONResponse(status_code=500, content=_with_stack(body, exc))

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        logger.error("[%s] File storage error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return JSONResponse(status_code=500, content=_with_stack(_error_body(exc, exc.message, False), exc))

    @app.exception_handler(OvenlyError)
    async def handle_ovenly_error(request: Request, exc: OvenlyError):
        rid = request_id_var.get("")
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
            body = _with_stack(_error_body(exc, exc.message, False), exc)
        else:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)
            body = _error_body(exc, exc.message, True)
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, exc, exc_info=True)
        body = {
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again or contact support.",
            "request_id": rid,
        }
        return JSONResponse(status_code=500, content=_with_stack(body, exc))


# ══════════════════════════════════════════════════════════════════════════
# Static Uploads
# ══════════════════════════════════════════════════════════════════════════

def register_static_uploads(app: FastAPI) -> None:
    """
    Serve stored uploads at /uploads/<filename>.

    The uploads root is resolved per request (it is created on the first
    upload and removed with the last file), so this is a route rather
    than a StaticFiles mount bound to a directory at startup.
    Dotfiles and anything outside the flat uploads root are 404.
    """
    cache_control = "public, max-age=0" if settings.is_development else "public, max-age=31536000"

    @app.get(f"/{UPLOADS_FIELDNAME}/{{filename}}", include_in_schema=False)
    async def serve_upload(filename: str):
        uploads_root = get_allowed_uploads_path()
        if filename.startswith(".") or not is_path_within_uploads(uploads_root / filename):
            raise NotFoundError(resource="file", resource_id=filename)

        path = (uploads_root / filename).resolve()
        if path.parent != uploads_root or not await aiofiles.os.path.isfile(path):
            raise NotFoundError(resource="file", resource_id=filename)
        return FileResponse(path, headers={"Cache-Control": cache_control})


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Routes are attached later by the initializer (router.scan(app)), so a
    freshly created app only serves static uploads until then.
    """
    app = FastAPI(
        title=f"{settings.app_name} API",
        description="Multi-tenant REST backend with content-addressed file uploads.",
        version=__version__,
        lifespan=lifespan,
    )

    # Middleware executes in reverse order of addition
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    if not settings.is_development:
        app.add_middleware(InitGuardMiddleware, initializer=app_initializer)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)
    register_static_uploads(app)

    return app


# uvicorn expects `ovenly.main:app` to be importable
app = create_app()
