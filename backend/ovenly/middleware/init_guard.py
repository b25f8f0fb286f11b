"""
Ovenly Backend: Initialization Guard Middleware
==================================================

What:  Holds every request until application initialization has finished.
Why:   In production the server accepts traffic before the database is
       connected and the routes are registered (serverless cold start).
When:  Installed by create_app() only outside development; in development
       the lifespan handler finishes initialization before serving.

Decision per request:
    READY        → pass through
    IN_PROGRESS  → await the shared task, then pass through
    FAILED       → 500 {"error": "Application initialization failed", "message": ...}
    NOT_STARTED  → 500 {"error": "Application initialization not started"}
"""

import asyncio
import logging
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from ovenly.core.app_init import AppInitializer, app_initializer

logger = logging.getLogger(__name__)


class InitGuardMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, initializer: Optional[AppInitializer] = None):
        super().__init__(app)
        self.initializer = initializer or app_initializer

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if self.initializer.is_initialized:
            return await call_next(request)

        if self.initializer.task is None:
            logger.error("Request %s %s before initialization started", request.method, request.url.path)
            return JSONResponse(
                status_code=500,
                content={"error": "Application initialization not started"},
            )

        try:
            await self.initializer.wait()
        except asyncio.CancelledError:
            # Only a cancelled init task is a failure; a cancelled request propagates
            if not self.initializer.task.cancelled():
                raise
            return self._failed("Application initialization was cancelled")
        except Exception as e:
            return self._failed(str(e))

        return await call_next(request)

    @staticmethod
    def _failed(message: str) -> JSONResponse:
        return JSONResponse(
            status_code=500,
            content={"error": "Application initialization failed", "message": message},
        )
