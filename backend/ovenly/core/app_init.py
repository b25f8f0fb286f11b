"""
Ovenly Backend: Application Initialization
=============================================

What:  One-shot startup sequence {connect database, discover routes,
       register routes} and the state that gates requests on it.
Why:   Serverless platforms may deliver the first request while startup is
       still running; there is no "listen only after startup" ordering.
How:   start() schedules the sequence exactly once as an asyncio.Task.
       Every request that arrives meanwhile awaits the same task
       (single-flight), so concurrent arrivals never repeat the sequence.

State Machine:
    NOT_STARTED ──start()──▶ IN_PROGRESS ──ok──▶ READY (never reverts)
                                   │
                                   └──error──▶ FAILED (error re-raised to awaiters)
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

from fastapi import FastAPI

from ovenly.core.discovery import RouteDiscovery, route_discovery
from ovenly.core.router import RouteRegistry, router
from ovenly.database import DBConnection, db_connection

logger = logging.getLogger(__name__)


class InitPhase(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    READY = "ready"
    FAILED = "failed"


class AppInitializer:
    """
    Holds the process-wide initialization state.

    Collaborators are injectable so tests can count calls; defaults are the
    application singletons.
    """

    def __init__(
        self,
        connection: Optional[DBConnection] = None,
        registry: Optional[RouteRegistry] = None,
        discovery: Optional[RouteDiscovery] = None,
    ):
        self.connection = connection or db_connection
        self.registry = registry or router
        self.discovery = discovery or route_discovery
        self.is_initialized = False
        self.task: Optional[asyncio.Task] = None

    @property
    def phase(self) -> InitPhase:
        if self.is_initialized:
            return InitPhase.READY
        if self.task is None:
            return InitPhase.NOT_STARTED
        if self.task.done() and (self.task.cancelled() or self.task.exception() is not None):
            return InitPhase.FAILED
        return InitPhase.IN_PROGRESS

    async def initialize(self, app: FastAPI) -> None:
        """Connect, discover and register. Errors are logged and re-raised."""
        try:
            await self.connection.connect()
            await self.discovery.discover_and_import_routes()
            self.registry.scan(app)
        except Exception as e:
            logger.error("Application initialization failed: %s", e, exc_info=True)
            raise
        self.is_initialized = True
        logger.info("Application initialized")

    def start(self, app: FastAPI) -> asyncio.Task:
        """
        Begin initialization in the background (idempotent).

        Must be called from a running event loop. A failure is logged here
        and otherwise only surfaces to callers of wait().
        """
        if self.task is None:
            self.task = asyncio.get_running_loop().create_task(self.initialize(app))
            self.task.add_done_callback(self._on_done)
        return self.task

    async def wait(self) -> None:
        """
        Wait for the shared initialization task.

        Shielded: a cancelled request must not cancel startup for everyone.
        """
        if self.is_initialized:
            return
        if self.task is None:
            raise RuntimeError("Application initialization not started")
        await asyncio.shield(self.task)

    @staticmethod
    def _on_done(task: asyncio.Task) -> None:
        if task.cancelled():
            logger.error("Application initialization was cancelled")
            return
        # Retrieving the exception marks it handled for asyncio
        if task.exception() is not None:
            logger.error("Failed to initialize application; requests will receive 500")


# Singleton instance, shared by the lifespan handler and the init guard
app_initializer = AppInitializer()
