"""General endpoints: API banner and health check."""

from pymongo.errors import PyMongoError

from ovenly.config import settings
from ovenly.core.http import HttpContext
from ovenly.database import db_connection


def index(http: HttpContext):
    return {"message": f"{settings.app_name} backend API"}


async def health_check(http: HttpContext):
    """
    Liveness plus database status.

    Always 200 while the process can answer; "database" reports whether the
    shared client still responds to a ping.
    """
    database = "disconnected"
    if db_connection.client is not None:
        try:
            await db_connection.client.admin.command("ping")
            database = "connected"
        except PyMongoError:
            database = "unreachable"

    return {
        "status": "ok",
        "message": f"{settings.app_name} backend API is running",
        "environment": settings.app_env,
        "database": database,
    }
