"""
Ovenly Backend: MongoDB Connection Management
================================================

What:  One shared Motor client and the database reference bound to it.
Why:   Route modules, services and the health check must all talk to the
       same connection pool; the connection is established lazily during
       application initialization, not at import.
How:   DBConnection.connect() reuses a live client (probed with an admin
       ping), replaces a dead one, or builds a new one from settings.

Connection Target:
    APP_ENV=production + DATABASE_URL  →  DATABASE_URL (credentials embedded)
    otherwise                          →  mongodb://DATABASE_HOST:DATABASE_PORT
                                          (+ DATABASE_USER / DATABASE_PASSWORD
                                           in development)

Binding Rule:
    A Database handle binds exactly one pymongo database; binding again
    raises. Every reconnect creates a fresh handle.
"""

import logging
import re
from typing import Any, Callable, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from ovenly.config import settings
from ovenly.exceptions import ConfigurationError, DatabaseError

logger = logging.getLogger(__name__)

ClientFactory = Callable[..., AsyncIOMotorClient]

_CREDENTIALS_RE = re.compile(r"//([^:/@]+):([^@]+)@")


# ── Connection Helpers ────────────────────────────────────────────────────

def build_connection_url() -> str:
    if not settings.is_development and settings.database_url:
        return settings.database_url
    if settings.database_host:
        return f"mongodb://{settings.database_host}:{settings.database_port}"
    return ""


def sanitize_url(url: str) -> str:
    """Mask credentials before a URL reaches the logs."""
    return _CREDENTIALS_RE.sub("//***:***@", url)


def validate_connection_url(url: str) -> None:
    if url:
        return
    if settings.is_development:
        message = (
            "Database connection URL is not set. "
            "Please set DATABASE_HOST and DATABASE_PORT environment variables."
        )
    else:
        message = (
            "Database connection URL is not set. "
            "Please set DATABASE_URL environment variable for production."
        )
    logger.error(message)
    raise ConfigurationError(message=message)


def get_connection_options() -> Dict[str, Any]:
    """
    Motor client options.

    Full connection strings carry their own credentials, so username and
    password are only passed separately for development host:port targets.
    Development also uses short timeouts for fast feedback.
    """
    options: Dict[str, Any] = {}
    if settings.is_development and settings.database_user and settings.database_password:
        options["username"] = settings.database_user
        options["password"] = settings.database_password

    if settings.is_development:
        options["serverSelectionTimeoutMS"] = settings.db_timeout_ms
        options["connectTimeoutMS"] = settings.db_timeout_ms
        options["socketTimeoutMS"] = settings.db_timeout_ms
    return options


async def is_connection_alive(client: AsyncIOMotorClient) -> bool:
    try:
        await client.admin.command("ping")
        return True
    except PyMongoError:
        return False


# ── Database Handle ───────────────────────────────────────────────────────

class Database:
    """Wrapper around one bound database; the only collection accessor."""

    def __init__(self) -> None:
        self._database: Optional[AsyncIOMotorDatabase] = None

    @property
    def is_bound(self) -> bool:
        return self._database is not None

    def bind(self, database: AsyncIOMotorDatabase) -> "Database":
        if self._database is not None:
            raise DatabaseError(message="Database already set")
        self._database = database
        return self

    def collection(self, name: str) -> AsyncIOMotorCollection:
        if self._database is None:
            raise DatabaseError(message="Database not set", context={"collection": name})
        return self._database[name]


class DBConnection:
    """
    Shared connection handle.

    Args:
        client_factory: Builds the Motor client (overridden in tests).
    """

    def __init__(self, client_factory: ClientFactory = AsyncIOMotorClient):
        self._client_factory = client_factory
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[Database] = None

    @property
    def is_connected(self) -> bool:
        return self.client is not None and self.database is not None

    async def connect(self) -> Database:
        """
        Return a live database handle, connecting if needed.

        Raises:
            ConfigurationError: No connection target configured
            DatabaseError:      Server unreachable or ping rejected
        """
        if self.is_connected and await is_connection_alive(self.client):
            logger.info("Database already connected")
            return self.database

        if self.client is not None:
            logger.warning("Database connection lost, reconnecting...")
            self._close_client()
            self._reset()

        url = build_connection_url()
        validate_connection_url(url)

        logger.info(
            "Connecting to database... [%s] %s",
            "dev" if settings.is_development else "prod",
            sanitize_url(url),
        )
        client = self._client_factory(url, **get_connection_options())
        try:
            await client.admin.command("ping")
        except (ServerSelectionTimeoutError, ConnectionFailure) as e:
            client.close()
            self._log_connection_help(url)
            raise DatabaseError(
                message="Failed to connect to MongoDB server",
                context={"url": sanitize_url(url), "error": str(e)},
            ) from e
        except PyMongoError as e:
            client.close()
            raise DatabaseError(
                message="Database rejected the connection",
                context={"url": sanitize_url(url), "error": str(e)},
            ) from e

        self.client = client
        self.database = Database().bind(client[settings.database_name])
        logger.info("Database connected successfully (%s)", settings.database_name)

        if settings.is_development and not (settings.database_user and settings.database_password):
            logger.warning("You're not making a secure database connection!")

        return self.database

    async def disconnect(self) -> None:
        if self.client is None:
            logger.info("Database already disconnected")
            return
        self._close_client()
        self._reset()
        logger.info("Database disconnected successfully")

    def collection(self, name: str) -> AsyncIOMotorCollection:
        if self.database is None:
            raise DatabaseError(message="Database not connected", context={"collection": name})
        return self.database.collection(name)

    def _close_client(self) -> None:
        try:
            self.client.close()
        except PyMongoError as e:
            logger.debug("Ignoring error while closing dead client: %s", e)

    def _reset(self) -> None:
        self.client = None
        self.database = None

    @staticmethod
    def _log_connection_help(url: str) -> None:
        logger.error("Failed to connect to MongoDB server")
        logger.error("Connection URL: %s", sanitize_url(url))
        logger.error("Possible solutions:")
        logger.error("1. Make sure MongoDB is running locally (mongod)")
        logger.error("2. If using MongoDB Atlas (cloud), set DATABASE_URL in your .env file")
        logger.error("3. Verify DATABASE_HOST and DATABASE_PORT in your .env file")
        logger.error("4. Check your firewall settings")


# Singleton instance, imported by services and the initializer
db_connection = DBConnection()


async def disconnect_from_db() -> None:
    await db_connection.disconnect()
