"""
Database connection and management for the extension guard service.

This module provides:
- MongoDB connection management with async support
- Database health checking
- Selection of the extension repository backend from settings
- Graceful shutdown and error handling
"""

import asyncio
import time
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from .exceptions import ErrorCode, raise_config_error, raise_database_error
from ..repositories.base import ExtensionRepository
from ..repositories.memory.extension_repository import InMemoryExtensionRepository
from ..repositories.mongodb.extension_repository import MongoExtensionRepository
from ..utils.logging import database_logger, get_logger, performance_context
from extension_guard.config.settings import Settings, get_settings

logger = get_logger(__name__)


class MongoDBManager:
    """
    MongoDB connection and lifecycle management.

    Owns the motor client shared by the MongoDB extension repository.
    """

    def __init__(self, settings: Optional[Settings] = None):
        """Initialize MongoDB manager."""
        self.settings = settings or get_settings()
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self.is_connected: bool = False
        self._connection_lock = asyncio.Lock()

    async def connect(self) -> None:
        """
        Establish connection to MongoDB.

        Raises:
            DatabaseError: If connection fails
        """
        if self.is_connected:
            return

        async with self._connection_lock:
            if self.is_connected:
                return

            db_settings = self.settings.database

            try:
                with performance_context("mongodb_connection"):
                    self.client = AsyncIOMotorClient(
                        db_settings.mongodb_url,
                        serverSelectionTimeoutMS=db_settings.server_selection_timeout_ms,
                        connectTimeoutMS=db_settings.server_selection_timeout_ms,
                        retryWrites=True,
                        retryReads=True
                    )
                    self.database = self.client[db_settings.mongodb_database]

                    # Test connection
                    await self.client.admin.command("ping")

                    self.is_connected = True

                    database_logger.connection_established(
                        database_type="mongodb",
                        database_name=db_settings.mongodb_database
                    )
                    logger.info(
                        "MongoDB connection established",
                        database=db_settings.mongodb_database,
                        uri=db_settings.mongodb_url.split("@")[-1]  # Hide credentials
                    )

            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                database_logger.connection_failed("mongodb", str(e))
                raise_database_error(
                    f"Failed to connect to MongoDB: {e}",
                    database_type="mongodb",
                    operation="connect",
                    error_code=ErrorCode.DATABASE_CONNECTION_ERROR
                )

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client is not None and self.is_connected:
            self.client.close()
            self.is_connected = False
            logger.info("MongoDB connection closed")

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform MongoDB health check.

        Returns:
            Health status information
        """
        if not self.is_connected or self.client is None:
            return {
                "status": "disconnected",
                "error": "Not connected to MongoDB"
            }

        try:
            start_time = time.time()
            await self.client.admin.command("ping")
            latency = (time.time() - start_time) * 1000

            return {
                "status": "healthy",
                "latency_ms": round(latency, 2)
            }
        except Exception as e:
            return {
                "status": "unhealthy",
                "error": str(e)
            }

    async def supports_transactions(self) -> bool:
        """
        Whether the connected deployment accepts multi-document transactions.

        Replica set members report ``setName`` and mongos reports
        ``msg: isdbgrid``; a standalone server reports neither.
        """
        if self.client is None:
            return False

        try:
            reply = await self.client.admin.command("hello")
        except PyMongoError as e:
            raise_database_error(
                f"MongoDB topology check failed: {e}",
                database_type="mongodb",
                operation="hello"
            )
        return "setName" in reply or reply.get("msg") == "isdbgrid"

    def get_database(self) -> AsyncIOMotorDatabase:
        """
        Get the MongoDB database instance.

        Raises:
            DatabaseError: If not connected
        """
        if self.database is None:
            raise_database_error(
                "MongoDB not connected",
                database_type="mongodb",
                operation="get_database",
                error_code=ErrorCode.DATABASE_CONNECTION_ERROR
            )
        return self.database


async def create_extension_repository(settings: Optional[Settings] = None) -> ExtensionRepository:
    """
    Build the extension repository selected by ``database.backend``.

    The MongoDB backend connects eagerly so that startup fails fast on
    an unreachable server.

    Raises:
        ConfigurationError: If the backend name is unknown, or transactions
            are enabled on a server that cannot run them
        DatabaseError: If the MongoDB connection fails
    """
    settings = settings or get_settings()
    backend = settings.database.backend.lower()

    if backend == "memory":
        logger.info("Using in-memory extension repository")
        return InMemoryExtensionRepository()

    if backend == "mongodb":
        manager = MongoDBManager(settings)
        await manager.connect()
        if settings.database.use_transactions and not await manager.supports_transactions():
            await manager.disconnect()
            raise_config_error(
                "MongoDB server does not support transactions; run a replica set "
                "or set DATABASE__USE_TRANSACTIONS=false",
                config_section="database",
                config_key="use_transactions",
                config_value=True
            )
        return MongoExtensionRepository(
            manager=manager,
            collection_name=settings.database.collection_name,
            use_transactions=settings.database.use_transactions
        )

    raise_config_error(
        f"Unknown storage backend: {settings.database.backend}",
        config_section="database",
        config_key="backend",
        config_value=settings.database.backend
    )
