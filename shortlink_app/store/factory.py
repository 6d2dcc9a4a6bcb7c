"""
Factory for creating key-value store instances.
Simple, clean factory with singleton caching.
"""

import logging
from enum import Enum

from .strategies import (
    KeyValueStore,
    InMemoryKeyValueStore,
    SQLAlchemyKeyValueStore,
    RedisKeyValueStore,
)
from shortlink_app.config import settings
from shortlink_app.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


class StoreBackend(Enum):
    """Available key-value store backends"""
    SQLALCHEMY = "sqlalchemy"
    REDIS = "redis"
    MEMORY = "memory"


class StoreFactory:
    """
    Simple factory for creating the process-wide store handle.

    Uses Singleton Pattern - creates instance once, reuses it.
    Gets configuration from settings (not passed as parameters).
    There is no fallback backend: a store that cannot be built is fatal.
    """

    _instance: KeyValueStore = None  # Single cached instance

    @classmethod
    def create(cls, backend: StoreBackend) -> KeyValueStore:
        """
        Create or return cached store instance.

        Args:
            backend: Type of store backend (from enum)

        Returns:
            Singleton store instance

        Raises:
            StoreUnavailableError: If the backend cannot be initialized
        """
        # Return cached instance if exists
        if cls._instance is not None:
            return cls._instance

        if backend == StoreBackend.SQLALCHEMY:
            cls._instance = SQLAlchemyKeyValueStore(settings.database_url)

        elif backend == StoreBackend.REDIS:
            import redis.asyncio as redis

            try:
                redis_client = redis.from_url(
                    settings.redis_url,
                    decode_responses=True,
                    socket_connect_timeout=2,
                    socket_timeout=5,
                )
            except ValueError as e:
                raise StoreUnavailableError(f"Invalid Redis URL: {e}") from e
            cls._instance = RedisKeyValueStore(redis_client)

        elif backend == StoreBackend.MEMORY:
            cls._instance = InMemoryKeyValueStore()

        else:
            raise ValueError(f"Unknown store backend: {backend}")

        logger.info("Key-value store created (backend=%s)", backend.value)
        return cls._instance

    @classmethod
    def clear_instance(cls):
        """Clear cached instance (for testing)"""
        cls._instance = None
