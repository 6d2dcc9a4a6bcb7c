"""
FastAPI dependencies for dependency injection.

This module provides the process-wide key-value store handle and the
services built on it, injected into routes.
"""

from functools import lru_cache

from fastapi import Depends

from shortlink_app.config import settings
from shortlink_app.services.link_service import LinkService
from shortlink_app.store.factory import StoreBackend, StoreFactory
from shortlink_app.store.strategies import KeyValueStore


@lru_cache()
def get_store() -> KeyValueStore:
    """
    Get store instance (singleton).

    Factory gets config from settings internally.
    @lru_cache ensures this is called only once.

    Returns:
        KeyValueStore instance based on settings
    """
    backend = StoreBackend(settings.store_backend)
    return StoreFactory.create(backend)


def get_link_service(store: KeyValueStore = Depends(get_store)) -> LinkService:
    """
    Get LinkService with the store injected.

    Controllers depend on the service, the service depends on the store.
    Tests override get_store with an in-memory store.
    """
    return LinkService(store=store)
