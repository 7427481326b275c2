"""
Shared FastAPI dependencies.

Routers import collaborators from here (DB session, read cache, invalidator,
notification dispatcher, fulfillment coordinator, pagination) so tests can
swap any of them through app.dependency_overrides.
"""

from __future__ import annotations

from typing import TypedDict

from fastapi import Depends, Query

from services.cache_service import CacheInvalidator, ReadCache, get_read_cache
from services.fulfillment_service import FulfillmentCoordinator, get_fulfillment_coordinator
from services.notification_service import NotificationDispatcher, get_notification_dispatcher


class Pagination(TypedDict):
    limit: int
    offset: int


def pagination_params(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=100_000),
) -> Pagination:
    return {"limit": limit, "offset": offset}


def get_cache() -> ReadCache:
    return get_read_cache()


def get_invalidator(cache: ReadCache = Depends(get_cache)) -> CacheInvalidator:
    return CacheInvalidator(cache)


def get_dispatcher() -> NotificationDispatcher:
    return get_notification_dispatcher()


def get_coordinator() -> FulfillmentCoordinator:
    return get_fulfillment_coordinator()
