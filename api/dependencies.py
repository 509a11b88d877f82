"""
FastAPI dependencies: service wiring and the acting user.

Services are built once per process on top of the shared Supabase client.
Tests replace them through `app.dependency_overrides`.

The acting user is resolved by the upstream authentication layer and passed
in the `X-Actor-Id`, `X-Actor-Name` and `X-Actor-Role` headers.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Header, HTTPException

from domain.activity import Actor
from domain.time import Clock, utc_now
from repositories.activity_log_repository import SupabaseActivityLogRepository
from repositories.auction_repository import SupabaseAuctionRepository
from repositories.client import get_supabase
from repositories.image_store import SupabaseImageStore
from services.auction_lifecycle import AuctionLifecycle
from services.auction_service import AuctionService
from services.email_service import email_sender_from_env
from services.notifications import NotificationDispatcher
from services.registration_service import RegistrationService
from services.statistics_service import StatisticsService

ADMIN_ROLES = frozenset({"admin", "superadmin", "system_admin", "editor"})


@lru_cache(maxsize=1)
def _lifecycle() -> AuctionLifecycle:
    return AuctionLifecycle(SupabaseAuctionRepository(get_supabase()))


@lru_cache(maxsize=1)
def _notifications() -> NotificationDispatcher:
    return NotificationDispatcher(
        activity_log=SupabaseActivityLogRepository(get_supabase()),
        email_sender=email_sender_from_env(),
    )


def get_clock() -> Clock:
    return utc_now


@lru_cache(maxsize=1)
def get_auction_service() -> AuctionService:
    return AuctionService(_lifecycle(), SupabaseImageStore(get_supabase()), _notifications())


@lru_cache(maxsize=1)
def get_registration_service() -> RegistrationService:
    return RegistrationService(_lifecycle(), _notifications())


@lru_cache(maxsize=1)
def get_statistics_service() -> StatisticsService:
    return StatisticsService(
        _lifecycle().repository,
        SupabaseActivityLogRepository(get_supabase()),
    )


def get_optional_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_name: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Optional[Actor]:
    if not x_actor_id or not x_actor_name or not x_actor_role:
        return None
    return Actor(id=x_actor_id, username=x_actor_name, role=x_actor_role)


def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_name: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Actor:
    actor = get_optional_actor(x_actor_id, x_actor_name, x_actor_role)
    if actor is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return actor


def is_admin(actor: Optional[Actor]) -> bool:
    return actor is not None and actor.role in ADMIN_ROLES


def get_admin_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_name: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Actor:
    actor = get_actor(x_actor_id, x_actor_name, x_actor_role)
    if not is_admin(actor):
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    return actor
