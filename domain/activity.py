"""
Domain: Activity log entries (audit trail) and the acting user.

Entries are appended as a best-effort side effect of every auction state
change; a failed append never affects the change itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from domain.time import require_utc_timestamp


class ActivityAction(str, Enum):
    AUCTION_CREATED = "auction_created"
    AUCTION_UPDATED = "auction_updated"
    AUCTION_DELETED = "auction_deleted"
    AUCTION_CANCELLED = "auction_cancelled"
    AUCTION_COMPLETED = "auction_completed"
    REGISTRATION_CREATED = "auction_registration_created"
    REGISTRATION_APPROVED = "auction_registration_approved"
    REGISTRATION_REJECTED = "auction_registration_rejected"
    REGISTRATIONS_EXPORTED = "auction_registrations_exported"


@dataclass(frozen=True, slots=True)
class Actor:
    """Authenticated user performing an operation, supplied by the auth layer."""

    id: str
    username: str
    role: str


# Used when a buyer registers without an authenticated session.
ANONYMOUS_BUYER_ROLE = "buyer"


@dataclass(frozen=True, slots=True)
class ActivityEntry:
    actor_id: Optional[str]
    actor_name: str
    actor_role: str
    action: ActivityAction
    resource: str
    timestamp: datetime
    resource_id: Optional[str] = None
    details: Mapping[str, Any] = field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    status: str = "success"
    severity: str = "info"

    def __post_init__(self) -> None:
        require_utc_timestamp("timestamp", self.timestamp)


__all__ = [
    "ANONYMOUS_BUYER_ROLE",
    "ActivityAction",
    "ActivityEntry",
    "Actor",
]
