"""
Domain: Auction aggregate root.

An Auction is one scheduled livestock sale event. It owns two independent
buyer-tracking lists:
- registrations: formal, approval-gated Registration records (buyer_email unique)
- interested_buyers: lightweight expressions of interest (contact unique)

The two lists are never cross-checked; registering interest with a contact
equal to a registered buyer's email is allowed, and vice versa.

Invariants enforced here:
- title/description/location are non-empty (title <= 200, description <= 2000 chars)
- start_time/end_time match HH:MM (24-hour)
- registration_deadline, when present, is <= date
- registration_fee >= 0, views >= 0
- livestock quantity >= 1, starting_price >= 0

The future-date rule applies only at creation and lives in the creation workflow.

The aggregate is immutable: every operation returns a new Auction snapshot, and
persistence writes whole snapshots (compare-and-set on `version`).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Mapping, Optional, Tuple
from uuid import UUID

from domain.errors import ConflictError, NotFoundError, ValidationError
from domain.registration import Registration
from domain.time import require_utc_timestamp
from domain.validation import require_deadline_not_after, require_time_of_day

DEFAULT_TERMS = "Standard auction terms and conditions apply"
TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 2000


class AuctionStatus(str, Enum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class LivestockCategory(str, Enum):
    CATTLE = "cattle"
    DAIRY = "dairy"
    BEEF = "beef"
    GOATS = "goats"
    SHEEP = "sheep"
    PIGS = "pigs"
    POULTRY = "poultry"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class LivestockItem:
    """A line item of animals offered at the auction."""

    category: LivestockCategory
    quantity: int
    starting_price: Decimal
    breed: Optional[str] = None
    description: Optional[str] = None
    final_price: Optional[Decimal] = None  # recorded when the auction is finalized

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if not self.starting_price.is_finite():
            raise ValidationError("Starting price must be a number")
        if self.starting_price < 0:
            raise ValidationError("Starting price cannot be negative")
        if self.final_price is not None and not self.final_price.is_finite():
            raise ValidationError("Final price must be a number")
        if self.final_price is not None and self.final_price < 0:
            raise ValidationError("Final price cannot be negative")


@dataclass(frozen=True, slots=True)
class AuctioneerContact:
    phone: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Auctioneer:
    name: str
    contact: AuctioneerContact = field(default_factory=AuctioneerContact)
    license: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValidationError("Auctioneer name is required")


@dataclass(frozen=True, slots=True)
class InterestedBuyer:
    name: str
    contact: str
    registered_at: datetime

    def __post_init__(self) -> None:
        require_utc_timestamp("registered_at", self.registered_at)


@dataclass(frozen=True, slots=True)
class Auction:
    """Aggregate root for one auction and its embedded buyer lists."""

    id: UUID
    title: str
    description: str
    location: str
    date: datetime
    start_time: str
    end_time: str
    created_at: datetime
    updated_at: datetime

    livestock: Tuple[LivestockItem, ...] = ()
    auctioneer: Optional[Auctioneer] = None

    # Registration settings
    registration_required: bool = True
    registration_deadline: Optional[datetime] = None
    registration_fee: Decimal = Decimal("0")
    terms: str = DEFAULT_TERMS

    status: AuctionStatus = AuctionStatus.UPCOMING
    image: Optional[str] = None  # opaque reference into the image store
    published: bool = True
    views: int = 0

    interested_buyers: Tuple[InterestedBuyer, ...] = ()
    registrations: Tuple[Registration, ...] = ()

    # Incremented by the repository on every successful write
    version: int = 0

    def __post_init__(self) -> None:
        if not self.title or not self.title.strip():
            raise ValidationError("Auction title is required")
        if len(self.title) > TITLE_MAX_LENGTH:
            raise ValidationError(f"Title cannot exceed {TITLE_MAX_LENGTH} characters")
        if not self.description or not self.description.strip():
            raise ValidationError("Auction description is required")
        if len(self.description) > DESCRIPTION_MAX_LENGTH:
            raise ValidationError(f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters")
        if not self.location or not self.location.strip():
            raise ValidationError("Auction location is required")

        require_utc_timestamp("date", self.date)
        require_utc_timestamp("created_at", self.created_at)
        require_utc_timestamp("updated_at", self.updated_at)
        require_time_of_day("Start time", self.start_time)
        require_time_of_day("End time", self.end_time)

        if self.registration_deadline is not None:
            require_utc_timestamp("registration_deadline", self.registration_deadline)
        require_deadline_not_after(self.registration_deadline, self.date)

        if not self.registration_fee.is_finite():
            raise ValidationError("Registration fee must be a number")
        if self.registration_fee < 0:
            raise ValidationError("Registration fee cannot be negative")
        if self.views < 0:
            raise ValidationError("Views cannot be negative")

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def revenue(self) -> Decimal:
        """Sum of recorded final prices; lines without one count as 0."""

        return sum((item.final_price or Decimal("0") for item in self.livestock), Decimal("0"))

    @property
    def formatted_date(self) -> str:
        return f"{self.date:%B} {self.date.day}, {self.date.year}"

    def days_until_auction(self, now: datetime) -> int:
        remaining = (self.date - now) / timedelta(days=1)
        return max(math.ceil(remaining), 0)

    def has_category(self, category: LivestockCategory) -> bool:
        return any(item.category == category for item in self.livestock)

    def find_registration(self, registration_id: UUID) -> Optional[Registration]:
        for registration in self.registrations:
            if registration.id == registration_id:
                return registration
        return None

    # ------------------------------------------------------------------
    # Aggregate operations
    # ------------------------------------------------------------------

    def viewed(self) -> "Auction":
        return replace(self, views=self.views + 1)

    def with_registration(self, registration: Registration, *, now: datetime) -> "Auction":
        """
        Append a formal registration.

        Enforces:
        - Registration closes once the auction date is reached, whether or not
          a registration_deadline is set.
        - buyer_email is unique within registrations (exact, case-sensitive).
        """

        if self.date <= now:
            raise ConflictError("Registration is closed for this auction")
        if any(r.buyer_email == registration.buyer_email for r in self.registrations):
            raise ConflictError("You have already registered for this auction")
        return replace(self, registrations=self.registrations + (registration,))

    def with_interest(self, buyer: InterestedBuyer) -> "Auction":
        """Append an interested buyer; contact is unique within interested_buyers only."""

        if any(b.contact == buyer.contact for b in self.interested_buyers):
            raise ConflictError("Already registered for this auction")
        return replace(self, interested_buyers=self.interested_buyers + (buyer,))

    def with_updated_registration(self, updated: Registration) -> "Auction":
        if self.find_registration(updated.id) is None:
            raise NotFoundError("Registration not found")
        return replace(
            self,
            registrations=tuple(updated if r.id == updated.id else r for r in self.registrations),
        )

    def cancelled(self) -> "Auction":
        if self.status is AuctionStatus.COMPLETED:
            raise ConflictError("A completed auction cannot be cancelled")
        return replace(self, status=AuctionStatus.CANCELLED)

    def finalized(self, final_prices: Mapping[int, Decimal]) -> "Auction":
        """
        Record final sale prices per livestock line (keyed by line index) and
        mark the auction completed.
        """

        if self.status is AuctionStatus.CANCELLED:
            raise ConflictError("A cancelled auction cannot be finalized")
        for index in final_prices:
            if index < 0 or index >= len(self.livestock):
                raise ValidationError(f"Livestock line {index} does not exist")
        livestock = tuple(
            replace(item, final_price=final_prices[i]) if i in final_prices else item
            for i, item in enumerate(self.livestock)
        )
        return replace(self, livestock=livestock, status=AuctionStatus.COMPLETED)


def derive_status(auction: Auction, now: datetime) -> Auction:
    """
    Lazy lifecycle rule applied before every persistence write.

    A past-dated auction still marked UPCOMING becomes COMPLETED. ONGOING,
    COMPLETED and CANCELLED records are left untouched, so repeated
    application is idempotent.
    """

    if auction.status is AuctionStatus.UPCOMING and auction.date < now:
        return replace(auction, status=AuctionStatus.COMPLETED)
    return auction


__all__ = [
    "DEFAULT_TERMS",
    "Auction",
    "AuctionStatus",
    "Auctioneer",
    "AuctioneerContact",
    "InterestedBuyer",
    "LivestockCategory",
    "LivestockItem",
    "derive_status",
]
