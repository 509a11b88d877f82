"""
Auction service: CRUD, listing, interest registration and lifecycle actions.

Handles:
- Creation with required-field, future-date, HH:MM and deadline validation
- Partial updates (only supplied fields change) with single-live-image cleanup
- View counting on every successful fetch
- Filtered, paginated listing
- Lightweight interest registration (separate from formal registration)
- Cancellation and finalization (recording final sale prices)

Payloads arrive as plain mappings, as posted by the HTTP layer or a form:
`livestock` and `auctioneer` may be structured data or JSON-encoded strings.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Tuple
from uuid import UUID, uuid4

from domain.activity import ActivityAction, ActivityEntry, Actor
from domain.auction import (
    DEFAULT_TERMS,
    Auction,
    Auctioneer,
    AuctioneerContact,
    AuctionStatus,
    InterestedBuyer,
    LivestockCategory,
    LivestockItem,
    derive_status,
)
from domain.errors import NotFoundError, ValidationError
from domain.time import parse_utc_datetime
from domain.validation import require_future_date
from repositories.auction_repository import AuctionFilters
from repositories.image_store import ImageStore
from services.auction_lifecycle import AuctionLifecycle
from services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("title", "description", "location", "date", "start_time", "end_time")


@dataclass(frozen=True, slots=True)
class AuctionPage:
    """One page of auctions plus totals for pagination controls."""
    items: List[Auction]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


# ============================================================================
# Payload parsing
# ============================================================================

def _decode_json(value: Any, label: str) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid {label} data format.") from e
    return value


def parse_livestock(value: Any) -> Tuple[LivestockItem, ...]:
    """Parse a livestock payload (list of dicts or its JSON encoding)."""

    data = _decode_json(value, "livestock")
    if not isinstance(data, list):
        raise ValidationError("Invalid livestock data format.")
    items = []
    for entry in data:
        try:
            items.append(
                LivestockItem(
                    category=LivestockCategory(str(entry["category"]).lower()),
                    breed=entry.get("breed") or None,
                    quantity=int(entry["quantity"]),
                    starting_price=Decimal(str(entry["starting_price"])),
                    description=entry.get("description") or None,
                )
            )
        except ValidationError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError, InvalidOperation) as e:
            raise ValidationError("Invalid livestock data format.") from e
    return tuple(items)


def parse_auctioneer(value: Any) -> Auctioneer:
    """Parse an auctioneer payload (dict or its JSON encoding)."""

    data = _decode_json(value, "auctioneer")
    if not isinstance(data, Mapping):
        raise ValidationError("Invalid auctioneer data format.")
    contact = data.get("contact") or {}
    if not isinstance(contact, Mapping):
        raise ValidationError("Invalid auctioneer data format.")
    return Auctioneer(
        name=str(data.get("name") or ""),
        contact=AuctioneerContact(phone=contact.get("phone"), email=contact.get("email")),
        license=data.get("license"),
    )


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() not in ("false", "0", "no", "")


def _parse_decimal(value: Any, name: str) -> Decimal:
    try:
        parsed = Decimal(str(value)) if value not in (None, "") else Decimal("0")
    except InvalidOperation as e:
        raise ValidationError(f"{name} must be a number") from e
    if not parsed.is_finite():
        raise ValidationError(f"{name} must be a number")
    return parsed


def _parse_datetime(value: Any, name: str) -> datetime:
    try:
        return parse_utc_datetime(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid {name}") from e


def _parse_category(value: Optional[str]) -> Optional[LivestockCategory]:
    if not value or value == "all":
        return None
    try:
        return LivestockCategory(value.lower())
    except ValueError as e:
        raise ValidationError(f"Invalid livestock category '{value}'") from e


def _parse_status(value: Optional[str]) -> Optional[AuctionStatus]:
    if not value or value == "all":
        return None
    try:
        return AuctionStatus(value.lower())
    except ValueError as e:
        raise ValidationError(f"Invalid auction status '{value}'") from e


def _parse_auction_id(value: Any) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as e:
        raise NotFoundError("Auction not found") from e


# ============================================================================
# Service
# ============================================================================

class AuctionService:
    def __init__(
        self,
        lifecycle: AuctionLifecycle,
        image_store: ImageStore,
        notifications: NotificationDispatcher,
    ) -> None:
        self._lifecycle = lifecycle
        self._repository = lifecycle.repository
        self._images = image_store
        self._notifications = notifications

    @property
    def _clock(self):
        return self._lifecycle.clock

    def _require(self, auction_id: Any) -> Auction:
        auction = self._repository.get_by_id(_parse_auction_id(auction_id))
        if auction is None:
            raise NotFoundError("Auction not found")
        return auction

    def _log(self, actor: Actor, action: ActivityAction, auction: Auction, **details: Any) -> None:
        self._notifications.log_activity(
            ActivityEntry(
                actor_id=actor.id,
                actor_name=actor.username,
                actor_role=actor.role,
                action=action,
                resource="auction",
                resource_id=str(auction.id),
                details={"auction_title": auction.title, **details},
                timestamp=self._clock(),
            )
        )

    def _delete_image_quietly(self, image_ref: str, auction_id: UUID) -> None:
        try:
            self._images.delete(image_ref)
        except Exception:
            logger.warning(
                "Failed to delete auction image",
                exc_info=True,
                extra={"auction_id": str(auction_id), "image_ref": image_ref},
            )

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_auction(self, payload: Mapping[str, Any], actor: Actor, image: Optional[str] = None) -> Auction:
        """
        Create an auction.

        Raises:
            ValidationError: missing required fields, malformed livestock/auctioneer
                payloads, a date that is not in the future, times not in HH:MM, or a
                registration deadline after the auction date
        """

        if any(not payload.get(name) for name in _REQUIRED_FIELDS):
            raise ValidationError(
                "Title, description, location, date, start time, and end time are required."
            )

        now = self._clock()
        auction_date = _parse_datetime(payload["date"], "auction date")
        require_future_date(auction_date, now)

        deadline = payload.get("registration_deadline")

        auction = Auction(
            id=uuid4(),
            title=str(payload["title"]).strip(),
            description=str(payload["description"]).strip(),
            location=str(payload["location"]).strip(),
            date=auction_date,
            start_time=str(payload["start_time"]),
            end_time=str(payload["end_time"]),
            livestock=parse_livestock(payload["livestock"]) if payload.get("livestock") else (),
            auctioneer=parse_auctioneer(payload["auctioneer"]) if payload.get("auctioneer") else None,
            registration_required=_parse_bool(payload.get("registration_required", True)),
            registration_deadline=_parse_datetime(deadline, "registration deadline") if deadline else None,
            registration_fee=_parse_decimal(payload.get("registration_fee"), "Registration fee"),
            terms=payload.get("terms") or DEFAULT_TERMS,
            published=_parse_bool(payload.get("published", True)),
            image=image,
            created_at=now,
            updated_at=now,
        )

        created = self._lifecycle.insert(auction)
        logger.info("Auction created", extra={"auction_id": str(created.id)})
        self._log(actor, ActivityAction.AUCTION_CREATED, created)
        return created

    def update_auction(
        self,
        auction_id: Any,
        payload: Mapping[str, Any],
        actor: Actor,
        image: Optional[str] = None,
    ) -> Auction:
        """
        Apply a partial update; unsupplied fields keep their values.

        A new image replaces the old one. The previous stored image is deleted
        only after the new reference has been saved (best-effort).
        """

        parsed_id = _parse_auction_id(auction_id)
        changes: Dict[str, Any] = {}

        for name in ("title", "description", "location", "start_time", "end_time", "terms"):
            if payload.get(name):
                changes[name] = str(payload[name])
        if payload.get("date"):
            changes["date"] = _parse_datetime(payload["date"], "auction date")
        if payload.get("registration_deadline"):
            changes["registration_deadline"] = _parse_datetime(
                payload["registration_deadline"], "registration deadline"
            )
        if payload.get("registration_fee") is not None:
            changes["registration_fee"] = _parse_decimal(payload["registration_fee"], "Registration fee")
        if payload.get("registration_required") is not None:
            changes["registration_required"] = _parse_bool(payload["registration_required"])
        if payload.get("published") is not None:
            changes["published"] = _parse_bool(payload["published"])
        if payload.get("livestock"):
            changes["livestock"] = parse_livestock(payload["livestock"])
        if payload.get("auctioneer"):
            changes["auctioneer"] = parse_auctioneer(payload["auctioneer"])

        replaced_images: List[Optional[str]] = []

        def apply(current: Auction, now: datetime) -> Auction:
            # Validates the merged record (times, deadline)
            updated = replace(current, **changes)
            replaced_images[:] = [current.image]
            return replace(updated, image=image) if image else updated

        saved = self._lifecycle.mutate(lambda: self._repository.get_by_id(parsed_id), apply)
        previous_image = replaced_images[0] if replaced_images else None
        if image and previous_image and previous_image != image:
            self._delete_image_quietly(previous_image, saved.id)

        self._log(actor, ActivityAction.AUCTION_UPDATED, saved, updated_fields=sorted(changes))
        return saved

    def delete_auction(self, auction_id: Any, actor: Actor) -> None:
        auction = self._require(auction_id)
        self._repository.delete(auction.id)
        if auction.image:
            self._delete_image_quietly(auction.image, auction.id)
        logger.info("Auction deleted", extra={"auction_id": str(auction.id)})
        self._log(actor, ActivityAction.AUCTION_DELETED, auction)

    def get_auction(self, auction_id: Any) -> Auction:
        """Fetch an auction, counting the fetch as one view."""

        parsed_id = _parse_auction_id(auction_id)
        return self._lifecycle.mutate(
            lambda: self._repository.get_by_id(parsed_id),
            lambda auction, now: auction.viewed(),
        )

    def list_auctions(
        self,
        *,
        category: Optional[str] = None,
        location: Optional[str] = None,
        status: Optional[str] = AuctionStatus.UPCOMING.value,
        admin: bool = False,
        page: int = 1,
        limit: int = 10,
    ) -> AuctionPage:
        """
        List auctions. Upcoming listings run soonest first, any other status
        (or "all") most recent first. Unpublished auctions are only visible
        to admins.
        """

        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be >= 1")

        parsed_status = _parse_status(status)
        filters = AuctionFilters(
            category=_parse_category(category),
            location=location if location and location != "all" else None,
            status=parsed_status,
            published_only=not admin,
            date_ascending=parsed_status is AuctionStatus.UPCOMING,
        )
        items, total = self._repository.list_auctions(filters, limit=limit, offset=(page - 1) * limit)
        return AuctionPage(items=items, total=total, page=page, limit=limit)

    def list_admin_auctions(self, *, page: int = 1, limit: int = 10) -> AuctionPage:
        """All auctions, newest created first."""

        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be >= 1")
        items, total = self._repository.list_by_created(limit=limit, offset=(page - 1) * limit)
        return AuctionPage(items=items, total=total, page=page, limit=limit)

    def find_upcoming(self, limit: int = 5) -> List[Auction]:
        return self._lifecycle.find_upcoming(limit)

    def find_by_category(self, category: str) -> List[Auction]:
        parsed = _parse_category(category)
        if parsed is None:
            raise ValidationError("A livestock category is required")
        return self._lifecycle.find_by_category(parsed)

    # ------------------------------------------------------------------
    # Interest registration
    # ------------------------------------------------------------------

    def register_interest(self, auction_id: Any, name: Optional[str], contact: Optional[str]) -> Auction:
        """
        Record a lightweight expression of interest.

        Only `interested_buyers` is checked for duplicates (by contact); formal
        registrations are not consulted. No confirmation email is sent.
        """

        if not name or not contact:
            raise ValidationError("Name and contact information are required")

        parsed_id = _parse_auction_id(auction_id)
        return self._lifecycle.mutate(
            lambda: self._repository.get_by_id(parsed_id),
            lambda auction, now: auction.with_interest(
                InterestedBuyer(name=name, contact=contact, registered_at=now)
            ),
        )

    # ------------------------------------------------------------------
    # Lifecycle actions
    # ------------------------------------------------------------------

    def cancel_auction(self, auction_id: Any, actor: Actor) -> Auction:
        auction = self._require(auction_id)
        if auction.status is AuctionStatus.CANCELLED:
            return auction

        saved = self._lifecycle.mutate(
            lambda: self._repository.get_by_id(auction.id),
            lambda current, now: derive_status(current, now).cancelled(),
        )
        self._log(actor, ActivityAction.AUCTION_CANCELLED, saved)
        return saved

    def finalize_auction(self, auction_id: Any, final_prices: Mapping[Any, Any], actor: Actor) -> Auction:
        """
        Record final sale prices per livestock line (keyed by line index) and
        mark the auction completed. This is the only path that sets final_price.
        """

        try:
            prices = {int(index): Decimal(str(price)) for index, price in final_prices.items()}
        except (TypeError, ValueError, InvalidOperation) as e:
            raise ValidationError("Invalid final price data format.") from e
        if not all(price.is_finite() for price in prices.values()):
            raise ValidationError("Invalid final price data format.")

        parsed_id = _parse_auction_id(auction_id)
        saved = self._lifecycle.mutate(
            lambda: self._repository.get_by_id(parsed_id),
            lambda auction, now: auction.finalized(prices),
        )
        self._log(
            actor,
            ActivityAction.AUCTION_COMPLETED,
            saved,
            revenue=str(saved.revenue),
        )
        return saved


__all__ = [
    "AuctionPage",
    "AuctionService",
    "parse_auctioneer",
    "parse_livestock",
]
