"""
Registration service: formal buyer registration and its approval workflow.

Process for a new registration:
1. Validate required buyer fields
2. Load the auction; registration closes once the auction date is reached
3. Reject a second registration with the same buyer_email
4. Append a PENDING registration and persist the auction
5. Log the activity and send the confirmation email (best-effort)

Approval and rejection locate the owning auction by registration id, apply the
terminal transition, persist, then log and email (best-effort).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID, uuid4

from domain.activity import ANONYMOUS_BUYER_ROLE, ActivityAction, ActivityEntry, Actor
from domain.auction import Auction
from domain.errors import NotFoundError, StorageError, ValidationError
from domain.registration import (
    DEFAULT_PAYMENT_METHOD,
    DEFAULT_PAYMENT_STATUS,
    Registration,
    RegistrationStatus,
)
from services.auction_lifecycle import AuctionLifecycle
from services.csv_export_service import RegistrationExportRow, generate_registrations_csv
from services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_LOG_REASON = "No reason provided"
DEFAULT_REJECTION_EMAIL_REASON = "Please contact us for more information"


@dataclass(frozen=True, slots=True)
class RegistrationSummary:
    """Minimal view of a newly created registration returned to the buyer."""
    id: UUID
    status: RegistrationStatus
    registered_at: datetime


@dataclass(frozen=True, slots=True)
class AuctionSummary:
    id: UUID
    title: str
    date: datetime
    location: str
    registration_fee: Any


@dataclass(frozen=True, slots=True)
class RegistrationListing:
    """A registration annotated with its parent auction."""
    registration: Registration
    auction: AuctionSummary


@dataclass(frozen=True, slots=True)
class RegistrationStats:
    total: int
    pending: int
    approved: int
    rejected: int


@dataclass(frozen=True, slots=True)
class RegistrationPage:
    items: List[RegistrationListing]
    total: int
    page: int
    limit: int
    stats: RegistrationStats = field(default_factory=lambda: RegistrationStats(0, 0, 0, 0))

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def _parse_uuid(value: Any, not_found_message: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as e:
        raise NotFoundError(not_found_message) from e


def _parse_status_filter(value: Optional[str]) -> Optional[RegistrationStatus]:
    if not value or value == "all":
        return None
    try:
        return RegistrationStatus(value.lower())
    except ValueError as e:
        raise ValidationError(f"Invalid registration status '{value}'") from e


def _auction_summary(auction: Auction) -> AuctionSummary:
    return AuctionSummary(
        id=auction.id,
        title=auction.title,
        date=auction.date,
        location=auction.location,
        registration_fee=auction.registration_fee,
    )


class RegistrationService:
    def __init__(self, lifecycle: AuctionLifecycle, notifications: NotificationDispatcher) -> None:
        self._lifecycle = lifecycle
        self._repository = lifecycle.repository
        self._notifications = notifications

    def _log(
        self,
        *,
        actor_id: Optional[str],
        actor_name: str,
        actor_role: str,
        action: ActivityAction,
        auction_id: Optional[UUID],
        details: Mapping[str, Any],
    ) -> None:
        self._notifications.log_activity(
            ActivityEntry(
                actor_id=actor_id,
                actor_name=actor_name,
                actor_role=actor_role,
                action=action,
                resource="auction",
                resource_id=str(auction_id) if auction_id else None,
                details=details,
                timestamp=self._lifecycle.clock(),
            )
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_registration(
        self,
        auction_id: Any,
        buyer_data: Mapping[str, Any],
        actor: Optional[Actor] = None,
    ) -> RegistrationSummary:
        """
        Register a buyer for an auction.

        Raises:
            ValidationError: buyer_name, buyer_email or buyer_phone missing
            NotFoundError: auction does not exist
            ConflictError: registration closed (auction date reached) or the
                buyer_email is already registered for this auction
        """

        buyer_name = buyer_data.get("buyer_name")
        buyer_email = buyer_data.get("buyer_email")
        buyer_phone = buyer_data.get("buyer_phone")
        if not buyer_name or not buyer_email or not buyer_phone:
            raise ValidationError("Name, email, and phone are required")

        parsed_id = _parse_uuid(auction_id, "Auction not found")
        registration_id = uuid4()

        def add_registration(auction: Auction, now: datetime) -> Auction:
            registration = Registration(
                id=registration_id,
                buyer_name=buyer_name,
                buyer_email=buyer_email,
                buyer_phone=buyer_phone,
                buyer_company=buyer_data.get("buyer_company") or "",
                payment_method=buyer_data.get("payment_method") or DEFAULT_PAYMENT_METHOD,
                special_requirements=buyer_data.get("special_requirements") or "",
                status=RegistrationStatus.PENDING,
                payment_status=DEFAULT_PAYMENT_STATUS,
                registered_at=now,
            )
            return auction.with_registration(registration, now=now)

        auction = self._lifecycle.mutate(lambda: self._repository.get_by_id(parsed_id), add_registration)
        registration = auction.find_registration(registration_id)
        if registration is None:
            raise StorageError("Saved auction is missing the new registration")

        logger.info(
            "Auction registration created",
            extra={"auction_id": str(auction.id), "registration_id": str(registration.id)},
        )

        self._log(
            actor_id=actor.id if actor else None,
            actor_name=buyer_name,
            actor_role=ANONYMOUS_BUYER_ROLE,
            action=ActivityAction.REGISTRATION_CREATED,
            auction_id=auction.id,
            details={
                "auction_title": auction.title,
                "buyer_name": buyer_name,
                "buyer_email": buyer_email,
                "buyer_phone": buyer_phone,
            },
        )

        self._notifications.send_email(
            to=buyer_email,
            subject="Auction Registration Received",
            template_name="auction-registration-confirmation",
            template_data={
                "buyer_name": buyer_name,
                "auction_title": auction.title,
                "auction_date": auction.formatted_date,
                "auction_location": auction.location,
                "registration_fee": str(auction.registration_fee),
                "registration_id": str(registration.id),
            },
        )

        return RegistrationSummary(
            id=registration.id,
            status=registration.status,
            registered_at=registration.registered_at,
        )

    # ------------------------------------------------------------------
    # Approve / reject
    # ------------------------------------------------------------------

    def _transition(self, registration_id: Any, transition) -> tuple[Auction, Registration]:
        parsed_id = _parse_uuid(registration_id, "Registration not found")

        def apply(auction: Auction, now: datetime) -> Auction:
            registration = auction.find_registration(parsed_id)
            if registration is None:
                raise NotFoundError("Registration not found")
            return auction.with_updated_registration(transition(registration, now))

        auction = self._lifecycle.mutate(
            lambda: self._repository.find_by_registration_id(parsed_id),
            apply,
            not_found_message="Registration not found",
        )
        registration = auction.find_registration(parsed_id)
        if registration is None:
            raise StorageError("Saved auction is missing the updated registration")
        return auction, registration

    def approve_registration(self, registration_id: Any, actor: Actor) -> Registration:
        auction, registration = self._transition(
            registration_id,
            lambda reg, now: reg.approved(approved_at=now, approved_by=actor.id),
        )

        self._log(
            actor_id=actor.id,
            actor_name=actor.username,
            actor_role=actor.role,
            action=ActivityAction.REGISTRATION_APPROVED,
            auction_id=auction.id,
            details={
                "auction_title": auction.title,
                "buyer_name": registration.buyer_name,
                "buyer_email": registration.buyer_email,
            },
        )

        self._notifications.send_email(
            to=registration.buyer_email,
            subject="Auction Registration Approved",
            template_name="auction-registration-approved",
            template_data={
                "buyer_name": registration.buyer_name,
                "auction_title": auction.title,
                "auction_date": auction.formatted_date,
                "auction_location": auction.location,
                "bidder_number": registration.bidder_number,
            },
        )
        return registration

    def reject_registration(self, registration_id: Any, actor: Actor, reason: Optional[str] = None) -> Registration:
        auction, registration = self._transition(
            registration_id,
            lambda reg, now: reg.rejected(rejected_at=now, rejected_by=actor.id, reason=reason),
        )

        self._log(
            actor_id=actor.id,
            actor_name=actor.username,
            actor_role=actor.role,
            action=ActivityAction.REGISTRATION_REJECTED,
            auction_id=auction.id,
            details={
                "auction_title": auction.title,
                "buyer_name": registration.buyer_name,
                "buyer_email": registration.buyer_email,
                "reason": reason or DEFAULT_REJECTION_LOG_REASON,
            },
        )

        self._notifications.send_email(
            to=registration.buyer_email,
            subject="Auction Registration Update",
            template_name="auction-registration-rejected",
            template_data={
                "buyer_name": registration.buyer_name,
                "auction_title": auction.title,
                "reason": reason or DEFAULT_REJECTION_EMAIL_REASON,
            },
        )
        return registration

    # ------------------------------------------------------------------
    # Listing / export
    # ------------------------------------------------------------------

    def _flatten(self, auction_id: Any) -> List[RegistrationListing]:
        scoped_id = None if not auction_id or auction_id == "all" else _parse_uuid(auction_id, "Auction not found")
        listings: List[RegistrationListing] = []
        for auction in self._repository.list_all(scoped_id):
            summary = _auction_summary(auction)
            listings.extend(RegistrationListing(registration=r, auction=summary) for r in auction.registrations)
        return listings

    def list_registrations(
        self,
        *,
        auction_id: Any = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> RegistrationPage:
        """
        Flatten registrations across auctions (most recent auction first),
        filter by status and paginate in memory.
        """

        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be >= 1")

        listings = self._flatten(auction_id)
        status_filter = _parse_status_filter(status)
        if status_filter is not None:
            listings = [item for item in listings if item.registration.status is status_filter]

        counts: Dict[RegistrationStatus, int] = {s: 0 for s in RegistrationStatus}
        for item in listings:
            counts[item.registration.status] += 1

        start = (page - 1) * limit
        return RegistrationPage(
            items=listings[start:start + limit],
            total=len(listings),
            page=page,
            limit=limit,
            stats=RegistrationStats(
                total=len(listings),
                pending=counts[RegistrationStatus.PENDING],
                approved=counts[RegistrationStatus.APPROVED],
                rejected=counts[RegistrationStatus.REJECTED],
            ),
        )

    def export_registrations(self, actor: Actor, auction_id: Any = None) -> str:
        """Export the flattened registration list as CSV."""

        listings = self._flatten(auction_id)
        rows = [
            RegistrationExportRow(
                auction_title=item.auction.title,
                auction_date=item.auction.date,
                auction_location=item.auction.location,
                buyer_name=item.registration.buyer_name,
                buyer_email=item.registration.buyer_email,
                buyer_phone=item.registration.buyer_phone,
                buyer_company=item.registration.buyer_company,
                status=item.registration.status.value,
                registered_at=item.registration.registered_at,
                payment_method=item.registration.payment_method,
                payment_status=item.registration.payment_status,
                special_requirements=item.registration.special_requirements,
            )
            for item in listings
        ]
        content = generate_registrations_csv(rows)

        self._log(
            actor_id=actor.id,
            actor_name=actor.username,
            actor_role=actor.role,
            action=ActivityAction.REGISTRATIONS_EXPORTED,
            auction_id=None,
            details={
                "export_count": len(rows),
                "auction_filter": str(auction_id) if auction_id else "all",
            },
        )
        return content


__all__ = [
    "AuctionSummary",
    "RegistrationListing",
    "RegistrationPage",
    "RegistrationService",
    "RegistrationStats",
    "RegistrationSummary",
]
