"""
Auction repository (persistence).

This module provides *only* persistence operations for the Auction aggregate.
It does not enforce business rules (registration windows, duplicate buyers,
status derivation); those live in the domain and service layers.

Storage layout (Supabase table `auctions`):
- scalar auction fields as columns, timestamps as `*_utc` ISO-8601 strings
- livestock, auctioneer, interested_buyers, registrations as JSONB columns
- `version` integer column used for compare-and-set writes: a save only
  succeeds if the stored version still equals the version that was read
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Protocol, Tuple
from uuid import UUID

from postgrest.exceptions import APIError

from domain.auction import (
    Auction,
    Auctioneer,
    AuctioneerContact,
    AuctionStatus,
    InterestedBuyer,
    LivestockCategory,
    LivestockItem,
)
from domain.errors import ConcurrentModificationError, StorageError
from domain.registration import Registration, RegistrationStatus
from domain.time import parse_utc_datetime, to_iso_utc

# Keep this aligned with your database schema.
_AUCTIONS_TABLE: str = os.getenv("AUCTIONS_TABLE", "auctions")


@dataclass(frozen=True, slots=True)
class AuctionFilters:
    """Filter criteria for auction listing queries."""
    category: Optional[LivestockCategory] = None
    location: Optional[str] = None  # case-insensitive substring
    status: Optional[AuctionStatus] = None
    published_only: bool = True
    date_ascending: bool = True


class AuctionRepository(Protocol):
    """Persistence contract consumed by the auction and registration services."""

    def insert(self, auction: Auction) -> Auction: ...

    def save(self, auction: Auction) -> Auction: ...

    def delete(self, auction_id: UUID) -> None: ...

    def get_by_id(self, auction_id: UUID) -> Optional[Auction]: ...

    def find_by_registration_id(self, registration_id: UUID) -> Optional[Auction]: ...

    def list_auctions(self, filters: AuctionFilters, limit: int, offset: int) -> Tuple[List[Auction], int]: ...

    def list_by_created(self, limit: int, offset: int) -> Tuple[List[Auction], int]: ...

    def find_upcoming(self, now: datetime, limit: int) -> List[Auction]: ...

    def find_by_category(self, category: LivestockCategory) -> List[Auction]: ...

    def list_all(self, auction_id: Optional[UUID] = None) -> List[Auction]: ...

    def list_created_since(self, since: datetime) -> List[Auction]: ...


# ============================================================================
# Row mapping
# ============================================================================

def _optional_iso(dt: Optional[datetime]) -> Optional[str]:
    return to_iso_utc(dt) if dt is not None else None


def _optional_datetime(value: Any) -> Optional[datetime]:
    return parse_utc_datetime(value) if value else None


def _optional_decimal(value: Any) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


def _livestock_to_json(item: LivestockItem) -> dict[str, Any]:
    return {
        "category": item.category.value,
        "breed": item.breed,
        "quantity": item.quantity,
        "starting_price": str(item.starting_price),
        "description": item.description,
        "final_price": str(item.final_price) if item.final_price is not None else None,
    }


def _livestock_from_json(data: Mapping[str, Any]) -> LivestockItem:
    return LivestockItem(
        category=LivestockCategory(str(data["category"])),
        breed=data.get("breed"),
        quantity=int(data["quantity"]),
        starting_price=Decimal(str(data["starting_price"])),
        description=data.get("description"),
        final_price=_optional_decimal(data.get("final_price")),
    )


def _auctioneer_to_json(auctioneer: Optional[Auctioneer]) -> Optional[dict[str, Any]]:
    if auctioneer is None:
        return None
    return {
        "name": auctioneer.name,
        "contact": {"phone": auctioneer.contact.phone, "email": auctioneer.contact.email},
        "license": auctioneer.license,
    }


def _auctioneer_from_json(data: Optional[Mapping[str, Any]]) -> Optional[Auctioneer]:
    if not data:
        return None
    contact = data.get("contact") or {}
    return Auctioneer(
        name=str(data["name"]),
        contact=AuctioneerContact(phone=contact.get("phone"), email=contact.get("email")),
        license=data.get("license"),
    )


def _registration_to_json(registration: Registration) -> dict[str, Any]:
    return {
        "id": str(registration.id),
        "buyer_name": registration.buyer_name,
        "buyer_email": registration.buyer_email,
        "buyer_phone": registration.buyer_phone,
        "buyer_company": registration.buyer_company,
        "payment_method": registration.payment_method,
        "special_requirements": registration.special_requirements,
        "status": registration.status.value,
        "payment_status": registration.payment_status,
        "registered_at_utc": to_iso_utc(registration.registered_at),
        "approved_at_utc": _optional_iso(registration.approved_at),
        "approved_by": registration.approved_by,
        "rejected_at_utc": _optional_iso(registration.rejected_at),
        "rejected_by": registration.rejected_by,
        "rejection_reason": registration.rejection_reason,
    }


def _registration_from_json(data: Mapping[str, Any]) -> Registration:
    return Registration(
        id=UUID(str(data["id"])),
        buyer_name=str(data["buyer_name"]),
        buyer_email=str(data["buyer_email"]),
        buyer_phone=str(data["buyer_phone"]),
        buyer_company=data.get("buyer_company") or "",
        payment_method=data.get("payment_method") or "cash",
        special_requirements=data.get("special_requirements") or "",
        status=RegistrationStatus(str(data.get("status", "pending"))),
        payment_status=data.get("payment_status") or "pending",
        registered_at=parse_utc_datetime(data["registered_at_utc"]),
        approved_at=_optional_datetime(data.get("approved_at_utc")),
        approved_by=data.get("approved_by"),
        rejected_at=_optional_datetime(data.get("rejected_at_utc")),
        rejected_by=data.get("rejected_by"),
        rejection_reason=data.get("rejection_reason"),
    )


def _auction_to_row(auction: Auction) -> dict[str, Any]:
    """Convert a domain Auction to a Supabase row payload."""

    return {
        "id": str(auction.id),
        "title": auction.title,
        "description": auction.description,
        "location": auction.location,
        "date_utc": to_iso_utc(auction.date),
        "start_time": auction.start_time,
        "end_time": auction.end_time,
        "livestock": [_livestock_to_json(item) for item in auction.livestock],
        "auctioneer": _auctioneer_to_json(auction.auctioneer),
        "registration_required": auction.registration_required,
        "registration_deadline_utc": _optional_iso(auction.registration_deadline),
        "registration_fee": str(auction.registration_fee),
        "terms": auction.terms,
        "status": auction.status.value,
        "image": auction.image,
        "published": auction.published,
        "views": auction.views,
        "interested_buyers": [
            {
                "name": buyer.name,
                "contact": buyer.contact,
                "registered_at_utc": to_iso_utc(buyer.registered_at),
            }
            for buyer in auction.interested_buyers
        ],
        "registrations": [_registration_to_json(r) for r in auction.registrations],
        "created_at_utc": to_iso_utc(auction.created_at),
        "updated_at_utc": to_iso_utc(auction.updated_at),
        "version": auction.version,
    }


def _row_to_auction(row: Mapping[str, Any]) -> Auction:
    """Convert a Supabase row into a domain Auction."""

    return Auction(
        id=UUID(str(row["id"])),
        title=str(row["title"]),
        description=str(row["description"]),
        location=str(row["location"]),
        date=parse_utc_datetime(row["date_utc"]),
        start_time=str(row["start_time"]),
        end_time=str(row["end_time"]),
        livestock=tuple(_livestock_from_json(item) for item in row.get("livestock") or []),
        auctioneer=_auctioneer_from_json(row.get("auctioneer")),
        registration_required=bool(row.get("registration_required", True)),
        registration_deadline=_optional_datetime(row.get("registration_deadline_utc")),
        registration_fee=Decimal(str(row.get("registration_fee") or "0")),
        terms=row.get("terms") or "",
        status=AuctionStatus(str(row.get("status", "upcoming"))),
        image=row.get("image"),
        published=bool(row.get("published", True)),
        views=int(row.get("views") or 0),
        interested_buyers=tuple(
            InterestedBuyer(
                name=str(buyer["name"]),
                contact=str(buyer["contact"]),
                registered_at=parse_utc_datetime(buyer["registered_at_utc"]),
            )
            for buyer in row.get("interested_buyers") or []
        ),
        registrations=tuple(_registration_from_json(r) for r in row.get("registrations") or []),
        created_at=parse_utc_datetime(row["created_at_utc"]),
        updated_at=parse_utc_datetime(row["updated_at_utc"]),
        version=int(row.get("version") or 0),
    )


# ============================================================================
# Supabase implementation
# ============================================================================

class SupabaseAuctionRepository:
    """AuctionRepository backed by a Supabase (PostgREST) table."""

    def __init__(self, client: Any, table: str = _AUCTIONS_TABLE) -> None:
        self._client = client
        self._table = table

    def _query(self):
        return self._client.table(self._table)

    @staticmethod
    def _execute(query: Any, action: str) -> Any:
        try:
            response = query.execute()
        except APIError as e:
            raise StorageError(f"Failed to {action}: {e.message}") from e
        error = getattr(response, "error", None)
        if error:
            raise StorageError(f"Failed to {action}: {error}")
        return response

    @staticmethod
    def _rows(response: Any) -> List[Auction]:
        rows = getattr(response, "data", None) or []
        return [_row_to_auction(row) for row in rows]

    def insert(self, auction: Auction) -> Auction:
        self._execute(self._query().insert(_auction_to_row(auction)), "insert auction")
        return auction

    def save(self, auction: Auction) -> Auction:
        """
        Write the whole auction document if nobody else wrote it since it was read.

        Raises:
            ConcurrentModificationError: if the stored version no longer matches (concurrent write)
        """

        saved = replace(auction, version=auction.version + 1)
        response = self._execute(
            self._query()
            .update(_auction_to_row(saved))
            .eq("id", str(auction.id))
            .eq("version", auction.version),
            "save auction",
        )
        if not (getattr(response, "data", None) or []):
            raise ConcurrentModificationError("Auction was modified concurrently, please retry")
        return saved

    def delete(self, auction_id: UUID) -> None:
        self._execute(self._query().delete().eq("id", str(auction_id)), "delete auction")

    def get_by_id(self, auction_id: UUID) -> Optional[Auction]:
        response = self._execute(
            self._query().select("*").eq("id", str(auction_id)).limit(1),
            "fetch auction",
        )
        auctions = self._rows(response)
        return auctions[0] if auctions else None

    def find_by_registration_id(self, registration_id: UUID) -> Optional[Auction]:
        # JSONB containment: registrations @> [{"id": "<uuid>"}]
        response = self._execute(
            self._query()
            .select("*")
            .contains("registrations", json.dumps([{"id": str(registration_id)}]))
            .limit(1),
            "find auction by registration",
        )
        auctions = self._rows(response)
        return auctions[0] if auctions else None

    def list_auctions(self, filters: AuctionFilters, limit: int, offset: int) -> Tuple[List[Auction], int]:
        query = self._query().select("*", count="exact")

        if filters.published_only:
            query = query.eq("published", True)
        if filters.status is not None:
            query = query.eq("status", filters.status.value)
        if filters.category is not None:
            query = query.contains("livestock", json.dumps([{"category": filters.category.value}]))
        if filters.location:
            query = query.ilike("location", f"%{filters.location}%")

        query = query.order("date_utc", desc=not filters.date_ascending).range(offset, offset + limit - 1)
        response = self._execute(query, "list auctions")
        return self._rows(response), int(getattr(response, "count", None) or 0)

    def list_by_created(self, limit: int, offset: int) -> Tuple[List[Auction], int]:
        response = self._execute(
            self._query()
            .select("*", count="exact")
            .order("created_at_utc", desc=True)
            .range(offset, offset + limit - 1),
            "list auctions",
        )
        return self._rows(response), int(getattr(response, "count", None) or 0)

    def find_upcoming(self, now: datetime, limit: int) -> List[Auction]:
        response = self._execute(
            self._query()
            .select("*")
            .eq("published", True)
            .eq("status", AuctionStatus.UPCOMING.value)
            .gte("date_utc", to_iso_utc(now))
            .order("date_utc")
            .limit(limit),
            "list upcoming auctions",
        )
        return self._rows(response)

    def find_by_category(self, category: LivestockCategory) -> List[Auction]:
        response = self._execute(
            self._query()
            .select("*")
            .eq("published", True)
            .contains("livestock", json.dumps([{"category": category.value}]))
            .order("date_utc"),
            "list auctions by category",
        )
        return self._rows(response)

    def list_all(self, auction_id: Optional[UUID] = None) -> List[Auction]:
        query = self._query().select("*")
        if auction_id is not None:
            query = query.eq("id", str(auction_id))
        response = self._execute(query.order("date_utc", desc=True), "list auctions")
        return self._rows(response)

    def list_created_since(self, since: datetime) -> List[Auction]:
        response = self._execute(
            self._query().select("*").gte("created_at_utc", to_iso_utc(since)),
            "list recent auctions",
        )
        return self._rows(response)


__all__ = [
    "AuctionFilters",
    "AuctionRepository",
    "SupabaseAuctionRepository",
]
