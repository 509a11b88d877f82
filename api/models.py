"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.

Every endpoint answers with the same envelope:
`{"success": bool, "message": str, "data": ..., "error": str | null}`.

Request fields are deliberately lenient (mostly optional, strings accepted for
structured values) so that missing or malformed input reaches the services and
is reported with their validation messages.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from domain.auction import Auction, Auctioneer, InterestedBuyer, LivestockItem
from domain.registration import Registration
from services.auction_service import AuctionPage
from services.registration_service import RegistrationListing, RegistrationPage
from services.statistics_service import ActivityItem, AuctionStats, PerformanceData


class ApiResponse(BaseModel):
    """Uniform response envelope."""
    success: bool
    message: str = ""
    data: Any = None
    error: Optional[str] = None


# ============================================================================
# Auction Models
# ============================================================================

class AuctionWriteRequest(BaseModel):
    """
    Body for creating or updating an auction.

    `livestock` and `auctioneer` accept structured JSON or their JSON-encoded
    string form (as posted by multipart forms).
    """
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    livestock: Optional[Union[str, List[Dict[str, Any]]]] = None
    auctioneer: Optional[Union[str, Dict[str, Any]]] = None
    registration_required: Optional[Union[bool, str]] = None
    registration_deadline: Optional[str] = None
    registration_fee: Optional[Union[Decimal, str]] = None
    terms: Optional[str] = None
    published: Optional[Union[bool, str]] = None
    image: Optional[str] = Field(None, description="Reference of an already uploaded image")

    class Config:
        json_schema_extra = {
            "example": {
                "title": "Spring Cattle Sale",
                "description": "Quality breeding stock from local farms",
                "location": "Nakuru Showground",
                "date": "2030-04-12T09:00:00Z",
                "start_time": "09:00",
                "end_time": "15:30",
                "livestock": [
                    {"category": "cattle", "breed": "Boran", "quantity": 12, "starting_price": "45000"}
                ],
                "auctioneer": {"name": "J. Mwangi", "contact": {"phone": "+254700000000"}},
                "registration_fee": "500",
            }
        }


class InterestRequest(BaseModel):
    """Lightweight expression of interest in an auction."""
    name: Optional[str] = None
    contact: Optional[str] = None


class FinalizeRequest(BaseModel):
    """Final sale price per livestock line, keyed by line index."""
    final_prices: Dict[int, Decimal] = Field(default_factory=dict)

    class Config:
        json_schema_extra = {"example": {"final_prices": {"0": "52000", "1": "18500"}}}


class LivestockItemResponse(BaseModel):
    category: str
    breed: Optional[str] = None
    quantity: int
    starting_price: Decimal
    description: Optional[str] = None
    final_price: Optional[Decimal] = None

    @classmethod
    def from_domain(cls, item: LivestockItem) -> "LivestockItemResponse":
        return cls(
            category=item.category.value,
            breed=item.breed,
            quantity=item.quantity,
            starting_price=item.starting_price,
            description=item.description,
            final_price=item.final_price,
        )


class AuctioneerResponse(BaseModel):
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    license: Optional[str] = None

    @classmethod
    def from_domain(cls, auctioneer: Auctioneer) -> "AuctioneerResponse":
        return cls(
            name=auctioneer.name,
            phone=auctioneer.contact.phone,
            email=auctioneer.contact.email,
            license=auctioneer.license,
        )


class InterestedBuyerResponse(BaseModel):
    name: str
    contact: str
    registered_at: datetime

    @classmethod
    def from_domain(cls, buyer: InterestedBuyer) -> "InterestedBuyerResponse":
        return cls(name=buyer.name, contact=buyer.contact, registered_at=buyer.registered_at)


class RegistrationResponse(BaseModel):
    id: UUID
    buyer_name: str
    buyer_email: str
    buyer_phone: str
    buyer_company: str
    payment_method: str
    payment_status: str
    special_requirements: str
    status: str
    registered_at: datetime
    bidder_number: str
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None

    @classmethod
    def from_domain(cls, registration: Registration) -> "RegistrationResponse":
        return cls(
            id=registration.id,
            buyer_name=registration.buyer_name,
            buyer_email=registration.buyer_email,
            buyer_phone=registration.buyer_phone,
            buyer_company=registration.buyer_company,
            payment_method=registration.payment_method,
            payment_status=registration.payment_status,
            special_requirements=registration.special_requirements,
            status=registration.status.value,
            registered_at=registration.registered_at,
            bidder_number=registration.bidder_number,
            approved_at=registration.approved_at,
            approved_by=registration.approved_by,
            rejected_at=registration.rejected_at,
            rejected_by=registration.rejected_by,
            rejection_reason=registration.rejection_reason,
        )


class AuctionResponse(BaseModel):
    """Single auction, including the derived display fields."""
    id: UUID
    title: str
    description: str
    location: str
    date: datetime
    formatted_date: str
    days_until_auction: int
    start_time: str
    end_time: str
    livestock: List[LivestockItemResponse]
    auctioneer: Optional[AuctioneerResponse] = None
    registration_required: bool
    registration_deadline: Optional[datetime] = None
    registration_fee: Decimal
    terms: str
    status: str
    image: Optional[str] = None
    published: bool
    views: int
    interested_buyers: List[InterestedBuyerResponse]
    registrations: List[RegistrationResponse]
    revenue: Decimal
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, auction: Auction, now: datetime) -> "AuctionResponse":
        return cls(
            id=auction.id,
            title=auction.title,
            description=auction.description,
            location=auction.location,
            date=auction.date,
            formatted_date=auction.formatted_date,
            days_until_auction=auction.days_until_auction(now),
            start_time=auction.start_time,
            end_time=auction.end_time,
            livestock=[LivestockItemResponse.from_domain(i) for i in auction.livestock],
            auctioneer=AuctioneerResponse.from_domain(auction.auctioneer) if auction.auctioneer else None,
            registration_required=auction.registration_required,
            registration_deadline=auction.registration_deadline,
            registration_fee=auction.registration_fee,
            terms=auction.terms,
            status=auction.status.value,
            image=auction.image,
            published=auction.published,
            views=auction.views,
            interested_buyers=[InterestedBuyerResponse.from_domain(b) for b in auction.interested_buyers],
            registrations=[RegistrationResponse.from_domain(r) for r in auction.registrations],
            revenue=auction.revenue,
            created_at=auction.created_at,
            updated_at=auction.updated_at,
        )


class PaginationResponse(BaseModel):
    current: int
    pages: int
    total: int
    limit: int


class AuctionListResponse(BaseModel):
    auctions: List[AuctionResponse]
    pagination: PaginationResponse

    @classmethod
    def from_page(cls, page: AuctionPage, now: datetime) -> "AuctionListResponse":
        return cls(
            auctions=[AuctionResponse.from_domain(a, now) for a in page.items],
            pagination=PaginationResponse(
                current=page.page, pages=page.total_pages, total=page.total, limit=page.limit
            ),
        )


# ============================================================================
# Registration Models
# ============================================================================

class RegistrationRequest(BaseModel):
    """Formal buyer registration for an auction."""
    buyer_name: Optional[str] = None
    buyer_email: Optional[str] = None
    buyer_phone: Optional[str] = None
    buyer_company: Optional[str] = None
    payment_method: Optional[str] = None
    special_requirements: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "buyer_name": "Amina Otieno",
                "buyer_email": "amina@example.com",
                "buyer_phone": "+254711000000",
                "buyer_company": "Green Acres Ltd",
                "payment_method": "mpesa",
            }
        }


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class RegistrationAuctionResponse(BaseModel):
    id: UUID
    title: str
    date: datetime
    location: str
    registration_fee: Decimal


class RegistrationListingResponse(RegistrationResponse):
    """Registration annotated with its parent auction."""
    auction: RegistrationAuctionResponse

    @classmethod
    def from_listing(cls, listing: RegistrationListing) -> "RegistrationListingResponse":
        base = RegistrationResponse.from_domain(listing.registration)
        return cls(
            **base.model_dump(),
            auction=RegistrationAuctionResponse(
                id=listing.auction.id,
                title=listing.auction.title,
                date=listing.auction.date,
                location=listing.auction.location,
                registration_fee=listing.auction.registration_fee,
            ),
        )


class RegistrationStatsResponse(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int


class RegistrationListResponse(BaseModel):
    registrations: List[RegistrationListingResponse]
    pagination: PaginationResponse
    stats: RegistrationStatsResponse

    @classmethod
    def from_page(cls, page: RegistrationPage) -> "RegistrationListResponse":
        return cls(
            registrations=[RegistrationListingResponse.from_listing(item) for item in page.items],
            pagination=PaginationResponse(
                current=page.page, pages=page.total_pages, total=page.total, limit=page.limit
            ),
            stats=RegistrationStatsResponse(
                total=page.stats.total,
                pending=page.stats.pending,
                approved=page.stats.approved,
                rejected=page.stats.rejected,
            ),
        )


# ============================================================================
# Statistics Models
# ============================================================================

class AuctionStatsResponse(BaseModel):
    total_auctions: int
    active_auctions: int
    upcoming_auctions: int
    completed_auctions: int
    cancelled_auctions: int
    total_registrations: int
    total_revenue: Decimal

    @classmethod
    def from_domain(cls, stats: AuctionStats) -> "AuctionStatsResponse":
        return cls(
            total_auctions=stats.total_auctions,
            active_auctions=stats.active_auctions,
            upcoming_auctions=stats.upcoming_auctions,
            completed_auctions=stats.completed_auctions,
            cancelled_auctions=stats.cancelled_auctions,
            total_registrations=stats.total_registrations,
            total_revenue=stats.total_revenue,
        )


class MonthlyPerformanceResponse(BaseModel):
    month: str
    auctions: int
    revenue: Decimal


class MonthlyRegistrationsResponse(BaseModel):
    month: str
    registrations: int
    approved: int


class PerformanceResponse(BaseModel):
    monthly: List[MonthlyPerformanceResponse]
    registrations: List[MonthlyRegistrationsResponse]

    @classmethod
    def from_domain(cls, data: PerformanceData) -> "PerformanceResponse":
        return cls(
            monthly=[
                MonthlyPerformanceResponse(month=m.month, auctions=m.auctions, revenue=m.revenue)
                for m in data.monthly
            ],
            registrations=[
                MonthlyRegistrationsResponse(month=r.month, registrations=r.registrations, approved=r.approved)
                for r in data.registrations
            ],
        )


class ActivityItemResponse(BaseModel):
    type: str
    description: str
    timestamp: datetime
    auction_title: Optional[str] = None
    buyer_name: Optional[str] = None

    @classmethod
    def from_domain(cls, item: ActivityItem) -> "ActivityItemResponse":
        return cls(
            type=item.type,
            description=item.description,
            timestamp=item.timestamp,
            auction_title=item.auction_title,
            buyer_name=item.buyer_name,
        )
