"""
Auctions API Endpoints.

Endpoints for browsing auctions, registering interest, and the admin
operations (create, update, delete, cancel, finalize) plus dashboard
statistics.

Static paths (`/auctions/upcoming`, `/auctions/stats`, ...) are declared before
`/auctions/{auction_id}` so they are never captured as an id.

Domain errors raised by the services are turned into the response envelope by
the exception handlers in `api.main`.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import (
    get_admin_actor,
    get_auction_service,
    get_clock,
    get_optional_actor,
    get_statistics_service,
    is_admin,
)
from api.models import (
    ActivityItemResponse,
    ApiResponse,
    AuctionListResponse,
    AuctionResponse,
    AuctionStatsResponse,
    AuctionWriteRequest,
    FinalizeRequest,
    InterestRequest,
    PerformanceResponse,
)
from domain.activity import Actor
from domain.time import Clock
from services.auction_service import AuctionService
from services.statistics_service import StatisticsService

router = APIRouter()


# ============================================================================
# Dashboard statistics
# ============================================================================

@router.get(
    "/auctions/stats",
    response_model=ApiResponse,
    summary="Auction Statistics",
    description="Headline counts and total revenue across all auctions."
)
def auction_stats(
    _: Actor = Depends(get_admin_actor),
    statistics: StatisticsService = Depends(get_statistics_service),
):
    stats = statistics.get_auction_stats()
    return ApiResponse(
        success=True,
        message="Auction statistics retrieved",
        data=AuctionStatsResponse.from_domain(stats),
    )


@router.get(
    "/auctions/performance",
    response_model=ApiResponse,
    summary="Auction Performance",
    description="Monthly auctions, revenue and registrations for the last six months."
)
def auction_performance(
    _: Actor = Depends(get_admin_actor),
    statistics: StatisticsService = Depends(get_statistics_service),
):
    data = statistics.get_performance_data()
    return ApiResponse(
        success=True,
        message="Performance data retrieved",
        data=PerformanceResponse.from_domain(data),
    )


@router.get(
    "/auctions/recent-activity",
    response_model=ApiResponse,
    summary="Recent Auction Activity",
)
def recent_activity(
    limit: int = Query(20, ge=1, le=100),
    _: Actor = Depends(get_admin_actor),
    statistics: StatisticsService = Depends(get_statistics_service),
):
    items = statistics.get_recent_activity(limit)
    return ApiResponse(
        success=True,
        message="Recent activity retrieved",
        data=[ActivityItemResponse.from_domain(item) for item in items],
    )


# ============================================================================
# Public browsing
# ============================================================================

@router.get(
    "/auctions",
    response_model=ApiResponse,
    summary="List Auctions",
    description="Filtered, paginated auction listing."
)
def list_auctions(
    category: Optional[str] = Query(None, description="Livestock category or 'all'"),
    location: Optional[str] = Query(None, description="Case-insensitive substring"),
    status: Optional[str] = Query("upcoming", description="Auction status or 'all'"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: bool = Query(False, description="Include unpublished auctions (admins only)"),
    actor: Optional[Actor] = Depends(get_optional_actor),
    auctions: AuctionService = Depends(get_auction_service),
    clock: Clock = Depends(get_clock),
):
    """
    List auctions.

    **Ordering:**
    - `status=upcoming` (default): soonest auction first
    - any other status or `all`: most recent auction date first

    Unpublished auctions are included only when `admin=true` is requested by
    an admin actor.
    """
    result = auctions.list_auctions(
        category=category,
        location=location,
        status=status,
        admin=admin and is_admin(actor),
        page=page,
        limit=limit,
    )
    return ApiResponse(
        success=True,
        message="Auctions retrieved",
        data=AuctionListResponse.from_page(result, clock()),
    )


@router.get(
    "/auctions/upcoming",
    response_model=ApiResponse,
    summary="Upcoming Auctions",
)
def upcoming_auctions(
    limit: int = Query(5, ge=1, le=50),
    auctions: AuctionService = Depends(get_auction_service),
    clock: Clock = Depends(get_clock),
):
    now = clock()
    items = auctions.find_upcoming(limit)
    return ApiResponse(
        success=True,
        message="Upcoming auctions retrieved",
        data=[AuctionResponse.from_domain(a, now) for a in items],
    )


@router.get(
    "/auctions/category/{category}",
    response_model=ApiResponse,
    summary="Auctions by Livestock Category",
)
def auctions_by_category(
    category: str,
    auctions: AuctionService = Depends(get_auction_service),
    clock: Clock = Depends(get_clock),
):
    now = clock()
    items = auctions.find_by_category(category)
    return ApiResponse(
        success=True,
        message="Auctions retrieved",
        data=[AuctionResponse.from_domain(a, now) for a in items],
    )


@router.get(
    "/admin/auctions",
    response_model=ApiResponse,
    summary="List All Auctions (Admin)",
    description="Every auction regardless of status or publication, newest first."
)
def list_admin_auctions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    _: Actor = Depends(get_admin_actor),
    auctions: AuctionService = Depends(get_auction_service),
    clock: Clock = Depends(get_clock),
):
    result = auctions.list_admin_auctions(page=page, limit=limit)
    return ApiResponse(
        success=True,
        message="Auctions retrieved",
        data=AuctionListResponse.from_page(result, clock()),
    )


@router.get(
    "/auctions/{auction_id}",
    response_model=ApiResponse,
    summary="Get Auction",
    description="Fetch one auction. Every successful fetch counts as a view."
)
def get_auction(
    auction_id: str,
    auctions: AuctionService = Depends(get_auction_service),
    clock: Clock = Depends(get_clock),
):
    auction = auctions.get_auction(auction_id)
    return ApiResponse(
        success=True,
        message="Auction retrieved",
        data=AuctionResponse.from_domain(auction, clock()),
    )


@router.post(
    "/auctions/{auction_id}/register",
    response_model=ApiResponse,
    summary="Register Interest",
    description="Lightweight interest registration; no approval and no email."
)
def register_interest(
    auction_id: str,
    request: InterestRequest,
    auctions: AuctionService = Depends(get_auction_service),
):
    auctions.register_interest(auction_id, request.name, request.contact)
    return ApiResponse(success=True, message="Successfully registered for auction")


# ============================================================================
# Admin operations
# ============================================================================

@router.post(
    "/auctions",
    response_model=ApiResponse,
    status_code=201,
    summary="Create Auction",
)
def create_auction(
    request: AuctionWriteRequest,
    actor: Actor = Depends(get_admin_actor),
    auctions: AuctionService = Depends(get_auction_service),
    clock: Clock = Depends(get_clock),
):
    """
    Create an auction.

    **Validation:**
    - title, description, location, date, start_time and end_time are required
    - date must be in the future
    - start_time / end_time in HH:MM (24-hour)
    - registration_deadline (if given) must not be after the date
    """
    auction = auctions.create_auction(
        request.model_dump(exclude={"image"}, exclude_none=True),
        actor,
        image=request.image,
    )
    return ApiResponse(
        success=True,
        message="Auction created successfully",
        data=AuctionResponse.from_domain(auction, clock()),
    )


@router.put(
    "/auctions/{auction_id}",
    response_model=ApiResponse,
    summary="Update Auction",
    description="Partial update: only supplied fields change."
)
def update_auction(
    auction_id: str,
    request: AuctionWriteRequest,
    actor: Actor = Depends(get_admin_actor),
    auctions: AuctionService = Depends(get_auction_service),
    clock: Clock = Depends(get_clock),
):
    auction = auctions.update_auction(
        auction_id,
        request.model_dump(exclude={"image"}, exclude_none=True),
        actor,
        image=request.image,
    )
    return ApiResponse(
        success=True,
        message="Auction updated successfully",
        data=AuctionResponse.from_domain(auction, clock()),
    )


@router.delete(
    "/auctions/{auction_id}",
    response_model=ApiResponse,
    summary="Delete Auction",
)
def delete_auction(
    auction_id: str,
    actor: Actor = Depends(get_admin_actor),
    auctions: AuctionService = Depends(get_auction_service),
):
    auctions.delete_auction(auction_id, actor)
    return ApiResponse(success=True, message="Auction deleted successfully")


@router.post(
    "/auctions/{auction_id}/cancel",
    response_model=ApiResponse,
    summary="Cancel Auction",
)
def cancel_auction(
    auction_id: str,
    actor: Actor = Depends(get_admin_actor),
    auctions: AuctionService = Depends(get_auction_service),
    clock: Clock = Depends(get_clock),
):
    auction = auctions.cancel_auction(auction_id, actor)
    return ApiResponse(
        success=True,
        message="Auction cancelled",
        data=AuctionResponse.from_domain(auction, clock()),
    )


@router.post(
    "/auctions/{auction_id}/finalize",
    response_model=ApiResponse,
    summary="Finalize Auction",
    description="Record final sale prices per livestock line and mark the auction completed."
)
def finalize_auction(
    auction_id: str,
    request: FinalizeRequest,
    actor: Actor = Depends(get_admin_actor),
    auctions: AuctionService = Depends(get_auction_service),
    clock: Clock = Depends(get_clock),
):
    auction = auctions.finalize_auction(auction_id, request.final_prices, actor)
    return ApiResponse(
        success=True,
        message="Auction finalized",
        data=AuctionResponse.from_domain(auction, clock()),
    )
