"""
Registrations API Endpoints.

Formal buyer registration (public) and the admin approval workflow:
listing, CSV export, approve and reject.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from api.dependencies import get_admin_actor, get_clock, get_optional_actor, get_registration_service
from api.models import (
    ApiResponse,
    RegistrationListResponse,
    RegistrationRequest,
    RegistrationResponse,
    RejectRequest,
)
from domain.activity import Actor
from domain.time import Clock
from services.registration_service import RegistrationService

router = APIRouter()


@router.post(
    "/auctions/{auction_id}/registrations",
    response_model=ApiResponse,
    status_code=201,
    summary="Register for Auction",
)
def create_registration(
    auction_id: str,
    request: RegistrationRequest,
    actor: Optional[Actor] = Depends(get_optional_actor),
    registrations: RegistrationService = Depends(get_registration_service),
):
    """
    Register a buyer for an auction.

    **Rules:**
    - buyer_name, buyer_email and buyer_phone are required
    - registration closes once the auction date is reached
    - one registration per buyer_email per auction

    The registration starts as `pending`; a confirmation email is sent
    (best-effort, a delivery failure does not fail the request).

    **Success response:**
    ```json
    {
      "success": true,
      "message": "Registration submitted successfully",
      "data": {"id": "...", "status": "pending", "registered_at": "2030-04-01T10:00:00Z"},
      "error": null
    }
    ```
    """
    summary = registrations.create_registration(
        auction_id,
        request.model_dump(exclude_none=True),
        actor,
    )
    return ApiResponse(
        success=True,
        message="Registration submitted successfully",
        data={
            "id": summary.id,
            "status": summary.status.value,
            "registered_at": summary.registered_at,
        },
    )


@router.get(
    "/registrations",
    response_model=ApiResponse,
    summary="List Registrations",
    description="Registrations across auctions with per-status counts."
)
def list_registrations(
    auction_id: Optional[str] = Query(None, description="Auction id or 'all'"),
    status: Optional[str] = Query(None, description="pending, approved, rejected or 'all'"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    _: Actor = Depends(get_admin_actor),
    registrations: RegistrationService = Depends(get_registration_service),
):
    result = registrations.list_registrations(
        auction_id=auction_id,
        status=status,
        page=page,
        limit=limit,
    )
    return ApiResponse(
        success=True,
        message="Registrations retrieved",
        data=RegistrationListResponse.from_page(result),
    )


@router.get(
    "/registrations/export",
    summary="Export Registrations CSV",
    description="Download registrations as CSV (optionally scoped to one auction).",
    response_class=Response
)
def export_registrations(
    auction_id: Optional[str] = Query(None, description="Auction id or 'all'"),
    actor: Actor = Depends(get_admin_actor),
    registrations: RegistrationService = Depends(get_registration_service),
    clock: Clock = Depends(get_clock),
):
    """
    Download the registration list.

    **Security:**
    - Formula-triggering leading characters are stripped from buyer-supplied fields
    - Every value is quoted

    **Response:**
    CSV file download with filename: `auction-registrations-YYYY-MM-DD.csv`
    """
    csv_content = registrations.export_registrations(actor, auction_id)
    filename = f"auction-registrations-{clock().date().isoformat()}.csv"
    return Response(
        content=csv_content,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.post(
    "/registrations/{registration_id}/approve",
    response_model=ApiResponse,
    summary="Approve Registration",
)
def approve_registration(
    registration_id: str,
    actor: Actor = Depends(get_admin_actor),
    registrations: RegistrationService = Depends(get_registration_service),
):
    registration = registrations.approve_registration(registration_id, actor)
    return ApiResponse(
        success=True,
        message="Registration approved successfully",
        data=RegistrationResponse.from_domain(registration),
    )


@router.post(
    "/registrations/{registration_id}/reject",
    response_model=ApiResponse,
    summary="Reject Registration",
)
def reject_registration(
    registration_id: str,
    request: Optional[RejectRequest] = None,
    actor: Actor = Depends(get_admin_actor),
    registrations: RegistrationService = Depends(get_registration_service),
):
    reason = request.reason if request else None
    registration = registrations.reject_registration(registration_id, actor, reason)
    return ApiResponse(
        success=True,
        message="Registration rejected",
        data=RegistrationResponse.from_domain(registration),
    )
