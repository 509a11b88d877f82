"""
Tests for the HTTP API (`api/`).

Services are wired to the in-memory fixtures via `app.dependency_overrides`.

Covers:
- Response envelope and status-code mapping (400 / 401 / 403 / 404 / 500)
- Static auction routes are not captured by `/auctions/{auction_id}`
- Auction, interest, registration and reporting endpoints end to end
- CSV export download headers
"""

from __future__ import annotations

import csv
from io import StringIO
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from api.dependencies import (
    get_auction_service,
    get_clock,
    get_registration_service,
    get_statistics_service,
)
from api.main import app
from domain.errors import StorageError

ADMIN_HEADERS = {"X-Actor-Id": "admin-1", "X-Actor-Name": "Grace Admin", "X-Actor-Role": "admin"}
BUYER_HEADERS = {"X-Actor-Id": "user-7", "X-Actor-Name": "Alice", "X-Actor-Role": "buyer"}


@pytest.fixture
def client(auction_service, registration_service, statistics_service, clock):
    app.dependency_overrides[get_auction_service] = lambda: auction_service
    app.dependency_overrides[get_registration_service] = lambda: registration_service
    app.dependency_overrides[get_statistics_service] = lambda: statistics_service
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def created_auction(client, auction_payload) -> dict:
    response = client.post("/api/v1/auctions", json=auction_payload, headers=ADMIN_HEADERS)
    assert response.status_code == 201
    return response.json()["data"]


def _register(client, auction_id: str, email: str = "alice@example.com"):
    return client.post(
        f"/api/v1/auctions/{auction_id}/registrations",
        json={"buyer_name": "Alice Wanjiru", "buyer_email": email, "buyer_phone": "+254722000000"},
    )


def test_health_check(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


# ============================================================================
# Auctions
# ============================================================================

def test_create_auction_response(created_auction) -> None:
    assert created_auction["title"] == "Spring Cattle Sale"
    assert created_auction["status"] == "upcoming"
    assert created_auction["formatted_date"] == "January 25, 2030"
    assert created_auction["days_until_auction"] == 10
    assert created_auction["registration_fee"] == "500"
    assert created_auction["revenue"] == "0"
    assert created_auction["livestock"][0]["category"] == "cattle"
    assert created_auction["auctioneer"]["phone"] == "+254700000000"


def test_create_auction_requires_actor_headers(client, auction_payload) -> None:
    response = client.post("/api/v1/auctions", json=auction_payload)

    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "message": "Authentication required",
        "data": None,
        "error": None,
    }


def test_create_auction_requires_admin_role(client, auction_payload) -> None:
    response = client.post("/api/v1/auctions", json=auction_payload, headers=BUYER_HEADERS)

    assert response.status_code == 403


def test_create_auction_validation_error(client, auction_payload) -> None:
    del auction_payload["title"]

    response = client.post("/api/v1/auctions", json=auction_payload, headers=ADMIN_HEADERS)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Title, description, location, date, start time, and end time are required."


def test_create_auction_with_nan_fee_is_400(client, auction_payload) -> None:
    auction_payload["registration_fee"] = "NaN"

    response = client.post("/api/v1/auctions", json=auction_payload, headers=ADMIN_HEADERS)

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_malformed_body_uses_envelope(client, created_auction) -> None:
    response = client.post(f"/api/v1/auctions/{created_auction['id']}/register", json=["not", "an", "object"])

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_get_auction_counts_views(client, created_auction) -> None:
    url = f"/api/v1/auctions/{created_auction['id']}"

    client.get(url)
    response = client.get(url)

    assert response.status_code == 200
    assert response.json()["data"]["views"] == 2


def test_get_unknown_auction_is_404(client) -> None:
    for auction_id in (uuid4(), "not-a-uuid"):
        response = client.get(f"/api/v1/auctions/{auction_id}")
        assert response.status_code == 404
        assert response.json()["message"] == "Auction not found"


def test_static_routes_are_not_treated_as_ids(client, created_auction) -> None:
    upcoming = client.get("/api/v1/auctions/upcoming")
    assert upcoming.status_code == 200
    assert [a["id"] for a in upcoming.json()["data"]] == [created_auction["id"]]

    stats = client.get("/api/v1/auctions/stats", headers=ADMIN_HEADERS)
    assert stats.status_code == 200
    assert stats.json()["data"]["total_auctions"] == 1


def test_list_auctions_with_pagination(client, created_auction) -> None:
    response = client.get("/api/v1/auctions", params={"category": "goats", "limit": 5})

    data = response.json()["data"]
    assert [a["id"] for a in data["auctions"]] == [created_auction["id"]]
    assert data["pagination"] == {"current": 1, "pages": 1, "total": 1, "limit": 5}


def test_unpublished_auctions_only_listed_for_admins(client, auction_payload) -> None:
    auction_payload["published"] = False
    client.post("/api/v1/auctions", json=auction_payload, headers=ADMIN_HEADERS)

    public = client.get("/api/v1/auctions", params={"admin": "true"})
    admin = client.get("/api/v1/auctions", params={"admin": "true"}, headers=ADMIN_HEADERS)
    listing = client.get("/api/v1/admin/auctions", headers=ADMIN_HEADERS)

    assert public.json()["data"]["pagination"]["total"] == 0
    assert admin.json()["data"]["pagination"]["total"] == 1
    assert listing.json()["data"]["pagination"]["total"] == 1


def test_update_and_delete_auction(client, created_auction) -> None:
    url = f"/api/v1/auctions/{created_auction['id']}"

    updated = client.put(url, json={"location": "Naivasha"}, headers=ADMIN_HEADERS)
    assert updated.status_code == 200
    assert updated.json()["data"]["location"] == "Naivasha"
    assert updated.json()["data"]["title"] == created_auction["title"]

    deleted = client.delete(url, headers=ADMIN_HEADERS)
    assert deleted.json() == {"success": True, "message": "Auction deleted successfully", "data": None, "error": None}
    assert client.get(url).status_code == 404


def test_register_interest_duplicate_contact(client, created_auction) -> None:
    url = f"/api/v1/auctions/{created_auction['id']}/register"

    first = client.post(url, json={"name": "Ali", "contact": "555-1234"})
    second = client.post(url, json={"name": "Ali", "contact": "555-1234"})

    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json()["message"] == "Already registered for this auction"


def test_cancel_and_finalize(client, created_auction) -> None:
    finalized = client.post(
        f"/api/v1/auctions/{created_auction['id']}/finalize",
        json={"final_prices": {"0": "50000", "1": "7000"}},
        headers=ADMIN_HEADERS,
    )
    assert finalized.status_code == 200
    assert finalized.json()["data"]["status"] == "completed"
    assert finalized.json()["data"]["revenue"] == "57000"

    cancelled = client.post(f"/api/v1/auctions/{created_auction['id']}/cancel", headers=ADMIN_HEADERS)
    assert cancelled.status_code == 400
    assert cancelled.json()["message"] == "A completed auction cannot be cancelled"


# ============================================================================
# Registrations
# ============================================================================

def test_registration_approval_flow(client, created_auction, email_sender) -> None:
    created = _register(client, created_auction["id"])
    assert created.status_code == 201
    registration = created.json()["data"]
    assert registration["status"] == "pending"

    approved = client.post(f"/api/v1/registrations/{registration['id']}/approve", headers=ADMIN_HEADERS)

    assert approved.status_code == 200
    data = approved.json()["data"]
    assert data["status"] == "approved"
    assert data["approved_by"] == "admin-1"
    assert data["bidder_number"] == registration["id"][-6:].upper()
    assert email_sender.templates() == ["auction-registration-confirmation", "auction-registration-approved"]

    again = client.post(f"/api/v1/registrations/{registration['id']}/reject", headers=ADMIN_HEADERS)
    assert again.status_code == 400
    assert again.json()["message"] == "Registration has already been approved"


def test_duplicate_registration_is_400(client, created_auction) -> None:
    _register(client, created_auction["id"], "buyer@test.com")
    response = _register(client, created_auction["id"], "buyer@test.com")

    assert response.status_code == 400
    assert response.json()["message"] == "You have already registered for this auction"


def test_registration_requires_buyer_fields(client, created_auction) -> None:
    response = client.post(
        f"/api/v1/auctions/{created_auction['id']}/registrations",
        json={"buyer_name": "Alice"},
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Name, email, and phone are required"


def test_reject_with_reason(client, created_auction) -> None:
    registration_id = _register(client, created_auction["id"]).json()["data"]["id"]

    response = client.post(
        f"/api/v1/registrations/{registration_id}/reject",
        json={"reason": "Incomplete documents"},
        headers=ADMIN_HEADERS,
    )

    assert response.json()["data"]["status"] == "rejected"
    assert response.json()["data"]["rejection_reason"] == "Incomplete documents"


def test_unknown_registration_is_404(client) -> None:
    response = client.post(f"/api/v1/registrations/{uuid4()}/approve", headers=ADMIN_HEADERS)

    assert response.status_code == 404
    assert response.json()["message"] == "Registration not found"


def test_list_registrations(client, created_auction) -> None:
    _register(client, created_auction["id"], "a@example.com")
    _register(client, created_auction["id"], "b@example.com")

    response = client.get("/api/v1/registrations", params={"status": "pending"}, headers=ADMIN_HEADERS)

    data = response.json()["data"]
    assert len(data["registrations"]) == 2
    assert data["registrations"][0]["auction"]["title"] == "Spring Cattle Sale"
    assert data["stats"] == {"total": 2, "pending": 2, "approved": 0, "rejected": 0}

    assert client.get("/api/v1/registrations").status_code == 401


def test_export_registrations_download(client, created_auction) -> None:
    _register(client, created_auction["id"])

    response = client.get("/api/v1/registrations/export", headers=ADMIN_HEADERS)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"] == "attachment; filename=auction-registrations-2030-01-15.csv"
    rows = list(csv.reader(StringIO(response.text)))
    assert rows[1][3] == "Alice Wanjiru"


# ============================================================================
# Reporting
# ============================================================================

def test_reporting_endpoints(client, created_auction, clock) -> None:
    clock.advance(minutes=1)
    _register(client, created_auction["id"])

    stats = client.get("/api/v1/auctions/stats", headers=ADMIN_HEADERS).json()["data"]
    performance = client.get("/api/v1/auctions/performance", headers=ADMIN_HEADERS).json()["data"]
    activity = client.get("/api/v1/auctions/recent-activity", headers=ADMIN_HEADERS).json()["data"]

    assert stats["total_registrations"] == 1
    assert stats["total_revenue"] == "0"
    assert performance["monthly"] == [{"month": "2030-01", "auctions": 1, "revenue": "0"}]
    assert [item["type"] for item in activity] == ["auction_registration_created", "auction_created"]


def test_storage_failure_is_500_without_detail(client, monkeypatch) -> None:
    class BrokenStatistics:
        def get_auction_stats(self):
            raise StorageError("Failed to list auctions: connection reset")

    monkeypatch.delenv("APP_ENV", raising=False)
    app.dependency_overrides[get_statistics_service] = lambda: BrokenStatistics()

    response = client.get("/api/v1/auctions/stats", headers=ADMIN_HEADERS)

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Server error", "data": None, "error": None}


def test_storage_failure_detail_in_development(client, monkeypatch) -> None:
    class BrokenStatistics:
        def get_auction_stats(self):
            raise StorageError("Failed to list auctions: connection reset")

    monkeypatch.setenv("APP_ENV", "development")
    app.dependency_overrides[get_statistics_service] = lambda: BrokenStatistics()

    response = client.get("/api/v1/auctions/stats", headers=ADMIN_HEADERS)

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to list auctions: connection reset"
