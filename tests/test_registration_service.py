"""
Tests for `services/registration_service.py`.

Covers:
- End-to-end: create auction, register, approve; emails and activity recorded
- Required buyer fields, closed registration, duplicate buyer_email
- Formal registration is independent of interest registration
- Approve/reject exclusivity and not-found handling
- Email and activity-log failures never block the state change
- Listing with status filter, counts and pagination; CSV export
"""

from __future__ import annotations

import csv
from dataclasses import replace
from datetime import timedelta
from io import StringIO
from uuid import uuid4

import pytest

from domain.activity import ActivityAction
from domain.errors import ConflictError, NotFoundError, StorageError, ValidationError
from domain.registration import RegistrationStatus
from services.csv_export_service import REGISTRATION_CSV_COLUMNS


def _buyer(email: str = "alice@example.com", **overrides) -> dict:
    data = {
        "buyer_name": "Alice Wanjiru",
        "buyer_email": email,
        "buyer_phone": "+254722000000",
        "buyer_company": "Wanjiru Farms",
        "payment_method": "mpesa",
    }
    data.update(overrides)
    return data


def test_end_to_end_register_and_approve(
    auction_service,
    registration_service,
    repository,
    email_sender,
    activity_log,
    admin,
    auction_payload,
    clock,
) -> None:
    auction_payload.update(
        date=(clock.now + timedelta(days=30)).isoformat(),
        start_time="10:00",
        end_time="16:00",
    )
    auction = auction_service.create_auction(auction_payload, admin)

    summary = registration_service.create_registration(auction.id, _buyer())
    assert summary.status is RegistrationStatus.PENDING
    assert summary.registered_at == clock.now

    clock.advance(hours=2)
    approved = registration_service.approve_registration(summary.id, admin)

    assert approved.status is RegistrationStatus.APPROVED
    assert approved.approved_at == clock.now
    assert approved.approved_by == admin.id

    stored = repository.get_by_id(auction.id).find_registration(summary.id)
    assert stored.status is RegistrationStatus.APPROVED

    assert email_sender.templates() == [
        "auction-registration-confirmation",
        "auction-registration-approved",
    ]
    assert email_sender.sent[1]["template_data"]["bidder_number"] == approved.bidder_number
    assert ActivityAction.REGISTRATION_CREATED in activity_log.actions()
    assert ActivityAction.REGISTRATION_APPROVED in activity_log.actions()


def test_confirmation_email_content(registration_service, make_auction, email_sender) -> None:
    auction = make_auction(title="Goat Auction")

    summary = registration_service.create_registration(auction.id, _buyer())

    message = email_sender.sent[0]
    assert message["to"] == "alice@example.com"
    assert message["subject"] == "Auction Registration Received"
    assert message["template_data"]["auction_title"] == "Goat Auction"
    assert message["template_data"]["registration_id"] == str(summary.id)


def test_registration_activity_is_attributed_to_the_buyer(registration_service, make_auction, activity_log) -> None:
    auction = make_auction()

    registration_service.create_registration(auction.id, _buyer())

    entry = activity_log.entries[0]
    assert entry.action is ActivityAction.REGISTRATION_CREATED
    assert entry.actor_name == "Alice Wanjiru"
    assert entry.actor_role == "buyer"
    assert entry.actor_id is None


@pytest.mark.parametrize("missing", ["buyer_name", "buyer_email", "buyer_phone"])
def test_required_buyer_fields(registration_service, make_auction, missing: str) -> None:
    auction = make_auction()

    with pytest.raises(ValidationError, match="Name, email, and phone are required"):
        registration_service.create_registration(auction.id, _buyer(**{missing: ""}))


def test_registration_defaults(registration_service, make_auction, repository) -> None:
    auction = make_auction()

    summary = registration_service.create_registration(
        auction.id,
        {"buyer_name": "Bob", "buyer_email": "bob@example.com", "buyer_phone": "0711"},
    )

    stored = repository.get_by_id(auction.id).find_registration(summary.id)
    assert stored.payment_method == "cash"
    assert stored.payment_status == "pending"
    assert stored.buyer_company == ""


def test_registration_for_missing_auction(registration_service) -> None:
    with pytest.raises(NotFoundError, match="Auction not found"):
        registration_service.create_registration(uuid4(), _buyer())


def test_registration_closed_once_auction_date_reached(registration_service, make_auction, clock, email_sender) -> None:
    auction = make_auction(date=clock.now + timedelta(hours=1))
    clock.advance(hours=1)

    with pytest.raises(ConflictError, match="Registration is closed for this auction"):
        registration_service.create_registration(auction.id, _buyer())

    assert email_sender.sent == []


def test_duplicate_email_is_rejected_and_list_unchanged(registration_service, make_auction, repository) -> None:
    auction = make_auction()
    registration_service.create_registration(auction.id, _buyer("buyer@test.com"))

    with pytest.raises(ConflictError, match="You have already registered for this auction"):
        registration_service.create_registration(auction.id, _buyer("buyer@test.com"))

    assert len(repository.get_by_id(auction.id).registrations) == 1


def test_interest_with_registered_email_does_not_conflict(
    auction_service, registration_service, make_auction, repository
) -> None:
    auction = make_auction()
    registration_service.create_registration(auction.id, _buyer("alice@example.com"))

    auction_service.register_interest(auction.id, "Alice", "alice@example.com")

    stored = repository.get_by_id(auction.id)
    assert len(stored.registrations) == 1
    assert len(stored.interested_buyers) == 1


def test_concurrent_duplicate_registration_is_caught_on_retry(registration_service, make_auction, repository) -> None:
    """A registration landing between read and write is seen when the write is retried."""

    auction = make_auction()

    def concurrent_registration(_):
        registration_service.create_registration(auction.id, _buyer("race@example.com", buyer_name="First"))

    repository.before_save = concurrent_registration

    with pytest.raises(ConflictError, match="You have already registered"):
        registration_service.create_registration(auction.id, _buyer("race@example.com", buyer_name="Second"))

    registrations = repository.get_by_id(auction.id).registrations
    assert [r.buyer_name for r in registrations] == ["First"]


# ============================================================================
# Approve / reject
# ============================================================================

def test_reject_registration(registration_service, make_auction, email_sender, activity_log, admin) -> None:
    auction = make_auction()
    summary = registration_service.create_registration(auction.id, _buyer())

    rejected = registration_service.reject_registration(summary.id, admin, "Missing livestock permit")

    assert rejected.status is RegistrationStatus.REJECTED
    assert rejected.rejection_reason == "Missing livestock permit"
    assert email_sender.sent[-1]["template_name"] == "auction-registration-rejected"
    assert email_sender.sent[-1]["template_data"]["reason"] == "Missing livestock permit"
    assert activity_log.entries[-1].details["reason"] == "Missing livestock permit"


def test_reject_without_reason_uses_defaults(registration_service, make_auction, email_sender, activity_log, admin) -> None:
    auction = make_auction()
    summary = registration_service.create_registration(auction.id, _buyer())

    registration_service.reject_registration(summary.id, admin)

    assert email_sender.sent[-1]["template_data"]["reason"] == "Please contact us for more information"
    assert activity_log.entries[-1].details["reason"] == "No reason provided"


def test_approved_registration_cannot_be_rejected(registration_service, make_auction, repository, admin) -> None:
    auction = make_auction()
    summary = registration_service.create_registration(auction.id, _buyer())
    registration_service.approve_registration(summary.id, admin)

    with pytest.raises(ConflictError, match="Registration has already been approved"):
        registration_service.reject_registration(summary.id, admin)

    stored = repository.get_by_id(auction.id).find_registration(summary.id)
    assert stored.status is RegistrationStatus.APPROVED
    assert stored.approved_at is not None
    assert stored.rejected_at is None


def test_rejected_registration_cannot_be_approved(registration_service, make_auction, admin) -> None:
    auction = make_auction()
    summary = registration_service.create_registration(auction.id, _buyer())
    registration_service.reject_registration(summary.id, admin)

    with pytest.raises(ConflictError, match="Registration has already been rejected"):
        registration_service.approve_registration(summary.id, admin)


def test_registration_missing_from_saved_auction_is_storage_error(
    registration_service, make_auction, repository, email_sender, monkeypatch
) -> None:
    auction = make_auction()
    save = repository.save
    monkeypatch.setattr(repository, "save", lambda a: replace(save(a), registrations=()))

    with pytest.raises(StorageError, match="missing the new registration"):
        registration_service.create_registration(auction.id, _buyer())

    assert email_sender.sent == []


def test_approve_unknown_registration(registration_service, admin) -> None:
    with pytest.raises(NotFoundError, match="Registration not found"):
        registration_service.approve_registration(uuid4(), admin)
    with pytest.raises(NotFoundError, match="Registration not found"):
        registration_service.reject_registration("garbage", admin)


# ============================================================================
# Best-effort side effects
# ============================================================================

def test_email_failure_does_not_block_registration(registration_service, make_auction, repository, email_sender) -> None:
    auction = make_auction()
    email_sender.failures_remaining = 10

    summary = registration_service.create_registration(auction.id, _buyer())

    assert repository.get_by_id(auction.id).find_registration(summary.id) is not None
    assert email_sender.sent == []
    assert email_sender.attempts == 2


def test_email_is_retried_once(registration_service, make_auction, email_sender) -> None:
    auction = make_auction()
    email_sender.failures_remaining = 1

    registration_service.create_registration(auction.id, _buyer())

    assert email_sender.templates() == ["auction-registration-confirmation"]


def test_activity_log_failure_does_not_block_approval(
    registration_service, make_auction, repository, activity_log, admin
) -> None:
    auction = make_auction()
    summary = registration_service.create_registration(auction.id, _buyer())
    activity_log.failures_remaining = 10

    registration_service.approve_registration(summary.id, admin)

    stored = repository.get_by_id(auction.id).find_registration(summary.id)
    assert stored.status is RegistrationStatus.APPROVED


# ============================================================================
# Listing / export
# ============================================================================

def _seed(registration_service, make_auction, admin, clock):
    spring = make_auction(title="Spring Sale", date=clock.now + timedelta(days=20))
    winter = make_auction(title="Winter Sale", date=clock.now + timedelta(days=5))
    a = registration_service.create_registration(spring.id, _buyer("a@example.com", buyer_name="A"))
    registration_service.create_registration(spring.id, _buyer("b@example.com", buyer_name="B"))
    c = registration_service.create_registration(winter.id, _buyer("c@example.com", buyer_name="C"))
    registration_service.approve_registration(a.id, admin)
    registration_service.reject_registration(c.id, admin)
    return spring, winter


def test_list_registrations_across_auctions(registration_service, make_auction, admin, clock) -> None:
    _seed(registration_service, make_auction, admin, clock)

    page = registration_service.list_registrations()

    # Most recent auction first, then registration order
    assert [item.registration.buyer_name for item in page.items] == ["A", "B", "C"]
    assert page.items[0].auction.title == "Spring Sale"
    assert (page.stats.total, page.stats.pending, page.stats.approved, page.stats.rejected) == (3, 1, 1, 1)


def test_list_registrations_filters(registration_service, make_auction, admin, clock) -> None:
    spring, winter = _seed(registration_service, make_auction, admin, clock)

    pending = registration_service.list_registrations(status="pending")
    assert [item.registration.buyer_name for item in pending.items] == ["B"]

    scoped = registration_service.list_registrations(auction_id=str(winter.id))
    assert [item.registration.buyer_name for item in scoped.items] == ["C"]

    paged = registration_service.list_registrations(page=2, limit=2)
    assert [item.registration.buyer_name for item in paged.items] == ["C"]
    assert paged.total == 3
    assert paged.total_pages == 2

    with pytest.raises(ValidationError):
        registration_service.list_registrations(status="maybe")


def test_export_registrations_csv(registration_service, make_auction, activity_log, admin, clock) -> None:
    spring, _ = _seed(registration_service, make_auction, admin, clock)

    content = registration_service.export_registrations(admin, str(spring.id))

    rows = list(csv.reader(StringIO(content)))
    assert rows[0] == REGISTRATION_CSV_COLUMNS
    assert [row[3] for row in rows[1:]] == ["A", "B"]
    assert rows[1][7] == "approved"
    assert activity_log.entries[-1].action is ActivityAction.REGISTRATIONS_EXPORTED
    assert activity_log.entries[-1].details["export_count"] == 2


def test_export_with_no_registrations_is_header_only(registration_service, admin) -> None:
    content = registration_service.export_registrations(admin)

    assert list(csv.reader(StringIO(content))) == [REGISTRATION_CSV_COLUMNS]
