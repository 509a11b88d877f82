"""
Pytest configuration and shared fixtures.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, services and api packages.

The fixtures wire the services against in-memory collaborators:
- InMemoryAuctionRepository: honours the compare-and-set `version` contract
- InMemoryActivityLog / RecordingEmailSender / RecordingImageStore: record
  calls and can be told to fail
- FixedClock: deterministic "now" that tests can move forward
"""

import sys
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from uuid import UUID, uuid4

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.activity import ActivityAction, ActivityEntry, Actor  # noqa: E402
from domain.auction import Auction, AuctionStatus, LivestockCategory, LivestockItem  # noqa: E402
from domain.errors import ConcurrentModificationError, DependencyError, StorageError  # noqa: E402
from repositories.auction_repository import AuctionFilters  # noqa: E402
from services.auction_lifecycle import AuctionLifecycle  # noqa: E402
from services.auction_service import AuctionService  # noqa: E402
from services.notifications import NotificationDispatcher  # noqa: E402
from services.registration_service import RegistrationService  # noqa: E402
from services.statistics_service import StatisticsService  # noqa: E402

NOW = datetime(2030, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


# ============================================================================
# In-memory collaborators
# ============================================================================

class FixedClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class InMemoryAuctionRepository:
    """AuctionRepository over a dict, with the same compare-and-set semantics as Supabase."""

    def __init__(self) -> None:
        self.auctions: Dict[UUID, Auction] = {}
        self.save_calls = 0
        # Called with the auction about to be saved, before the version check;
        # lets a test interleave a concurrent write.
        self.before_save: Optional[Callable[[Auction], None]] = None

    def insert(self, auction: Auction) -> Auction:
        if auction.id in self.auctions:
            raise StorageError("Failed to insert auction: duplicate id")
        self.auctions[auction.id] = auction
        return auction

    def save(self, auction: Auction) -> Auction:
        self.save_calls += 1
        if self.before_save is not None:
            hook, self.before_save = self.before_save, None
            hook(auction)
        current = self.auctions.get(auction.id)
        if current is None or current.version != auction.version:
            raise ConcurrentModificationError("Auction was modified concurrently, please retry")
        saved = replace(auction, version=auction.version + 1)
        self.auctions[auction.id] = saved
        return saved

    def delete(self, auction_id: UUID) -> None:
        self.auctions.pop(auction_id, None)

    def get_by_id(self, auction_id: UUID) -> Optional[Auction]:
        return self.auctions.get(auction_id)

    def find_by_registration_id(self, registration_id: UUID) -> Optional[Auction]:
        for auction in self.auctions.values():
            if auction.find_registration(registration_id) is not None:
                return auction
        return None

    def list_auctions(self, filters: AuctionFilters, limit: int, offset: int) -> Tuple[List[Auction], int]:
        matches = [
            a for a in self.auctions.values()
            if (not filters.published_only or a.published)
            and (filters.status is None or a.status is filters.status)
            and (filters.category is None or a.has_category(filters.category))
            and (not filters.location or filters.location.lower() in a.location.lower())
        ]
        matches.sort(key=lambda a: a.date, reverse=not filters.date_ascending)
        return matches[offset:offset + limit], len(matches)

    def list_by_created(self, limit: int, offset: int) -> Tuple[List[Auction], int]:
        ordered = sorted(self.auctions.values(), key=lambda a: a.created_at, reverse=True)
        return ordered[offset:offset + limit], len(ordered)

    def find_upcoming(self, now: datetime, limit: int) -> List[Auction]:
        matches = [
            a for a in self.auctions.values()
            if a.published and a.status is AuctionStatus.UPCOMING and a.date >= now
        ]
        return sorted(matches, key=lambda a: a.date)[:limit]

    def find_by_category(self, category: LivestockCategory) -> List[Auction]:
        matches = [a for a in self.auctions.values() if a.published and a.has_category(category)]
        return sorted(matches, key=lambda a: a.date)

    def list_all(self, auction_id: Optional[UUID] = None) -> List[Auction]:
        matches = [a for a in self.auctions.values() if auction_id is None or a.id == auction_id]
        return sorted(matches, key=lambda a: a.date, reverse=True)

    def list_created_since(self, since: datetime) -> List[Auction]:
        return [a for a in self.auctions.values() if a.created_at >= since]


class InMemoryActivityLog:
    def __init__(self) -> None:
        self.entries: List[ActivityEntry] = []
        self.failures_remaining = 0

    def append(self, entry: ActivityEntry) -> None:
        if self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise StorageError("Failed to log activity: unavailable")
        self.entries.append(entry)

    def list_recent(self, actions: Iterable[ActivityAction], limit: int) -> List[ActivityEntry]:
        wanted = set(actions)
        matches = [e for e in self.entries if e.action in wanted]
        return sorted(matches, key=lambda e: e.timestamp, reverse=True)[:limit]

    def actions(self) -> List[ActivityAction]:
        return [e.action for e in self.entries]


class RecordingEmailSender:
    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.failures_remaining = 0
        self.attempts = 0

    def send_email(self, *, to: str, subject: str, template_name: str, template_data: Any) -> None:
        self.attempts += 1
        if self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise DependencyError("Failed to send email: connection refused")
        self.sent.append(
            {"to": to, "subject": subject, "template_name": template_name, "template_data": dict(template_data)}
        )

    def templates(self) -> List[str]:
        return [m["template_name"] for m in self.sent]


class RecordingImageStore:
    def __init__(self) -> None:
        self.deleted: List[str] = []
        self.fail = False

    def delete(self, image_ref: str) -> None:
        if self.fail:
            raise DependencyError("Failed to delete image: storage unavailable")
        self.deleted.append(image_ref)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def repository() -> InMemoryAuctionRepository:
    return InMemoryAuctionRepository()


@pytest.fixture
def activity_log() -> InMemoryActivityLog:
    return InMemoryActivityLog()


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def image_store() -> RecordingImageStore:
    return RecordingImageStore()


@pytest.fixture
def lifecycle(repository: InMemoryAuctionRepository, clock: FixedClock) -> AuctionLifecycle:
    return AuctionLifecycle(repository, clock=clock)


@pytest.fixture
def notifications(activity_log: InMemoryActivityLog, email_sender: RecordingEmailSender) -> NotificationDispatcher:
    return NotificationDispatcher(activity_log=activity_log, email_sender=email_sender)


@pytest.fixture
def auction_service(
    lifecycle: AuctionLifecycle,
    image_store: RecordingImageStore,
    notifications: NotificationDispatcher,
) -> AuctionService:
    return AuctionService(lifecycle, image_store, notifications)


@pytest.fixture
def registration_service(lifecycle: AuctionLifecycle, notifications: NotificationDispatcher) -> RegistrationService:
    return RegistrationService(lifecycle, notifications)


@pytest.fixture
def statistics_service(
    repository: InMemoryAuctionRepository,
    activity_log: InMemoryActivityLog,
    clock: FixedClock,
) -> StatisticsService:
    return StatisticsService(repository, activity_log, clock)


@pytest.fixture
def admin() -> Actor:
    return Actor(id="admin-1", username="Grace Admin", role="admin")


@pytest.fixture
def auction_payload() -> Dict[str, Any]:
    """A valid creation payload dated ten days after NOW."""

    return {
        "title": "Spring Cattle Sale",
        "description": "Quality breeding stock from local farms",
        "location": "Nakuru Showground",
        "date": (NOW + timedelta(days=10)).isoformat(),
        "start_time": "09:00",
        "end_time": "15:30",
        "livestock": [
            {"category": "cattle", "breed": "Boran", "quantity": 12, "starting_price": "45000"},
            {"category": "goats", "quantity": 30, "starting_price": "6000"},
        ],
        "auctioneer": {"name": "J. Mwangi", "contact": {"phone": "+254700000000"}},
        "registration_fee": "500",
    }


@pytest.fixture
def make_auction(repository: InMemoryAuctionRepository) -> Callable[..., Auction]:
    """Store an auction directly in the repository (bypasses creation rules)."""

    def _make(**overrides: Any) -> Auction:
        fields: Dict[str, Any] = {
            "id": uuid4(),
            "title": "Weekly Livestock Market",
            "description": "Mixed livestock",
            "location": "Eldoret",
            "date": NOW + timedelta(days=7),
            "start_time": "10:00",
            "end_time": "14:00",
            "created_at": NOW - timedelta(days=1),
            "updated_at": NOW - timedelta(days=1),
            "livestock": (
                LivestockItem(category=LivestockCategory.CATTLE, quantity=5, starting_price=Decimal("30000")),
            ),
        }
        fields.update(overrides)
        return repository.insert(Auction(**fields))

    return _make
