"""
Statistics and reporting for auctions.

All figures are computed in memory from the stored auctions; nothing here
mutates state.

Revenue is the sum of recorded livestock `final_price` values (missing values
count as 0). Final prices are only recorded when an auction is finalized, so
auctions that were only created/updated always contribute 0.
"""

from __future__ import annotations

import calendar
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from domain.activity import ActivityAction, ActivityEntry
from domain.auction import AuctionStatus
from domain.registration import RegistrationStatus
from domain.time import Clock, utc_now
from repositories.activity_log_repository import ActivityLogRepository
from repositories.auction_repository import AuctionRepository

PERFORMANCE_WINDOW_MONTHS = 6

RECENT_ACTIVITY_ACTIONS = (
    ActivityAction.AUCTION_CREATED,
    ActivityAction.AUCTION_UPDATED,
    ActivityAction.AUCTION_CANCELLED,
    ActivityAction.AUCTION_COMPLETED,
    ActivityAction.REGISTRATION_CREATED,
    ActivityAction.REGISTRATION_APPROVED,
    ActivityAction.REGISTRATION_REJECTED,
)

_ACTIVITY_DESCRIPTIONS: Dict[ActivityAction, str] = {
    ActivityAction.AUCTION_CREATED: 'New auction "{auction_title}" was created',
    ActivityAction.AUCTION_UPDATED: 'Auction "{auction_title}" was updated',
    ActivityAction.AUCTION_CANCELLED: 'Auction "{auction_title}" was cancelled',
    ActivityAction.AUCTION_COMPLETED: 'Auction "{auction_title}" was completed',
    ActivityAction.REGISTRATION_CREATED: '{buyer_name} registered for "{auction_title}"',
    ActivityAction.REGISTRATION_APPROVED: 'Registration approved for {buyer_name} in "{auction_title}"',
    ActivityAction.REGISTRATION_REJECTED: 'Registration rejected for {buyer_name} in "{auction_title}"',
}


@dataclass(frozen=True, slots=True)
class AuctionStats:
    total_auctions: int
    active_auctions: int
    upcoming_auctions: int
    completed_auctions: int
    cancelled_auctions: int
    total_registrations: int
    total_revenue: Decimal


@dataclass(frozen=True, slots=True)
class MonthlyPerformance:
    month: str  # YYYY-MM
    auctions: int
    revenue: Decimal


@dataclass(frozen=True, slots=True)
class MonthlyRegistrations:
    month: str
    registrations: int
    approved: int


@dataclass(frozen=True, slots=True)
class PerformanceData:
    monthly: List[MonthlyPerformance]
    registrations: List[MonthlyRegistrations]


@dataclass(frozen=True, slots=True)
class ActivityItem:
    type: str
    description: str
    timestamp: datetime
    auction_title: Optional[str]
    buyer_name: Optional[str]


def subtract_months(moment: datetime, months: int) -> datetime:
    """Same day-of-month `months` earlier, clamped to the end of shorter months."""

    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return moment.replace(year=year, month=month, day=min(moment.day, last_day))


def describe_activity(entry: ActivityEntry) -> str:
    template = _ACTIVITY_DESCRIPTIONS.get(entry.action)
    if template is None:
        return "Unknown activity"
    details = entry.details or {}
    return template.format(
        auction_title=details.get("auction_title"),
        buyer_name=details.get("buyer_name"),
    )


class StatisticsService:
    def __init__(
        self,
        repository: AuctionRepository,
        activity_log: ActivityLogRepository,
        clock: Clock = utc_now,
    ) -> None:
        self._repository = repository
        self._activity_log = activity_log
        self._clock = clock

    def get_auction_stats(self) -> AuctionStats:
        """
        Headline counts across every auction.

        - active: date in the future and the auction is running (ONGOING)
        - upcoming: date in the future, whatever the status
        """

        now = self._clock()
        auctions = self._repository.list_all()

        return AuctionStats(
            total_auctions=len(auctions),
            active_auctions=sum(1 for a in auctions if a.date > now and a.status is AuctionStatus.ONGOING),
            upcoming_auctions=sum(1 for a in auctions if a.date > now),
            completed_auctions=sum(1 for a in auctions if a.status is AuctionStatus.COMPLETED),
            cancelled_auctions=sum(1 for a in auctions if a.status is AuctionStatus.CANCELLED),
            total_registrations=sum(len(a.registrations) for a in auctions),
            total_revenue=sum((a.revenue for a in auctions), Decimal("0")),
        )

    def get_performance_data(self) -> PerformanceData:
        """Monthly auction, revenue and registration trends for the last six months."""

        since = subtract_months(self._clock(), PERFORMANCE_WINDOW_MONTHS)
        auctions = self._repository.list_created_since(since)

        auction_counts: Dict[str, int] = defaultdict(int)
        revenue: Dict[str, Decimal] = defaultdict(Decimal)
        registrations: Dict[str, int] = defaultdict(int)
        approved: Dict[str, int] = defaultdict(int)

        for auction in auctions:
            month = auction.created_at.strftime("%Y-%m")
            auction_counts[month] += 1
            revenue[month] += auction.revenue
            registrations[month] += len(auction.registrations)
            approved[month] += sum(
                1 for r in auction.registrations if r.status is RegistrationStatus.APPROVED
            )

        months = sorted(auction_counts)
        return PerformanceData(
            monthly=[
                MonthlyPerformance(month=m, auctions=auction_counts[m], revenue=revenue[m])
                for m in months
            ],
            registrations=[
                MonthlyRegistrations(month=m, registrations=registrations[m], approved=approved[m])
                for m in months
            ],
        )

    def get_recent_activity(self, limit: int = 20) -> List[ActivityItem]:
        entries = self._activity_log.list_recent(RECENT_ACTIVITY_ACTIONS, limit)
        return [
            ActivityItem(
                type=entry.action.value,
                description=describe_activity(entry),
                timestamp=entry.timestamp,
                auction_title=(entry.details or {}).get("auction_title"),
                buyer_name=(entry.details or {}).get("buyer_name"),
            )
            for entry in entries
        ]


__all__ = [
    "ActivityItem",
    "AuctionStats",
    "MonthlyPerformance",
    "MonthlyRegistrations",
    "PerformanceData",
    "StatisticsService",
    "describe_activity",
    "subtract_months",
]
