"""
Auction lifecycle manager.

Owns the persistence boundary for the Auction aggregate:
- every write stamps `updated_at` and applies `derive_status` first, so a
  past-dated UPCOMING auction is COMPLETED by its next save
- read-modify-write cycles are retried when the compare-and-set save loses a
  race, re-reading the document so invariants (duplicate buyers, closed
  registration) are checked against the latest state
- exposes the published, date-ordered read queries (upcoming, by category)
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional

from domain.auction import Auction, LivestockCategory, derive_status
from domain.errors import ConcurrentModificationError, NotFoundError
from domain.time import Clock, utc_now
from repositories.auction_repository import AuctionRepository

logger = logging.getLogger(__name__)


class AuctionLifecycle:
    def __init__(
        self,
        repository: AuctionRepository,
        clock: Clock = utc_now,
        max_write_attempts: int = 3,
    ) -> None:
        if max_write_attempts < 1:
            raise ValueError("max_write_attempts must be >= 1")
        self.repository = repository
        self.clock = clock
        self._max_write_attempts = max_write_attempts

    def _prepare(self, auction: Auction, now: datetime) -> Auction:
        return derive_status(replace(auction, updated_at=now), now)

    def insert(self, auction: Auction) -> Auction:
        return self.repository.insert(self._prepare(auction, self.clock()))

    def save(self, auction: Auction) -> Auction:
        return self.repository.save(self._prepare(auction, self.clock()))

    def mutate(
        self,
        load: Callable[[], Optional[Auction]],
        change: Callable[[Auction, datetime], Auction],
        not_found_message: str = "Auction not found",
    ) -> Auction:
        """
        Load an auction, apply `change` and save the result.

        Args:
            load: fetches the current document (None if it does not exist)
            change: pure function (auction, now) -> new auction; may raise domain errors
            not_found_message: message for the NotFoundError raised when load returns None

        Raises:
            NotFoundError: if the auction does not exist
            ConcurrentModificationError: if every attempt lost a write race
        """

        for attempt in range(1, self._max_write_attempts + 1):
            auction = load()
            if auction is None:
                raise NotFoundError(not_found_message)
            now = self.clock()
            try:
                return self.repository.save(self._prepare(change(auction, now), now))
            except ConcurrentModificationError:
                if attempt == self._max_write_attempts:
                    raise
                logger.info(
                    "Auction changed during write, retrying",
                    extra={"auction_id": str(auction.id), "attempt": attempt},
                )
        raise AssertionError("unreachable")

    def find_upcoming(self, limit: int = 5) -> List[Auction]:
        return self.repository.find_upcoming(self.clock(), limit)

    def find_by_category(self, category: LivestockCategory) -> List[Auction]:
        return self.repository.find_by_category(category)

    def sweep_statuses(self) -> List[Auction]:
        """Persist every auction whose derived status differs from the stored one."""

        now = self.clock()
        changed: List[Auction] = []
        for auction in self.repository.list_all():
            if derive_status(auction, now) is auction:
                continue
            try:
                changed.append(self.save(auction))
            except ConcurrentModificationError:
                # Whoever won the race also applied derive_status on save
                logger.info("Skipped auction changed during sweep", extra={"auction_id": str(auction.id)})
        return changed


__all__ = ["AuctionLifecycle"]
