#!/usr/bin/env python3
"""
Auction Status Sweep

Auction status is derived lazily: a past-dated UPCOMING auction only becomes
COMPLETED the next time it is saved. This script forces that save for every
auction whose stored status is stale, so reports and filtered listings see the
derived status without waiting for the next write.

Safe to run repeatedly (e.g. from cron); a second run changes nothing.

Usage:
    python sweep_auction_status.py
    python sweep_auction_status.py --dry-run
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.auction import derive_status
from repositories.auction_repository import SupabaseAuctionRepository
from repositories.client import get_supabase
from services.auction_lifecycle import AuctionLifecycle


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Persist derived auction statuses (past UPCOMING auctions become COMPLETED)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the auctions that would change without saving them"
    )
    args = parser.parse_args()

    try:
        lifecycle = AuctionLifecycle(SupabaseAuctionRepository(get_supabase()))

        if args.dry_run:
            now = lifecycle.clock()
            stale = [a for a in lifecycle.repository.list_all() if derive_status(a, now) is not a]
            print(f"{len(stale)} auction(s) would be marked completed:")
            for auction in stale:
                print(f"  {auction.id}  {auction.date:%Y-%m-%d}  {auction.title}")
            return 0

        changed = lifecycle.sweep_statuses()
        print(f"✓ Updated {len(changed)} auction(s)")
        for auction in changed:
            print(f"  {auction.id}  {auction.status.value}  {auction.title}")
        return 0

    except KeyboardInterrupt:
        print("\n\nSweep interrupted by user")
        return 130

    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
