#!/usr/bin/env python3
"""
Registration Export Script

Exports auction registrations from the Supabase database to CSV, using the
same format as the admin download endpoint. The export is recorded in the
activity log under the given operator.

Usage:
    python export_registrations.py --output registrations.csv
    python export_registrations.py --auction-id <uuid> --output spring_sale.csv
"""

from __future__ import annotations

import argparse
import csv
import sys
from io import StringIO
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.activity import Actor
from repositories.activity_log_repository import SupabaseActivityLogRepository
from repositories.auction_repository import SupabaseAuctionRepository
from repositories.client import get_supabase
from services.auction_lifecycle import AuctionLifecycle
from services.email_service import LoggingEmailSender
from services.notifications import NotificationDispatcher
from services.registration_service import RegistrationService


def build_registration_service() -> RegistrationService:
    client = get_supabase()
    return RegistrationService(
        AuctionLifecycle(SupabaseAuctionRepository(client)),
        NotificationDispatcher(
            activity_log=SupabaseActivityLogRepository(client),
            # Exports never send email
            email_sender=LoggingEmailSender(),
        ),
    )


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Export auction registrations from Supabase database to CSV",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Export registrations for every auction
  python export_registrations.py --output registrations.csv

  # Export registrations for one auction
  python export_registrations.py --auction-id 123e4567-e89b-12d3-a456-426614174000 --output sale.csv
        """
    )

    parser.add_argument(
        "--output",
        "-o",
        required=True,
        help="Path to output CSV file"
    )

    parser.add_argument(
        "--auction-id",
        "-a",
        help="Only export registrations for this auction"
    )

    parser.add_argument(
        "--operator",
        default="cli",
        help="Operator name recorded in the activity log (default: cli)"
    )

    args = parser.parse_args()

    try:
        print("Fetching registrations from database...")
        print(f"  Auction filter: {args.auction_id or 'None (all)'}")
        print()

        service = build_registration_service()
        actor = Actor(id=args.operator, username=args.operator, role="system_admin")
        csv_content = service.export_registrations(actor, args.auction_id)

        with open(args.output, "w", newline="", encoding="utf-8") as f:
            f.write(csv_content)

        row_count = len(list(csv.reader(StringIO(csv_content)))) - 1

        print("=" * 60)
        print("EXPORT SUMMARY")
        print("=" * 60)
        print(f"Registrations exported: {row_count}")
        print(f"Output file: {args.output}")
        print("=" * 60)

        return 0

    except KeyboardInterrupt:
        print("\n\nExport interrupted by user")
        return 130

    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
