"""
Domain: Buyer registration for an auction.

A Registration is owned by exactly one Auction and has no independent identity
outside it.

State machine:
- Initial state is PENDING.
- PENDING -> APPROVED or PENDING -> REJECTED.
- APPROVED and REJECTED are terminal; a registration is approved XOR rejected.

Transitions return new instances; the original record is never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from domain.errors import ConflictError
from domain.time import require_utc_timestamp

DEFAULT_PAYMENT_METHOD = "cash"
DEFAULT_PAYMENT_STATUS = "pending"


class RegistrationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class Registration:
    """Formal, approval-gated application of a buyer to take part in an auction."""

    id: UUID
    buyer_name: str
    buyer_email: str
    buyer_phone: str
    registered_at: datetime
    buyer_company: str = ""
    payment_method: str = DEFAULT_PAYMENT_METHOD
    special_requirements: str = ""
    status: RegistrationStatus = RegistrationStatus.PENDING
    payment_status: str = DEFAULT_PAYMENT_STATUS

    # Set only by the corresponding transition
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("registered_at", self.registered_at)
        if self.approved_at is not None and self.rejected_at is not None:
            raise ValueError("A registration cannot be both approved and rejected")

    @property
    def bidder_number(self) -> str:
        """Human-readable bidder number: last 6 characters of the id, uppercased."""

        return str(self.id)[-6:].upper()

    def _require_pending(self) -> None:
        if self.status is not RegistrationStatus.PENDING:
            raise ConflictError(f"Registration has already been {self.status.value}")

    def approved(self, *, approved_at: datetime, approved_by: str) -> "Registration":
        require_utc_timestamp("approved_at", approved_at)
        self._require_pending()
        return replace(
            self,
            status=RegistrationStatus.APPROVED,
            approved_at=approved_at,
            approved_by=approved_by,
        )

    def rejected(self, *, rejected_at: datetime, rejected_by: str, reason: Optional[str] = None) -> "Registration":
        require_utc_timestamp("rejected_at", rejected_at)
        self._require_pending()
        return replace(
            self,
            status=RegistrationStatus.REJECTED,
            rejected_at=rejected_at,
            rejected_by=rejected_by,
            rejection_reason=reason or "",
        )


__all__ = [
    "DEFAULT_PAYMENT_METHOD",
    "DEFAULT_PAYMENT_STATUS",
    "Registration",
    "RegistrationStatus",
]
