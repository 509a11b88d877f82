"""
Activity log repository (persistence).

Append-only audit trail stored in the Supabase `activity_logs` table. Callers
treat appends as fire-and-forget; this module still raises StorageError so the
dispatcher can decide how to report failures.
"""

from __future__ import annotations

import os
from typing import Any, Iterable, List, Mapping, Protocol

from postgrest.exceptions import APIError

from domain.activity import ActivityAction, ActivityEntry
from domain.errors import StorageError
from domain.time import parse_utc_datetime, to_iso_utc

_ACTIVITY_LOGS_TABLE: str = os.getenv("ACTIVITY_LOGS_TABLE", "activity_logs")


class ActivityLogRepository(Protocol):
    def append(self, entry: ActivityEntry) -> None: ...

    def list_recent(self, actions: Iterable[ActivityAction], limit: int) -> List[ActivityEntry]: ...


def _entry_to_row(entry: ActivityEntry) -> dict[str, Any]:
    return {
        "user_id": entry.actor_id,
        "username": entry.actor_name,
        "user_role": entry.actor_role,
        "action": entry.action.value,
        "resource": entry.resource,
        "resource_id": entry.resource_id,
        "details": dict(entry.details),
        "ip_address": entry.ip_address,
        "user_agent": entry.user_agent,
        "status": entry.status,
        "severity": entry.severity,
        "timestamp_utc": to_iso_utc(entry.timestamp),
    }


def _row_to_entry(row: Mapping[str, Any]) -> ActivityEntry:
    return ActivityEntry(
        actor_id=row.get("user_id"),
        actor_name=str(row.get("username") or ""),
        actor_role=str(row.get("user_role") or "unknown"),
        action=ActivityAction(str(row["action"])),
        resource=str(row.get("resource") or ""),
        resource_id=row.get("resource_id"),
        details=row.get("details") or {},
        ip_address=row.get("ip_address"),
        user_agent=row.get("user_agent"),
        status=str(row.get("status") or "success"),
        severity=str(row.get("severity") or "info"),
        timestamp=parse_utc_datetime(row["timestamp_utc"]),
    )


class SupabaseActivityLogRepository:
    """ActivityLogRepository backed by a Supabase table."""

    def __init__(self, client: Any, table: str = _ACTIVITY_LOGS_TABLE) -> None:
        self._client = client
        self._table = table

    def append(self, entry: ActivityEntry) -> None:
        try:
            response = self._client.table(self._table).insert(_entry_to_row(entry)).execute()
        except APIError as e:
            raise StorageError(f"Failed to log activity: {e.message}") from e
        error = getattr(response, "error", None)
        if error:
            raise StorageError(f"Failed to log activity: {error}")

    def list_recent(self, actions: Iterable[ActivityAction], limit: int) -> List[ActivityEntry]:
        try:
            response = (
                self._client.table(self._table)
                .select("*")
                .in_("action", [action.value for action in actions])
                .order("timestamp_utc", desc=True)
                .limit(limit)
                .execute()
            )
        except APIError as e:
            raise StorageError(f"Failed to list activity: {e.message}") from e
        error = getattr(response, "error", None)
        if error:
            raise StorageError(f"Failed to list activity: {error}")

        rows = getattr(response, "data", None) or []
        return [_row_to_entry(row) for row in rows]


__all__ = [
    "ActivityLogRepository",
    "SupabaseActivityLogRepository",
]
