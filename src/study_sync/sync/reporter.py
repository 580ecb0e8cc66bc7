"""Status and snapshot formatting.

Provides human-readable and machine-readable output for the command line:

- ``format_status`` -- multi-line sync status.
- ``status_to_json`` -- structured dict for ``--json`` output.
- ``format_snapshot_summary`` -- one-line progress summary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import ProgressSnapshot, SyncStatus


def format_status(status: SyncStatus) -> str:
    """Format the orchestrator status as human-readable text.

    A rate limit is reported first because it gates every remote action.

    Args:
        status: Result of ``SyncOrchestrator.get_status()``.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    if status.rate_limited_until:
        lines.append(
            f"Sync: rate limited until {status.rate_limited_until}"
        )
    elif status.enabled:
        lines.append("Sync: enabled")
    else:
        lines.append("Sync: disabled")

    lines.append(f"Document: {status.document_id or '-'}")
    lines.append(f"Last sync: {status.last_sync or 'never'}")
    if status.in_progress:
        lines.append("A sync is in progress")

    return "\n".join(lines)


def status_to_json(status: SyncStatus) -> dict[str, Any]:
    """Return the status as a JSON-serialisable dict with camelCase keys."""
    return {
        "enabled": status.enabled,
        "lastSync": status.last_sync,
        "documentId": status.document_id,
        "inProgress": status.in_progress,
        "rateLimitedUntil": status.rate_limited_until,
    }


def format_snapshot_summary(snapshot: ProgressSnapshot) -> str:
    """One line: item count plus the most recent completion, if any."""
    count = len(snapshot.completed_ids)
    noun = "item" if count == 1 else "items"
    dates = [
        snapshot.completion_dates[i]
        for i in snapshot.completed_ids
        if i in snapshot.completion_dates
    ]
    if not dates:
        return f"{count} completed {noun}"
    return f"{count} completed {noun}, latest on {max(dates)}"
