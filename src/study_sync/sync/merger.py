"""Merge of local and remote progress snapshots.

Completed ids are combined by set union, so two devices completing
different items concurrently never lose each other's work.  Completion
dates are resolved per key: the latest timestamp wins, independently for
every id, rather than the whole document being taken from one side.

The merge performs no I/O and is deterministic for a given pair of inputs.
"""

from __future__ import annotations

from datetime import datetime, timezone

from .models import ProgressSnapshot


def _parse_timestamp(value: str) -> datetime | None:
    """Parse an ISO 8601 string; naive values are read as UTC."""
    try:
        parsed = datetime.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_later(candidate: str, existing: str | None) -> bool:
    """Return ``True`` if *candidate* is strictly later than *existing*.

    A missing *existing* entry counts as the earliest possible time.  When
    either side does not parse as ISO 8601 the raw strings are compared,
    which keeps the outcome deterministic.
    """
    if existing is None:
        return True
    cand_dt = _parse_timestamp(candidate)
    exist_dt = _parse_timestamp(existing)
    if cand_dt is None or exist_dt is None:
        return candidate > existing
    return cand_dt > exist_dt


def merge_progress(
    local: ProgressSnapshot | None,
    remote: ProgressSnapshot | None,
) -> ProgressSnapshot:
    """Combine a local and a remote snapshot.

    Args:
        local: The local copy, or ``None`` if there is none.
        remote: The remote copy, or ``None`` if the document holds none.

    Returns:
        *local* when *remote* is absent (an empty snapshot when both are),
        *remote* when *local* is absent, otherwise a new snapshot whose
        ids are the union of both sides and whose dates hold the latest
        timestamp per id.  ``last_modified`` of a merged result is the
        later of the two advisory stamps.
    """
    if remote is None:
        return local if local is not None else ProgressSnapshot()
    if local is None:
        return remote

    # dict preserves first-seen order: local ids, then remote-only ids
    completed_ids = list(
        dict.fromkeys([*local.completed_ids, *remote.completed_ids])
    )

    completion_dates = dict(remote.completion_dates)
    for item_id, date in local.completion_dates.items():
        if is_later(date, completion_dates.get(item_id)):
            completion_dates[item_id] = date

    last_modified = remote.last_modified
    if local.last_modified is not None and is_later(
        local.last_modified, last_modified
    ):
        last_modified = local.last_modified

    return ProgressSnapshot(
        completed_ids=completed_ids,
        completion_dates=completion_dates,
        last_modified=last_modified,
    )
