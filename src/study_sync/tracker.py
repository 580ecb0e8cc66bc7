"""Caller-side progress service built on the sync orchestrator.

``ProgressTracker`` owns the local copy of progress (stored under the
``progress`` key of the persistence port) and decides what happens when
automatic sync fails: the failure is logged and the local copy is used,
so a network or API problem degrades the tracker to local-only mode
instead of breaking it.  Explicit actions (forced upload/download,
setup) go straight to the orchestrator and fail loudly.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

import requests

from .errors import MalformedRemoteDataError, SyncError
from .storage import PROGRESS_KEY, KeyValueStore
from .sync.models import ProgressSnapshot, parse_snapshot
from .sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProgressTracker:
    """Load, update and persist local progress, syncing when enabled.

    Args:
        store: Persistence port holding the local copy.
        orchestrator: Sync engine; may be disabled.
        clock: Returns the current timezone-aware time.
    """

    def __init__(
        self,
        store: KeyValueStore,
        orchestrator: SyncOrchestrator,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._orchestrator = orchestrator
        self._clock = clock or _utcnow

    @property
    def orchestrator(self) -> SyncOrchestrator:
        return self._orchestrator

    # ------------------------------------------------------------------
    # Local copy
    # ------------------------------------------------------------------

    def load_local(self) -> ProgressSnapshot:
        """Return the local copy; an empty snapshot if none or unreadable."""
        raw = self._store.get(PROGRESS_KEY)
        if raw is None:
            return ProgressSnapshot()
        try:
            snapshot = parse_snapshot(raw, source="local progress")
        except MalformedRemoteDataError as exc:
            logger.error("Local progress is unreadable, starting empty: %s", exc)
            return ProgressSnapshot()
        return snapshot or ProgressSnapshot()

    def save_local(self, snapshot: ProgressSnapshot) -> None:
        self._store.set(PROGRESS_KEY, snapshot.to_content())

    # ------------------------------------------------------------------
    # Sync-aware operations
    # ------------------------------------------------------------------

    async def load_progress(self) -> ProgressSnapshot:
        """Sync the local copy if enabled and return the result."""
        return await self._sync_or_local(self.load_local())

    async def save_progress(
        self, snapshot: ProgressSnapshot
    ) -> ProgressSnapshot:
        """Persist *snapshot* locally first, then sync it if enabled."""
        self.save_local(snapshot)
        return await self._sync_or_local(snapshot)

    async def complete(
        self, item_ids: Iterable[str], when: str | None = None
    ) -> ProgressSnapshot:
        """Mark *item_ids* complete.

        Items already complete keep their original completion date.
        """
        timestamp = when or self._clock().isoformat()
        local = self.load_local()
        completed = list(local.completed_ids)
        dates = dict(local.completion_dates)
        for item_id in item_ids:
            if item_id in completed:
                continue
            completed.append(item_id)
            dates[item_id] = timestamp

        updated = ProgressSnapshot(
            completed_ids=completed,
            completion_dates=dates,
            last_modified=timestamp,
        )
        return await self.save_progress(updated)

    def export_progress(self) -> str:
        """Return the local copy as JSON text."""
        return self.load_local().to_content()

    async def import_progress(self, text: str) -> ProgressSnapshot:
        """Replace the local copy with exported JSON and sync it.

        Raises:
            ValueError: If *text* is not a progress export.
        """
        data = json.loads(text)
        if (
            not isinstance(data, dict)
            or not isinstance(data.get("completedIds"), list)
            or not isinstance(data.get("completionDates"), dict)
        ):
            raise ValueError(
                "Invalid progress file: expected completedIds (list) "
                "and completionDates (object)"
            )
        snapshot = ProgressSnapshot.model_validate(data)
        logger.info(
            "Importing %d completed items", len(snapshot.completed_ids)
        )
        return await self.save_progress(snapshot)

    async def _sync_or_local(
        self, local: ProgressSnapshot
    ) -> ProgressSnapshot:
        if not self._orchestrator.enabled:
            return local
        try:
            synced = await self._orchestrator.sync(local)
        except (SyncError, requests.RequestException) as exc:
            logger.warning("Sync failed, using local data: %s", exc)
            return local
        if synced is not local:
            self.save_local(synced)
        return synced
