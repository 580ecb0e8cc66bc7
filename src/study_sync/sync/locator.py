"""Find-or-create of the single shared progress document.

``DocumentLocator.ensure()`` makes sure a device treats exactly one remote
document as canonical and heals itself after races or deletions:

1. A cached id is verified with a fetch.  Any failure other than a
   rate-limit refusal discards it.
2. The listing is scanned for a document tagged with the application
   marker that holds the progress file.  The oldest match wins so that
   devices which raced each other converge on the same document.
3. Otherwise the scan is repeated once right before creating a new
   document seeded with an empty snapshot.

A failing listing is never followed by a blind create: that is exactly
how divergent documents appear.  The re-check narrows the window in
which two devices can both create a document but does not close it; the
store offers no idempotency key to do better.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import requests

from ..core.async_utils import run_sync
from ..errors import RateLimitedError, SyncError
from ..storage import DOCUMENT_ID_KEY, KeyValueStore
from .models import DocumentSummary, ProgressSnapshot

if TYPE_CHECKING:
    from ..core.client import DocumentStoreClient

logger = logging.getLogger(__name__)


class DocumentLocator:
    """Resolve and cache the id of the shared progress document.

    Args:
        client: Store client bound to the user's credential.
        store: Persistence port holding the cached ``document_id``.
        description: Marker the document is tagged with.
        filename: File inside the document that holds the snapshot.
    """

    def __init__(
        self,
        client: DocumentStoreClient,
        store: KeyValueStore,
        description: str,
        filename: str,
    ) -> None:
        self._client = client
        self._store = store
        self._description = description
        self._filename = filename

    @property
    def document_id(self) -> str | None:
        return self._store.get(DOCUMENT_ID_KEY)

    def invalidate(self) -> None:
        """Forget the cached document id."""
        if self.document_id is not None:
            logger.info("Discarding cached document id %s", self.document_id)
        self._store.remove(DOCUMENT_ID_KEY)

    def matches(self, summary: DocumentSummary) -> bool:
        """Return ``True`` if *summary* looks like our progress document."""
        return (
            summary.description == self._description
            and self._filename in summary.filenames
        )

    async def current(self) -> str:
        """Return the cached id without a network call, else ``ensure()``."""
        cached = self.document_id
        if cached:
            return cached
        return await self.ensure()

    async def ensure(self) -> str:
        """Return the id of the canonical document, creating it if needed.

        Raises:
            RateLimitedError: If the budget is exhausted.
            SyncError: If listing or creating fails.
        """
        cached = self.document_id
        if cached:
            try:
                await run_sync(self._client.fetch_document, cached)
            except RateLimitedError:
                raise
            except (SyncError, requests.RequestException) as exc:
                logger.warning(
                    "Cached document %s is unusable (%s); searching",
                    cached,
                    exc,
                )
                self.invalidate()
            else:
                logger.debug("Cached document %s is valid", cached)
                return cached

        found = await self.find_existing()
        if found is not None:
            logger.info("Found existing document %s", found)
            self._store.set(DOCUMENT_ID_KEY, found)
            return found

        # Another device may have created one since the first scan
        found = await self.find_existing()
        if found is not None:
            logger.info(
                "Document %s appeared before create; using it", found
            )
            self._store.set(DOCUMENT_ID_KEY, found)
            return found

        seed = ProgressSnapshot(
            last_modified=datetime.now(timezone.utc).isoformat()
        )
        document = await run_sync(self._client.create_document, seed)
        logger.info("Created new progress document %s", document.id)
        self._store.set(DOCUMENT_ID_KEY, document.id)
        return document.id

    async def find_existing(self) -> str | None:
        """Scan the listing for our document.

        Returns:
            The id of the oldest matching document, or ``None``.
        """
        summaries = await run_sync(self._client.list_documents)
        candidates = [s for s in summaries if self.matches(s)]
        if not candidates:
            return None
        if len(candidates) > 1:
            logger.warning(
                "Found %d progress documents; using the oldest",
                len(candidates),
            )
        oldest = min(candidates, key=lambda s: (s.created_at or "", s.id))
        return oldest.id
