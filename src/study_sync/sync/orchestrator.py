"""Sync orchestrator: the public face of the synchronization engine.

``SyncOrchestrator`` ties the locator, store client, rate-limit tracker
and merge together.  A ``sync()`` call:

1. Returns the input unchanged when sync is disabled, another sync is in
   flight, or the rate limit is active.
2. Resolves the document id (cached, found, or created).
3. Fetches the remote snapshot; a vanished document is relocated once.
4. Merges local and remote.
5. Writes the merged snapshot back; a not-found or conflict relocates
   the document once and retries the write once.
6. Records the sync time and returns the written snapshot.

All state mutation goes through the public methods.  The credential and
cached document id live in the injected ``KeyValueStore``; ``last_sync``
and the single-flight flag live in memory.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from ..core.async_utils import run_sync
from ..errors import (
    ConflictError,
    InvalidCredentialError,
    MalformedRemoteDataError,
    NotFoundError,
    SyncDisabledError,
)
from ..storage import CREDENTIAL_KEY, DOCUMENT_ID_KEY, KeyValueStore
from .locator import DocumentLocator
from .merger import merge_progress
from .models import (
    Document,
    ProgressSnapshot,
    SetupResult,
    SyncStatus,
    parse_snapshot,
)
from .rate_limit import RateLimitTracker

if TYPE_CHECKING:
    from ..config import Config
    from ..core.client import DocumentStoreClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], "DocumentStoreClient"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncOrchestrator:
    """Reconcile local progress with the shared remote document.

    Args:
        store: Persistence port for the credential and cached document id.
        rate_limit: Tracker shared with the clients built by
            *client_factory*.
        client_factory: Builds a store client for a credential.
        description: Marker the shared document is tagged with.
        filename: File inside the document that holds the snapshot.
        clock: Returns the current timezone-aware time.
    """

    def __init__(
        self,
        store: KeyValueStore,
        rate_limit: RateLimitTracker,
        client_factory: ClientFactory,
        description: str,
        filename: str,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._rate_limit = rate_limit
        self._client_factory = client_factory
        self._description = description
        self._filename = filename
        self._clock = clock or _utcnow

        self._last_sync: str | None = None
        self._in_progress = False
        self._client: DocumentStoreClient | None = None
        self._locator: DocumentLocator | None = None

        token = store.get(CREDENTIAL_KEY)
        if token:
            self._bind(client_factory(token))

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._client is not None

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    def get_status(self) -> SyncStatus:
        """Return a read-only view of the current state."""
        limited = self._rate_limit.is_limited()
        reset_at = self._rate_limit.reset_at
        return SyncStatus(
            enabled=self.enabled,
            last_sync=self._last_sync,
            document_id=self._store.get(DOCUMENT_ID_KEY),
            in_progress=self._in_progress,
            rate_limited_until=reset_at.isoformat()
            if limited and reset_at
            else None,
        )

    # ------------------------------------------------------------------
    # Setup / teardown
    # ------------------------------------------------------------------

    async def setup(self, credential: str) -> SetupResult:
        """Validate *credential*, bind to a document, and enable sync.

        Any failure leaves sync disabled and is re-raised unchanged.

        Raises:
            InvalidCredentialError: If the credential is empty or rejected.
        """
        token = (credential or "").strip()
        if not token:
            self.disable()
            raise InvalidCredentialError("A credential is required")

        client = self._client_factory(token)
        locator = self._make_locator(client)
        try:
            if not await run_sync(client.test_credential):
                raise InvalidCredentialError(
                    "Credential rejected by the document store"
                )
            document_id = await locator.ensure()
        except Exception as exc:
            logger.error("Sync setup failed: %s", exc)
            self.disable()
            raise

        self._store.set(CREDENTIAL_KEY, token)
        self._client = client
        self._locator = locator
        logger.info("Sync enabled with document %s", document_id)
        return SetupResult(
            success=True,
            document_id=document_id,
            message="Sync configured successfully",
        )

    def disable(self) -> None:
        """Forget the credential and cached document id.

        Local progress data is not touched.
        """
        self._store.remove(CREDENTIAL_KEY)
        self._store.remove(DOCUMENT_ID_KEY)
        self._client = None
        self._locator = None
        logger.info("Sync disabled")

    # ------------------------------------------------------------------
    # Sync operations
    # ------------------------------------------------------------------

    async def sync(self, local: ProgressSnapshot) -> ProgressSnapshot:
        """Merge *local* with the remote document and write the result back.

        Returns *local* unchanged without any network call when sync is
        disabled, another sync is in flight, or the rate limit is active.
        Errors propagate to the caller.
        """
        if not self.enabled or self._in_progress:
            return local
        if self._rate_limit.is_limited():
            logger.info(
                "Skipping sync: rate limited until %s",
                self._rate_limit.reset_at,
            )
            return local

        # Set before the first await so overlapping calls see it
        self._in_progress = True
        try:
            remote = await self._fetch_remote()
            merged = merge_progress(local, remote)
            written = await self._write(merged)
            self._last_sync = self._clock().isoformat()
            logger.info(
                "Sync complete: %d completed items",
                len(written.completed_ids),
            )
            return written
        except Exception as exc:
            logger.error("Sync failed: %s", exc)
            raise
        finally:
            self._in_progress = False

    async def force_upload_local(
        self, local: ProgressSnapshot
    ) -> ProgressSnapshot:
        """Overwrite the remote document with *local*, without merging.

        Raises:
            SyncDisabledError: If sync is not enabled.
        """
        self._require_enabled()
        written = await self._write(local)
        self._last_sync = self._clock().isoformat()
        logger.info("Uploaded local progress to document")
        return written

    async def force_download_remote(self) -> ProgressSnapshot:
        """Return the remote snapshot verbatim, without merging.

        Raises:
            SyncDisabledError: If sync is not enabled.
            MalformedRemoteDataError: If the document holds no snapshot.
        """
        self._require_enabled()
        remote = await self._fetch_remote()
        if remote is None:
            raise MalformedRemoteDataError(
                "Remote document holds no progress data"
            )
        self._last_sync = self._clock().isoformat()
        logger.info("Downloaded remote progress")
        return remote

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _make_locator(self, client: DocumentStoreClient) -> DocumentLocator:
        return DocumentLocator(
            client, self._store, self._description, self._filename
        )

    def _bind(self, client: DocumentStoreClient) -> None:
        self._client = client
        self._locator = self._make_locator(client)

    def _require_enabled(self) -> tuple[DocumentStoreClient, DocumentLocator]:
        """Return the bound client and locator.

        Transfers call this again after every store round trip;
        ``disable()`` may run while one is awaited.

        Raises:
            SyncDisabledError: If sync is not enabled.
        """
        client, locator = self._client, self._locator
        if client is None or locator is None:
            raise SyncDisabledError("Sync is not enabled")
        return client, locator

    async def _fetch_document(self) -> Document:
        """Fetch the shared document, relocating once if it vanished."""
        client, locator = self._require_enabled()
        document_id = await locator.current()
        try:
            document = await run_sync(client.fetch_document, document_id)
        except NotFoundError:
            logger.warning(
                "Document %s not found; relocating", document_id
            )
            _, locator = self._require_enabled()
            locator.invalidate()
            document_id = await locator.ensure()
            client, _ = self._require_enabled()
            document = await run_sync(client.fetch_document, document_id)
        self._require_enabled()
        return document

    async def _fetch_remote(self) -> ProgressSnapshot | None:
        document = await self._fetch_document()
        return parse_snapshot(
            document.content, source=f"document {document.id}"
        )

    async def _write(self, snapshot: ProgressSnapshot) -> ProgressSnapshot:
        """Stamp and write *snapshot*, retrying once after relocation."""
        _, locator = self._require_enabled()
        payload = snapshot.stamped(self._clock().isoformat())
        document_id = await locator.current()
        client, locator = self._require_enabled()
        try:
            await run_sync(client.update_document, document_id, payload)
        except (NotFoundError, ConflictError) as exc:
            logger.warning(
                "Write to %s failed (%s); relocating and retrying once",
                document_id,
                exc,
            )
            _, locator = self._require_enabled()
            locator.invalidate()
            document_id = await locator.ensure()
            client, locator = self._require_enabled()
            await run_sync(client.update_document, document_id, payload)
        return payload


def create_orchestrator(
    config: Config,
    store: KeyValueStore,
    clock: Callable[[], datetime] | None = None,
) -> SyncOrchestrator:
    """Build an orchestrator wired to the real document store client."""
    from ..core.client import DocumentStoreClient

    tracker = RateLimitTracker(
        store, buffer_seconds=config.rate_limit_buffer_seconds, clock=clock
    )

    def client_factory(token: str) -> DocumentStoreClient:
        return DocumentStoreClient(config, token, rate_limit=tracker)

    return SyncOrchestrator(
        store,
        tracker,
        client_factory,
        description=config.document_description,
        filename=config.document_filename,
        clock=clock,
    )
