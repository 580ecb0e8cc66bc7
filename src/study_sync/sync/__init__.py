"""Progress synchronization engine.

Public API for reconciling a local progress snapshot with the single
shared remote document.

Architecture
------------
The remote store is a dumb versioned blob store: no transactions, no
server-side merge, and a strict request budget.  All reconciliation
happens client-side:

- ``models``       -- ``ProgressSnapshot``, ``Document``, ``SyncStatus``,
  ``SetupResult``: core data contracts.
- ``merger``       -- ``merge_progress``: id union plus per-key
  latest-timestamp-wins dates.
- ``rate_limit``   -- ``RateLimitTracker``: persisted Open/Limited gate
  consulted before every remote call.
- ``locator``      -- ``DocumentLocator``: find-or-create of the shared
  document with a race re-check.
- ``orchestrator`` -- ``SyncOrchestrator``: single-flight ``sync()``,
  forced upload/download, setup and disable.
- ``reporter``     -- Human-readable and JSON status formatting.

Usage example
-------------
::

    from pathlib import Path
    from study_sync.config import load_config
    from study_sync.storage import JsonFileStore
    from study_sync.sync import create_orchestrator

    config = load_config()
    store = JsonFileStore(Path(config.state_file))
    orchestrator = create_orchestrator(config, store)

    await orchestrator.setup(token)
    merged = await orchestrator.sync(local_snapshot)
"""

from .locator import DocumentLocator
from .merger import merge_progress
from .models import (
    Document,
    DocumentSummary,
    ProgressSnapshot,
    SetupResult,
    SyncStatus,
    parse_snapshot,
)
from .orchestrator import SyncOrchestrator, create_orchestrator
from .rate_limit import RateLimitTracker
from .reporter import (
    format_snapshot_summary,
    format_status,
    status_to_json,
)

__all__ = [
    "Document",
    "DocumentLocator",
    "DocumentSummary",
    "ProgressSnapshot",
    "RateLimitTracker",
    "SetupResult",
    "SyncOrchestrator",
    "SyncStatus",
    "create_orchestrator",
    "format_snapshot_summary",
    "format_status",
    "merge_progress",
    "parse_snapshot",
    "status_to_json",
]
