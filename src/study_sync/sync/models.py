"""Pydantic models for the progress synchronization engine.

Defines the data contracts shared by the sync modules:

- ``ProgressSnapshot``: completed ids plus per-id completion timestamps.
- ``DocumentSummary`` / ``Document``: remote store listing and fetch results.
- ``SyncStatus``: read-only view of the orchestrator state.
- ``SetupResult``: outcome of binding a credential to a document.

Snapshots serialise with the camelCase keys used in the remote document
(``completedIds``, ``completionDates``, ``lastModified``) and accept either
spelling on input.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..errors import MalformedRemoteDataError


class ProgressSnapshot(BaseModel):
    """Progress state at a point in time.

    Attributes:
        completed_ids: Identifiers of completed items.  Order is not
            significant.
        completion_dates: Identifier -> ISO 8601 completion timestamp.
        last_modified: ISO 8601 timestamp set by the last writer.
            Advisory only, never used to resolve conflicts.
    """

    completed_ids: list[str] = Field(
        default_factory=list, alias="completedIds"
    )
    completion_dates: dict[str, str] = Field(
        default_factory=dict, alias="completionDates"
    )
    last_modified: str | None = Field(default=None, alias="lastModified")

    model_config = {"frozen": True, "populate_by_name": True}

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-ready dict stored in the remote document."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_content(self) -> str:
        """Return the JSON text stored under the document filename."""
        return json.dumps(self.to_payload(), indent=2)

    def stamped(self, timestamp: str) -> ProgressSnapshot:
        """Return a copy with ``last_modified`` set to *timestamp*."""
        return self.model_copy(update={"last_modified": timestamp})


def parse_snapshot(
    text: str | None, source: str = "remote document"
) -> ProgressSnapshot | None:
    """Parse document content into a snapshot.

    Args:
        text: Raw JSON text.
        source: Label used in error messages.

    Returns:
        The parsed snapshot, or ``None`` when the JSON object carries no
        ``completedIds`` key (treated as an absent snapshot).

    Raises:
        MalformedRemoteDataError: If *text* is missing, is not a JSON
            object, or has fields of the wrong type.
    """
    if text is None:
        raise MalformedRemoteDataError(f"{source} has no progress content")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedRemoteDataError(
            f"{source} is not valid JSON: {exc}"
        ) from exc

    if not isinstance(data, dict):
        raise MalformedRemoteDataError(
            f"{source} must be a JSON object, got {type(data).__name__}"
        )
    if "completedIds" not in data and "completed_ids" not in data:
        return None

    try:
        return ProgressSnapshot.model_validate(data)
    except ValidationError as exc:
        raise MalformedRemoteDataError(
            f"{source} does not match the progress schema: "
            f"{exc.error_count()} validation error(s)",
            details={"errors": exc.errors(include_url=False)},
        ) from exc


class DocumentSummary(BaseModel):
    """One entry of the document listing.

    Attributes:
        id: Opaque id assigned by the store.
        description: Free-text tag used to recognise our document.
        filenames: Names of the files held by the document.
        created_at: ISO 8601 creation time reported by the store.
        updated_at: ISO 8601 last update time reported by the store.
    """

    id: str
    description: str | None = None
    filenames: list[str] = Field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None

    model_config = {"frozen": True}


class Document(DocumentSummary):
    """A fetched document with the raw content of the progress file."""

    content: str | None = None


class SyncStatus(BaseModel):
    """Read-only view of the orchestrator, used to gate caller actions."""

    enabled: bool
    last_sync: str | None = None
    document_id: str | None = None
    in_progress: bool = False
    rate_limited_until: str | None = None

    model_config = {"frozen": True}


class SetupResult(BaseModel):
    """Outcome of ``SyncOrchestrator.setup()``."""

    success: bool
    document_id: str
    message: str

    model_config = {"frozen": True}
