"""Shared pytest fixtures for study-sync tests."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from study_sync.config import Config
from study_sync.errors import NotFoundError
from study_sync.storage import MemoryStore
from study_sync.sync.models import Document, DocumentSummary, ProgressSnapshot
from study_sync.sync.orchestrator import SyncOrchestrator
from study_sync.sync.rate_limit import RateLimitTracker

DESCRIPTION = "Study Progress Tracker - Progress Data"
FILENAME = "study-progress.json"
FIXED_NOW = datetime(2025, 1, 10, 12, 0, 0, tzinfo=timezone.utc)


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live document store",
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


class FakeClock:
    """Settable clock returning timezone-aware datetimes."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeDocumentStore:
    """Minimal DocumentStoreClient replacement for testing.

    Simulates gist storage with an in-memory dict and records every call.
    ``update_errors`` is a queue of exceptions raised by the next
    ``update_document`` calls; ``on_list`` and ``on_fetch`` run before each
    listing and fetch.
    """

    def __init__(self, valid_credential: bool = True) -> None:
        self.documents: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.valid_credential = valid_credential
        self.update_errors: list[Exception] = []
        self.list_error: Exception | None = None
        self.on_list = None
        self.on_fetch = None
        self._counter = 0

    def add(
        self,
        content: str | None = None,
        snapshot: ProgressSnapshot | None = None,
        description: str = DESCRIPTION,
        filename: str = FILENAME,
        created_at: str = "2025-01-01T00:00:00Z",
        doc_id: str | None = None,
    ) -> str:
        self._counter += 1
        doc_id = doc_id or f"doc{self._counter}"
        if content is None:
            content = (snapshot or ProgressSnapshot()).to_content()
        self.documents[doc_id] = {
            "description": description,
            "files": {filename: content},
            "created_at": created_at,
        }
        return doc_id

    def content_of(self, doc_id: str) -> dict:
        return json.loads(self.documents[doc_id]["files"][FILENAME])

    def _document(self, doc_id: str) -> Document:
        doc = self.documents[doc_id]
        return Document(
            id=doc_id,
            description=doc["description"],
            filenames=sorted(doc["files"]),
            created_at=doc["created_at"],
            content=doc["files"].get(FILENAME),
        )

    def test_credential(self) -> bool:
        self.calls.append(("test_credential",))
        return self.valid_credential

    def fetch_document(self, document_id: str) -> Document:
        self.calls.append(("fetch", document_id))
        if self.on_fetch is not None:
            self.on_fetch(self)
        if document_id not in self.documents:
            raise NotFoundError("not found", status=404)
        return self._document(document_id)

    def create_document(self, snapshot: ProgressSnapshot) -> Document:
        self.calls.append(("create",))
        doc_id = self.add(
            snapshot=snapshot, created_at="2025-01-10T12:00:00Z"
        )
        return self._document(doc_id)

    def update_document(
        self, document_id: str, snapshot: ProgressSnapshot
    ) -> Document:
        self.calls.append(("update", document_id))
        if self.update_errors:
            raise self.update_errors.pop(0)
        if document_id not in self.documents:
            raise NotFoundError("not found", status=404)
        self.documents[document_id]["files"][FILENAME] = snapshot.to_content()
        return self._document(document_id)

    def list_documents(self) -> list[DocumentSummary]:
        self.calls.append(("list",))
        if self.on_list is not None:
            self.on_list(self)
        if self.list_error is not None:
            raise self.list_error
        return [
            DocumentSummary(
                id=doc_id,
                description=doc["description"],
                filenames=sorted(doc["files"]),
                created_at=doc["created_at"],
            )
            for doc_id, doc in self.documents.items()
        ]

    def delete_document(self, document_id: str) -> bool:
        self.calls.append(("delete", document_id))
        return self.documents.pop(document_id, None) is not None

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def mock_config():
    """Create a Config instance for testing."""
    return Config(
        api_url="https://api.example.com",
        state_file="/tmp/study-sync-test.json",
        document_description=DESCRIPTION,
        document_filename=FILENAME,
        rate_limit_buffer_seconds=0,
    )


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_client():
    return FakeDocumentStore()


@pytest.fixture
def tracker(memory_store, clock):
    return RateLimitTracker(memory_store, buffer_seconds=0, clock=clock)


@pytest.fixture
def make_orchestrator(memory_store, tracker, fake_client, clock):
    """Factory for orchestrators wired to the in-memory fakes."""

    def _make(enabled: bool = True) -> SyncOrchestrator:
        if enabled:
            memory_store.set("credential", "test-token")
        return SyncOrchestrator(
            memory_store,
            tracker,
            lambda token: fake_client,
            description=DESCRIPTION,
            filename=FILENAME,
            clock=clock,
        )

    return _make


@pytest.fixture
def make_response():
    """Factory fixture for creating requests.Response mocks."""

    def _create_response(
        status: int = 200,
        json_data=None,
        headers: dict | None = None,
        text: str | None = None,
        links: dict | None = None,
    ):
        response = Mock()
        response.status_code = status
        response.headers = headers or {}
        response.links = links or {}
        if text is None:
            text = json.dumps(json_data) if json_data is not None else ""
        response.text = text
        if json_data is None:
            response.json.side_effect = ValueError("No JSON body")
        else:
            response.json.return_value = json_data
        return response

    return _create_response
