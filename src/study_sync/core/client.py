import logging
import threading
from typing import Any

import requests

from .. import __version__
from ..config import Config
from ..errors import (
    ConflictError,
    MalformedRemoteDataError,
    NotFoundError,
    RateLimitedError,
    RemoteError,
)
from ..sync.models import Document, DocumentSummary, ProgressSnapshot
from ..sync.rate_limit import RateLimitTracker, is_rate_limit_signal

logger = logging.getLogger(__name__)

# GitHub caps per_page at 100; each extra page costs one request
_PAGE_SIZE = 100
_MAX_PAGES = 10


class DocumentStoreClient:
    """Authenticated access to the remote JSON document store (GitHub gists).

    The client is stateless apart from its credential.  When a
    ``RateLimitTracker`` is supplied, every request is refused locally
    while the tracker is Limited, and every response is shown to the
    tracker before its status is turned into a result or an error.
    """

    def __init__(
        self,
        config: Config,
        token: str,
        rate_limit: RateLimitTracker | None = None,
    ):
        self.config = config
        self._token = token
        self._rate_limit = rate_limit
        self._thread_local = threading.local()

    @property
    def session(self) -> requests.Session:
        """Return the current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Authorization": f"Bearer {self._token}",
                "Accept": "application/vnd.github+json",
                "User-Agent": f"study-sync/{__version__}",
            }
        )
        return session

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.config.api_url.rstrip('/')}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> requests.Response:
        """
        Issue one request, gated by and reported to the rate-limit tracker.
        """
        if self._rate_limit is not None:
            self._rate_limit.ensure_open()

        logger.debug("%s %s", method, path)
        response = self._get_session().request(
            method,
            self._url(path),
            json=payload,
            params=params,
            timeout=(10, self.config.request_timeout),
        )
        self._check_response(response, f"{method} {path}")
        return response

    def _check_response(
        self, response: requests.Response, context: str
    ) -> None:
        """Convert a non-2xx response into a typed error."""
        status = int(response.status_code)
        body = response.text or ""

        if self._rate_limit is not None:
            limited = self._rate_limit.observe(response)
            reset_at = self._rate_limit.reset_at
        else:
            limited = is_rate_limit_signal(status, response.headers, body)
            reset_at = None

        if 200 <= status < 300:
            return

        if limited:
            raise RateLimitedError(
                f"{context} refused: rate limit exceeded", reset_at=reset_at
            )

        logger.warning("%s failed: HTTP %d", context, status)
        match status:
            case 404:
                raise NotFoundError(
                    f"{context}: document not found", status=status, body=body
                )
            case 409:
                raise ConflictError(
                    f"{context}: document modified concurrently",
                    status=status,
                    body=body,
                )
            case _:
                raise RemoteError(
                    f"{context} failed", status=status, body=body
                )

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedRemoteDataError(
                f"Store returned a non-JSON body (HTTP {response.status_code})"
            ) from exc

    # ------------------------------------------------------------------
    # Gist <-> model conversion
    # ------------------------------------------------------------------

    def _summary_from_gist(self, gist: dict[str, Any]) -> DocumentSummary:
        return DocumentSummary(
            id=str(gist["id"]),
            description=gist.get("description"),
            filenames=sorted((gist.get("files") or {}).keys()),
            created_at=gist.get("created_at"),
            updated_at=gist.get("updated_at"),
        )

    def _document_from_gist(self, gist: dict[str, Any]) -> Document:
        if not isinstance(gist, dict) or "id" not in gist:
            raise MalformedRemoteDataError(
                "Store response is not a document object"
            )
        files = gist.get("files") or {}
        entry = files.get(self.config.document_filename) or {}
        summary = self._summary_from_gist(gist)
        return Document(
            **summary.model_dump(),
            content=entry.get("content"),
        )

    def _files_payload(self, snapshot: ProgressSnapshot) -> dict[str, Any]:
        return {
            self.config.document_filename: {
                "content": snapshot.to_content()
            }
        }

    # ------------------------------------------------------------------
    # Credential
    # ------------------------------------------------------------------

    def test_credential(self) -> bool:
        """
        Check the credential against a lightweight authenticated endpoint.

        Returns:
            True if accepted, False if the store rejects it (HTTP 401).

        Raises:
            RateLimitedError: If the budget is exhausted.
            RemoteError: For any other failure, which says nothing about
                the credential itself.
        """
        try:
            self._request("GET", "/user")
        except RemoteError as err:
            if err.status == 401:
                return False
            raise
        return True

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def fetch_document(self, document_id: str) -> Document:
        """
        Fetch one document with its progress content.

        Raises:
            NotFoundError: If the document does not exist.
        """
        response = self._request("GET", f"/gists/{document_id}")
        return self._document_from_gist(self._json(response))

    def create_document(self, snapshot: ProgressSnapshot) -> Document:
        """
        Create a private document tagged with the application marker.
        """
        payload = {
            "description": self.config.document_description,
            "public": False,
            "files": self._files_payload(snapshot),
        }
        response = self._request("POST", "/gists", payload=payload)
        document = self._document_from_gist(self._json(response))
        logger.info("Created document %s", document.id)
        return document

    def update_document(
        self, document_id: str, snapshot: ProgressSnapshot
    ) -> Document:
        """
        Replace the progress file of an existing document.

        Raises:
            NotFoundError: If the document does not exist.
            ConflictError: If the store reports a concurrent modification.
        """
        response = self._request(
            "PATCH",
            f"/gists/{document_id}",
            payload={"files": self._files_payload(snapshot)},
        )
        return self._document_from_gist(self._json(response))

    def list_documents(self) -> list[DocumentSummary]:
        """
        List every document visible to the credential, following pagination.
        """
        summaries: list[DocumentSummary] = []
        path: str | None = "/gists"
        params: dict[str, Any] | None = {"per_page": _PAGE_SIZE}

        for _ in range(_MAX_PAGES):
            if path is None:
                break
            response = self._request("GET", path, params=params)
            page = self._json(response)
            if not isinstance(page, list):
                raise MalformedRemoteDataError(
                    "Document listing is not a JSON array"
                )
            summaries.extend(self._summary_from_gist(g) for g in page)

            next_link = (response.links or {}).get("next") or {}
            path = next_link.get("url")
            # the next URL already carries the query string
            params = None

        if path is not None:
            logger.warning(
                "Document listing truncated after %d pages; "
                "older documents were not scanned",
                _MAX_PAGES,
            )
        return summaries

    def delete_document(self, document_id: str) -> bool:
        """
        Delete a document.

        Returns:
            True if deleted, False if it did not exist.
        """
        try:
            self._request("DELETE", f"/gists/{document_id}")
        except NotFoundError:
            return False
        logger.info("Deleted document %s", document_id)
        return True
