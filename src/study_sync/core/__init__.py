"""Document store client and async helpers."""

from .async_utils import run_sync
from .client import DocumentStoreClient

__all__ = ["DocumentStoreClient", "run_sync"]
