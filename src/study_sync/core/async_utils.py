"""Async utilities for bridging blocking HTTP calls to async sync operations."""

import asyncio
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Used to wrap the blocking ``requests`` calls of ``DocumentStoreClient``
    inside the orchestrator's coroutines.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        client = DocumentStoreClient(config, token)
        document = await run_sync(client.fetch_document, document_id)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
