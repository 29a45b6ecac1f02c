"""Async utilities for bridging blocking HTTP calls to async handlers.

``run_io`` is the entry point used by the sync manager: it runs a blocking
client method in a worker thread, bounded by the request semaphore, and
enforces the caller's ``IOOptions`` (timeout and optional cancel event).
Timeouts and cancellations surface as ``OperationTimedOutError`` and
``OperationCancelledError`` so they are never mistaken for remote HTTP
failures.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from ..errors import OperationCancelledError, OperationTimedOutError

T = TypeVar("T")
logger = logging.getLogger(__name__)

# Default timeout for a single remote call, in seconds
DEFAULT_TIMEOUT_SECONDS = 10.0

# Module-level semaphore, initialized at server startup
_semaphore: asyncio.Semaphore | None = None


@dataclass(frozen=True)
class IOOptions:
    """Per-call timeout and cancellation directive.

    Attributes:
        timeout: Seconds before the call fails with ``OperationTimedOutError``.
            ``None`` means ``DEFAULT_TIMEOUT_SECONDS``.
        cancel_event: When set, the pending call fails with
            ``OperationCancelledError``.
    """

    timeout: float | None = None
    cancel_event: asyncio.Event | None = None

    @property
    def effective_timeout(self) -> float:
        if self.timeout is None:
            return DEFAULT_TIMEOUT_SECONDS
        return self.timeout


def init_semaphore(max_parallel: int = 2) -> None:
    """Initialize the concurrency semaphore. Call once at server startup."""
    global _semaphore
    _semaphore = asyncio.Semaphore(max_parallel)
    logger.info(
        "Confluence request semaphore initialized: max_parallel=%d",
        max_parallel,
    )


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_sync_limited(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool, bounded by the concurrency semaphore.

    Falls back to unbounded if semaphore not initialized.
    """
    if _semaphore is None:
        return await asyncio.to_thread(func, *args, **kwargs)
    async with _semaphore:
        return await asyncio.to_thread(func, *args, **kwargs)


async def run_io(
    func: Callable[..., T],
    *args: Any,
    target: str,
    options: IOOptions | None = None,
    **kwargs: Any,
) -> T:
    """Run a blocking remote call under a timeout/cancellation directive.

    The effective timeout is also passed to *func* as ``timeout=`` so the
    HTTP layer gives up on its own; the worker thread cannot be interrupted
    from here.

    Args:
        func: Blocking client method accepting a ``timeout`` keyword.
        *args: Positional arguments for func.
        target: Short description of the remote resource, used in errors.
        options: Timeout and cancel event for this call.
        **kwargs: Keyword arguments for func.

    Returns:
        Result of func.

    Raises:
        OperationCancelledError: If ``options.cancel_event`` was set first.
        OperationTimedOutError: If the timeout elapsed first.
    """
    opts = options or IOOptions()
    timeout = opts.effective_timeout
    cancel_event = opts.cancel_event

    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError(target)

    call = asyncio.ensure_future(
        run_sync_limited(func, *args, timeout=timeout, **kwargs)
    )
    waiters: set[asyncio.Future] = {call}
    cancel_wait: asyncio.Future | None = None
    if cancel_event is not None:
        cancel_wait = asyncio.ensure_future(cancel_event.wait())
        waiters.add(cancel_wait)

    try:
        done, _ = await asyncio.wait(
            waiters,
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        call.cancel()
        raise
    finally:
        if cancel_wait is not None and not cancel_wait.done():
            cancel_wait.cancel()

    if call in done:
        return call.result()

    call.cancel()
    if cancel_wait is not None and cancel_wait in done:
        logger.debug("Cancelled while waiting on %s", target)
        raise OperationCancelledError(target)
    logger.debug("Timed out after %.1fs waiting on %s", timeout, target)
    raise OperationTimedOutError(target, timeout)
