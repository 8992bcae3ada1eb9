"""
Fire-and-forget side effects.

spawn() queues a callable on a small module-level thread pool and returns
immediately. The caller never joins the task: a failure is logged with the
task name and the request's logging context, and goes nowhere else.

Lambda freezes the sandbox when a handler returns, so handlers call drain()
with a short timeout as their last step. drain() only waits; it never
surfaces a task's outcome.
"""

import contextvars
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="detached")
_pending: set[Future] = set()
_pending_changed = threading.Condition()


def _on_done(name: str, future: Future) -> None:
    try:
        if future.cancelled():
            logger.warning(f"Detached task {name} was cancelled", extra={"task": name})
            return

        exc = future.exception()
        if exc is not None:
            logger.error(
                f"Detached task {name} failed: {exc}",
                extra={"task": name},
                exc_info=(type(exc), exc, exc.__traceback__),
            )
    finally:
        # Only forget the task once its outcome is logged
        with _pending_changed:
            _pending.discard(future)
            _pending_changed.notify_all()


def spawn(name: str, fn, *args, **kwargs) -> Future:
    """Run fn(*args, **kwargs) in the background; never raises its errors."""
    ctx = contextvars.copy_context()
    with _pending_changed:
        future = _executor.submit(ctx.run, fn, *args, **kwargs)
        _pending.add(future)
    future.add_done_callback(partial(_on_done, name))
    return future


def drain(timeout: float = 10.0) -> bool:
    """Block until outstanding tasks finish or the timeout passes.

    Returns:
        True if nothing is left running
    """
    with _pending_changed:
        return _pending_changed.wait_for(lambda: not _pending, timeout=timeout)
