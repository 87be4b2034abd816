"""Run blocking OS calls on worker threads, raced against a Context.

An OS call cannot be interrupted once it started. ``call()`` therefore runs
it on a short-lived worker thread and waits for whichever comes first: the
call's completion or the context being done. When the context wins, the
caller gets the cancellation error right away and the worker finishes on its
own; its result lands in a single-slot channel nobody reads and is absorbed.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable, TypeVar

from .context import Context

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (value, exception); exactly one of them is meaningful
_Outcome = tuple[Any, BaseException | None]


class PendingCall:
    """A blocking call in flight on its own worker thread.

    The worker sends its outcome exactly once into a channel of capacity one.
    Exactly one party consumes it: the waiter through ``collect()``, or the
    worker itself when the waiter already gave up.

    Attributes:
        kind: Operation name ("open", "read", ...), used in thread names
            and logs.
    """

    def __init__(
        self,
        kind: str,
        func: Callable[..., Any],
        args: tuple[Any, ...],
        on_complete: Callable[[], None],
        discard: Callable[[Any], None] | None = None,
    ) -> None:
        self.kind = kind
        self._func = func
        self._args = args
        self._on_complete = on_complete
        self._discard = discard
        self._channel: queue.Queue[_Outcome] = queue.Queue(maxsize=1)
        self._lock = threading.Lock()
        self._abandoned = False

    def start(self) -> None:
        worker = threading.Thread(
            target=self._run, name=f"ctxfs-{self.kind}", daemon=True
        )
        worker.start()

    def _run(self) -> None:
        try:
            outcome: _Outcome = (self._func(*self._args), None)
        except Exception as exc:
            outcome = (None, exc)

        with self._lock:
            self._channel.put_nowait(outcome)
            abandoned = self._abandoned
            if abandoned:
                outcome = self._channel.get_nowait()

        if abandoned:
            self._absorb(outcome)
        else:
            self._on_complete()

    def _absorb(self, outcome: _Outcome) -> None:
        value, exc = outcome
        if exc is not None:
            logger.debug("abandoned %s call failed: %s", self.kind, exc)
            return
        if self._discard is not None:
            try:
                self._discard(value)
            except OSError as err:
                logger.warning(
                    "could not release result of abandoned %s call: %s",
                    self.kind,
                    err,
                )

    def collect(self) -> _Outcome | None:
        """Take the outcome if it arrived, otherwise abandon the call."""
        with self._lock:
            try:
                return self._channel.get_nowait()
            except queue.Empty:
                self._abandoned = True
                return None


def call(
    ctx: Context,
    kind: str,
    func: Callable[..., T],
    *args: Any,
    discard: Callable[[T], None] | None = None,
) -> T:
    """Run ``func(*args)`` on a worker thread, bounded by ``ctx``.

    Args:
        ctx: Context whose cancellation or deadline ends the wait.
        kind: Operation name for thread names and logs.
        func: The blocking call.
        *args: Positional arguments for ``func``.
        discard: Releases a successful result that arrives after the caller
            gave up (e.g. closes a file opened too late).

    Returns:
        Whatever ``func`` returned.

    Raises:
        Cancelled: If ``ctx`` was cancelled first.
        DeadlineExceeded: If ``ctx`` expired first.
        Exception: Whatever ``func`` raised, if it finished first.
        RuntimeError: If ``ctx`` woke the wait without being done.
    """
    # Nothing to race against if the context is already done
    ctx.raise_if_done()

    wake = threading.Event()
    pending = PendingCall(kind, func, args, wake.set, discard)
    unregister = ctx.add_done_callback(wake.set)
    try:
        pending.start()
        while not wake.wait(ctx.remaining()):
            if ctx.done():
                break
    finally:
        unregister()

    outcome = pending.collect()
    if outcome is None:
        err = ctx.error()
        if err is None:
            raise RuntimeError(f"{kind} call woken by a context that is not done")
        logger.debug("gave up waiting for %s call: %s", kind, err)
        raise err

    value, exc = outcome
    if exc is not None:
        raise exc
    return value
