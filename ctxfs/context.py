"""Cancellation contexts for filesystem operations.

A Context carries an optional deadline and a cancelled state. Every blocking
operation in ctxfs takes one (explicitly or through ``current_context``) and
returns control to the caller as soon as it is done, even when the
underlying OS call is still running.
"""

from __future__ import annotations

import contextvars
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator


class Cancelled(Exception):
    """Raised when an operation's context was cancelled."""

    def __init__(self, message: str = "context cancelled") -> None:
        super().__init__(message)


class DeadlineExceeded(Cancelled):
    """Raised when an operation's context passed its deadline."""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


class Context:
    """Deadline and cancellation signal shared by a tree of operations.

    Children inherit cancellation from their parent and never outlive the
    parent's deadline. Deadlines are expressed in ``time.monotonic()``
    seconds.

    Attributes:
        deadline: Monotonic time after which the context is done, or None.
    """

    def __init__(
        self, parent: Context | None = None, deadline: float | None = None
    ) -> None:
        if parent is not None and parent.deadline is not None:
            if deadline is None or parent.deadline < deadline:
                deadline = parent.deadline
        self.deadline = deadline
        self._lock = threading.Lock()
        self._cancelled: type[Cancelled] | None = None
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._children: dict[int, Context] = {}
        self._next_key = 0
        self._detach: Callable[[], None] | None = None

        if parent is not None:
            self._detach = parent._adopt(self)

    def _adopt(self, child: Context) -> Callable[[], None]:
        """Track ``child`` so cancellation reaches it.

        A child whose deadline has already passed is done for good and is
        never tracked. Tracked children are forgotten once their deadline
        passes, so short-lived timeouts do not pile up on a long-lived parent.

        Returns:
            A function that stops tracking the child.
        """
        if child.done():
            return _noop
        with self._lock:
            if self._cancelled is None:
                self._prune_expired()
                key = self._next_key
                self._next_key += 1
                self._children[key] = child

                def forget() -> None:
                    with self._lock:
                        self._children.pop(key, None)

                return forget
            kind = self._cancelled
        child._set_cancelled(kind)
        return _noop

    def _prune_expired(self) -> None:
        # caller holds self._lock
        now = time.monotonic()
        expired = [
            key
            for key, child in self._children.items()
            if child.deadline is not None and child.deadline <= now
        ]
        for key in expired:
            del self._children[key]

    def _set_cancelled(self, kind: type[Cancelled]) -> None:
        with self._lock:
            if self._cancelled is not None:
                return
            self._cancelled = kind
            callbacks = list(self._callbacks.values())
            children = list(self._children.values())
            self._callbacks.clear()
            self._children.clear()
        if self._detach is not None:
            self._detach()
            self._detach = None
        for child in children:
            child._set_cancelled(kind)
        for callback in callbacks:
            callback()

    def cancel(self) -> None:
        """Cancel this context and every context derived from it."""
        self._set_cancelled(Cancelled)

    def error(self) -> Cancelled | None:
        """Return a fresh exception describing why the context is done."""
        if self._cancelled is not None:
            return self._cancelled()
        if self.deadline is not None and time.monotonic() >= self.deadline:
            return DeadlineExceeded()
        return None

    def done(self) -> bool:
        return self.error() is not None

    def raise_if_done(self) -> None:
        err = self.error()
        if err is not None:
            raise err

    def remaining(self) -> float | None:
        """Seconds left until the deadline (never negative), or None."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def add_done_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback`` to run when the context is cancelled.

        Deadline expiry does not trigger callbacks; waiters bound their waits
        with ``remaining()`` instead and unregister when they are done. If the
        context is already cancelled the callback runs immediately.

        Returns:
            A function that unregisters the callback.
        """
        with self._lock:
            if self._cancelled is None:
                self._prune_expired()
                key = self._next_key
                self._next_key += 1
                self._callbacks[key] = callback

                def remove() -> None:
                    with self._lock:
                        self._callbacks.pop(key, None)

                return remove
        callback()
        return _noop

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled is not None else "live"
        return f"<{type(self).__name__} {state} deadline={self.deadline}>"


class _BackgroundContext(Context):
    """Root context: never cancelled, no deadline."""

    def cancel(self) -> None:
        raise RuntimeError("the background context cannot be cancelled")

    def _adopt(self, child: Context) -> Callable[[], None]:
        return _noop

    def add_done_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        return _noop


def _noop() -> None:
    pass


_background = _BackgroundContext()


def background() -> Context:
    """Return the root context used when no other context is in effect."""
    return _background


def with_cancel(parent: Context) -> Context:
    return Context(parent)


def with_deadline(parent: Context, deadline: float) -> Context:
    """Derive a context that expires at monotonic time ``deadline``."""
    return Context(parent, deadline)


def with_timeout(parent: Context, seconds: float) -> Context:
    """Derive a context that expires ``seconds`` from now."""
    return Context(parent, time.monotonic() + seconds)


# Context variable holding the context used when an operation gets none
current_context: contextvars.ContextVar[Context | None] = contextvars.ContextVar(
    "ctxfs_current_context", default=None
)


def get_context(ctx: Context | None = None) -> Context:
    """Pick the explicit context, else the current one, else background."""
    if ctx is not None:
        return ctx
    return current_context.get() or _background


@contextmanager
def use_context(ctx: Context) -> Iterator[Context]:
    """Make ``ctx`` the current context for the duration of the block."""
    token = current_context.set(ctx)
    try:
        yield ctx
    finally:
        current_context.reset(token)


@contextmanager
def timeout(seconds: float) -> Iterator[Context]:
    """Run the block under a child of the current context with a timeout.

    Example::

        with timeout(2.0):
            handle = backend.open_reader("file:///etc/hosts")
            data = handle.read()

    The child is cancelled on exit so it stops tracking its parent.
    """
    ctx = with_timeout(get_context(), seconds)
    try:
        with use_context(ctx):
            yield ctx
    finally:
        ctx.cancel()
