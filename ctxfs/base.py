"""Storage backend interface and scheme lookup.

Defines the capability surface every backend offers to the host (the local
``file`` backend in this package, remote stores elsewhere) and the helper a
host uses to dispatch a URL to the backend registered for its scheme.
"""

from __future__ import annotations

import queue
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable, Protocol, runtime_checkable

from .urls import scheme_of

if TYPE_CHECKING:
    from .context import Context
    from .handle import ContentHandle

# notify(subject_url, handle); the callee owns and closes the handle
WatchCallback = Callable[[str, "ContentHandle"], None]

CancelWatch = Callable[[], None]


@runtime_checkable
class StorageBackend(Protocol):
    """Operations a backend offers for the URLs of its scheme.

    Every operation takes an optional context bounding how long the caller
    waits. Without one, the current context applies.
    """

    scheme: str

    def open_reader(self, url: str, ctx: Context | None = None) -> Any:
        """Open an object for reading."""
        ...

    def open_writer(self, url: str, ctx: Context | None = None) -> Any:
        """Open an object for writing, replacing its contents."""
        ...

    def open_appender(self, url: str, ctx: Context | None = None) -> Any:
        """Open an object for writing after its existing contents."""
        ...

    def list_entries(self, url: str, ctx: Context | None = None) -> list[str]:
        """Names of the entries directly below a directory."""
        ...

    def remove(self, url: str, ctx: Context | None = None) -> None:
        """Remove one object, leaving anything below it alone."""
        ...

    def watch(
        self, url: str, notify: WatchCallback, ctx: Context | None = None
    ) -> tuple[CancelWatch, queue.Queue]:
        """Report the current state and every later change of an object."""
        ...


def backend_for(backends: Mapping[str, StorageBackend], url: str) -> StorageBackend:
    """Return the backend registered for ``url``'s scheme.

    Raises:
        ValueError: If no backend handles the scheme.
    """
    scheme = scheme_of(url)
    try:
        return backends[scheme]
    except KeyError:
        raise ValueError(f"No backend for scheme {scheme!r}: {url}") from None
