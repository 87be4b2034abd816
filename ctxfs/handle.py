"""Cancellable handle over one open local file."""

from __future__ import annotations

import io
import os
from typing import Any

from . import bridge
from .context import Context, get_context


class ContentHandle:
    """File-like handle whose blocking calls respect a Context.

    ``read``, ``readinto``, ``write`` and ``close`` run on a worker thread
    and return as soon as their context is done. ``tell``, ``seek`` and
    ``skip`` are direct calls: they accept a context for uniformity but do
    not observe it.

    A handle owns its file exclusively and is not synchronised; drive it
    from one operation at a time.

    Attributes:
        path: Local path the file was opened from, if known.
    """

    def __init__(self, fileobj: io.RawIOBase, path: str | None = None):
        """Wrap an unbuffered binary file object.

        Args:
            fileobj: Raw file, e.g. ``open(path, "rb", buffering=0)``.
            path: Local path for repr and error messages.
        """
        self._file = fileobj
        self.path = path if path is not None else getattr(fileobj, "name", None)

    # -------------------------------------------------------------------------
    # Cancellable calls
    # -------------------------------------------------------------------------

    def read(self, size: int = -1, ctx: Context | None = None) -> bytes:
        """Read up to ``size`` bytes (all remaining bytes if negative).

        Returns:
            The bytes read; ``b""`` at end of file.

        Raises:
            Cancelled: If ``ctx`` is done before the read completes.
            OSError: If the read fails.
        """
        self._check_open()
        data = bridge.call(get_context(ctx), "read", self._file.read, size)
        return data if data is not None else b""

    def readinto(self, buffer: Any, ctx: Context | None = None) -> int:
        """Read into a writable buffer, returning the number of bytes read.

        The worker reads into a private scratch buffer which is copied into
        ``buffer`` only once the read completed in time. If the context
        wins, ``buffer`` is left untouched, whatever the abandoned read
        produces later.
        """
        self._check_open()
        target = memoryview(buffer).cast("B")
        scratch = bytearray(len(target))
        n = bridge.call(get_context(ctx), "read", self._file.readinto, scratch)
        if n is None:
            return 0
        target[:n] = scratch[:n]
        return n

    def write(self, data: Any, ctx: Context | None = None) -> int:
        """Write all of ``data`` and return its length.

        ``data`` is copied before the worker starts, so the caller may reuse
        its buffer as soon as this returns, cancelled or not.
        """
        self._check_open()
        payload = bytes(data)
        return bridge.call(get_context(ctx), "write", self._write_all, payload)

    def _write_all(self, payload: bytes) -> int:
        view = memoryview(payload)
        while view:
            written = self._file.write(view)
            if written is None:
                # Non-blocking file with a full buffer
                raise BlockingIOError(f"write would block: {self.path}")
            view = view[written:]
        return len(payload)

    def close(self, ctx: Context | None = None) -> None:
        """Close the file. A cancelled close still completes in the background."""
        if self._file.closed:
            return
        bridge.call(get_context(ctx), "close", self._file.close)

    # -------------------------------------------------------------------------
    # Direct calls
    # -------------------------------------------------------------------------

    def tell(self, ctx: Context | None = None) -> int:
        """Return the current offset."""
        self._check_open()
        return self._file.tell()

    def seek(self, offset: int, whence: int = os.SEEK_SET, ctx: Context | None = None) -> int:
        """Move to the absolute ``offset`` and return it.

        ``whence`` is accepted for compatibility with file objects but
        ignored: the offset is always taken from the start of the file.
        Use ``skip()`` for relative moves.
        """
        self._check_open()
        return self._file.seek(offset, os.SEEK_SET)

    def skip(self, n: int, ctx: Context | None = None) -> int:
        """Move ``n`` bytes forward without reading; returns the new offset."""
        self._check_open()
        return self._file.seek(n, os.SEEK_CUR)

    # -------------------------------------------------------------------------
    # File-like helpers
    # -------------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._file.closed

    def readable(self) -> bool:
        return not self._file.closed and self._file.readable()

    def writable(self) -> bool:
        return not self._file.closed and self._file.writable()

    def _check_open(self) -> None:
        if self._file.closed:
            raise ValueError(f"I/O operation on closed file: {self.path}")

    def __enter__(self) -> "ContentHandle":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<ContentHandle {self.path!r} {state}>"
