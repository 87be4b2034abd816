"""Local filesystem backend for ``file`` URLs.

Each operation hands its one blocking OS call to the bridge, so the caller
gets the result, the OS error, or the cancellation error, whichever comes
first.
"""

from __future__ import annotations

import io
import logging
import os
import queue
import stat
from typing import TYPE_CHECKING

from . import bridge
from .config import FileBackendConfig
from .context import Context, get_context
from .handle import ContentHandle
from .urls import SCHEME, url_to_path
from .watcher import FileWatcher

if TYPE_CHECKING:
    from .base import CancelWatch, WatchCallback

logger = logging.getLogger(__name__)


def _close_handle(handle: ContentHandle) -> None:
    # Runs on the worker that produced the handle, after the caller left
    handle._file.close()


class FileBackend:
    """Storage backend for files on the local disk.

    Example::

        backend = FileBackend()
        with timeout(5.0):
            with backend.open_writer("file:///tmp/out/data.bin") as w:
                w.write(b"payload")
    """

    scheme = SCHEME

    def __init__(self, config: FileBackendConfig | None = None):
        self.config = config or FileBackendConfig()

    # -------------------------------------------------------------------------
    # Worker-side calls
    # -------------------------------------------------------------------------

    def _open_read(self, path: str) -> ContentHandle:
        return ContentHandle(open(path, "rb", buffering=0), path)

    def _open_write(self, path: str, flags: int) -> ContentHandle:
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, mode=self.config.dir_mode, exist_ok=True)
        fd = os.open(path, flags, self.config.file_mode)
        try:
            return ContentHandle(io.FileIO(fd, "w", closefd=True), path)
        except BaseException:
            os.close(fd)
            raise

    @staticmethod
    def _remove(path: str) -> None:
        st = os.lstat(path)
        if stat.S_ISDIR(st.st_mode):
            os.rmdir(path)
        else:
            os.remove(path)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def open_reader(self, url: str, ctx: Context | None = None) -> ContentHandle:
        """Open a file for reading.

        Args:
            url: ``file`` URL of the file.
            ctx: Context bounding the open; defaults to the current one.

        Raises:
            Cancelled: If ``ctx`` is done before the open completes. A file
                opened afterwards is closed again in the background.
            FileNotFoundError: If the file doesn't exist.
        """
        path = url_to_path(url)
        return bridge.call(
            get_context(ctx), "open", self._open_read, path, discard=_close_handle
        )

    def open_writer(self, url: str, ctx: Context | None = None) -> ContentHandle:
        """Open a file for writing, truncating it and creating parent dirs."""
        path = url_to_path(url)
        flags = os.O_WRONLY | os.O_CREAT | os.O_TRUNC
        return bridge.call(
            get_context(ctx),
            "open",
            self._open_write,
            path,
            flags,
            discard=_close_handle,
        )

    def open_appender(self, url: str, ctx: Context | None = None) -> ContentHandle:
        """Open a file for appending, creating it and its parent dirs if needed.

        Existing content is kept; every write lands at the end of the file.
        """
        path = url_to_path(url)
        flags = os.O_WRONLY | os.O_CREAT | os.O_APPEND
        return bridge.call(
            get_context(ctx),
            "open",
            self._open_write,
            path,
            flags,
            discard=_close_handle,
        )

    def list_entries(self, url: str, ctx: Context | None = None) -> list[str]:
        """Return the names directly inside a directory, in no particular order."""
        path = url_to_path(url)
        return bridge.call(get_context(ctx), "list", os.listdir, path)

    def remove(self, url: str, ctx: Context | None = None) -> None:
        """Remove a file, a symlink or an empty directory.

        Entries below a directory are never touched; a non-empty directory
        fails with OSError(ENOTEMPTY).
        """
        path = url_to_path(url)
        bridge.call(get_context(ctx), "remove", self._remove, path)

    def watch(
        self, url: str, notify: WatchCallback, ctx: Context | None = None
    ) -> tuple[CancelWatch, queue.Queue]:
        """Watch a file, or the files directly inside a directory.

        The current state is reported first: ``notify(url, handle)`` runs once
        per file before this returns. After that, every modification, removal
        or rename is reported from a background thread until the returned
        cancel function is called.

        Args:
            url: ``file`` URL of a file or directory.
            notify: Receives the subject URL and a fresh reader it must close.
            ctx: Context bounding the setup and initial scan only.

        Returns:
            The cancel function and the queue receiving WatchError for
            failures that happen after setup.

        Raises:
            OSError: If the target can't be resolved, stat'ed or watched, or
                a file can't be opened during the initial scan.
            Cancelled: If ``ctx`` is done during the initial scan.
        """
        watcher = FileWatcher(self, url, notify, ctx=ctx)
        logger.debug("watching %s", watcher.path)
        return watcher.shutdown, watcher.errors
