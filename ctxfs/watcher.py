"""Change watching for local files and directories.

A FileWatcher reports the current state of its target first and then every
later change, always as a fresh reader over the whole file rather than a
diff. The OS watch is registered before the initial scan so a change made
while scanning is still seen afterwards.
"""

from __future__ import annotations

import enum
import errno
import logging
import os
import queue
import stat
import threading
from typing import TYPE_CHECKING

from watchdog.events import (
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from . import bridge
from .context import Context, background, get_context
from .urls import path_to_url, url_to_path

if TYPE_CHECKING:
    from .base import WatchCallback
    from .handle import ContentHandle
    from .local import FileBackend

logger = logging.getLogger(__name__)

# Creation alone is not reported; a write event follows it
_REPORTED_EVENTS = frozenset({EVENT_TYPE_MODIFIED, EVENT_TYPE_DELETED, EVENT_TYPE_MOVED})


class WatchError(Exception):
    """A failure while handling a change after the watch was set up.

    Attributes:
        url: Subject the failure concerns (a path if no URL could be made).
    """

    def __init__(self, url: str, cause: BaseException):
        super().__init__(f"{url}: {cause}")
        self.url = url
        self.__cause__ = cause


class WatchState(enum.Enum):
    INITIALIZING = "initializing"
    SCANNING = "scanning"
    WATCHING = "watching"
    SHUTTING_DOWN = "shutting_down"
    CLOSED = "closed"


def resolve_symlinks(path: str, max_hops: int | None = 40) -> str:
    """Follow symbolic links at ``path`` until it names a concrete entry.

    Relative link targets are taken relative to the link's directory.

    Args:
        path: Path that may be a symbolic link.
        max_hops: Links to follow before failing. None follows forever,
            which never returns on a link cycle.

    Raises:
        OSError: ELOOP if more than ``max_hops`` links were followed, or
            whatever readlink raises.
    """
    hops = 0
    while os.path.islink(path):
        if max_hops is not None and hops >= max_hops:
            raise OSError(errno.ELOOP, "Too many levels of symbolic links", path)
        target = os.readlink(path)
        path = os.path.normpath(os.path.join(os.path.dirname(path), target))
        hops += 1
    return path


def _regular_files(directory: str) -> list[str]:
    """Names of the regular files directly inside ``directory``.

    Entries that vanish while being checked are left out.
    """
    names = []
    for name in os.listdir(directory):
        try:
            mode = os.stat(os.path.join(directory, name)).st_mode
        except FileNotFoundError:
            continue
        if stat.S_ISREG(mode):
            names.append(name)
    return names


def _is_special(path: str) -> bool:
    """Whether ``path`` exists and is something other than a regular file."""
    try:
        mode = os.stat(path).st_mode
    except OSError:
        return False
    return not stat.S_ISREG(mode)


class _EventForwarder(FileSystemEventHandler):
    """Hands raw watchdog events to the watcher's processing loop."""

    def __init__(self, events: queue.Queue):
        super().__init__()
        self._events = events

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._events.put(event)


class FileWatcher:
    """Watch one file, or the files directly inside one directory.

    Setup happens in the constructor: resolve symlinks, register the OS
    watch, then call ``notify`` once per regular file (once for a single
    file target). Afterwards a background thread turns modified, deleted
    and moved events into ``notify`` calls, each on its own thread, until
    ``shutdown()``.

    A single file is watched through its parent directory so that removing
    and recreating it keeps being reported.

    Attributes:
        path: Resolved path of the watched file or directory.
        url: ``file`` URL of ``path``.
        is_dir: Whether the target is a directory.
        errors: Queue of WatchError raised while handling live events.
        state: Current WatchState.
    """

    def __init__(
        self,
        backend: FileBackend,
        url: str,
        notify: WatchCallback,
        ctx: Context | None = None,
    ):
        """Set up the watch and replay the current state.

        Args:
            backend: Backend used to open readers.
            url: ``file`` URL of the target.
            notify: Called with (subject URL, reader) per file state.
            ctx: Context bounding the initial scan's opens.

        Raises:
            OSError: If resolving, stat'ing or watching the target fails, or
                a file can't be opened during the scan.
            Cancelled: If ``ctx`` is done during the scan.
        """
        self.state = WatchState.INITIALIZING
        self._backend = backend
        self._notify = notify
        self._shutdown = False
        self._events: queue.Queue[FileSystemEvent | None] = queue.Queue()
        self.errors: queue.Queue[WatchError] = queue.Queue()

        config = backend.config
        target = os.path.abspath(url_to_path(url))
        self.path = resolve_symlinks(target, config.max_symlink_hops)
        self.url = path_to_url(self.path)
        self.is_dir = stat.S_ISDIR(os.stat(self.path).st_mode)
        self._watch_dir = self.path if self.is_dir else os.path.dirname(self.path)

        if config.polling:
            self._observer = PollingObserver(timeout=config.polling_interval)
        else:
            self._observer = Observer()

        try:
            self._watch = self._observer.schedule(
                _EventForwarder(self._events), self._watch_dir, recursive=False
            )
            # Emitters open their OS watch synchronously here
            self._observer.start()

            self.state = WatchState.SCANNING
            self._scan(get_context(ctx))
        except BaseException:
            self._release()
            self.state = WatchState.CLOSED
            raise

        self.state = WatchState.WATCHING
        self._thread = threading.Thread(
            target=self._process_events, name="ctxfs-watch", daemon=True
        )
        self._thread.start()

    # -------------------------------------------------------------------------
    # Initial state
    # -------------------------------------------------------------------------

    def _scan(self, ctx: Context) -> None:
        if not self.is_dir:
            self._notify(self.url, self._backend.open_reader(self.url, ctx=ctx))
            return

        # Directories, FIFOs, sockets and devices are not file content
        for name in bridge.call(ctx, "list", _regular_files, self.path):
            child = os.path.join(self.path, name)
            subject = path_to_url(child)
            try:
                reader = self._backend.open_reader(subject, ctx=ctx)
            except FileNotFoundError:
                logger.debug("%s vanished before the initial scan read it", child)
                continue
            self._notify(subject, reader)

    # -------------------------------------------------------------------------
    # Live events
    # -------------------------------------------------------------------------

    def _covers(self, path: str) -> bool:
        if self.is_dir:
            return os.path.dirname(path) == self.path
        return path == self.path

    def _subject_path(self, event: FileSystemEvent) -> str | None:
        """Pick the watched path an event is about, or None to ignore it."""
        if event.is_directory or event.event_type not in _REPORTED_EVENTS:
            return None
        names = [event.src_path]
        if event.event_type == EVENT_TYPE_MOVED:
            names.insert(0, event.dest_path)
        for name in names:
            path = os.path.normpath(os.path.join(self._watch_dir, os.fsdecode(name)))
            if self._covers(path):
                return path
        return None

    def _process_events(self) -> None:
        ctx = background()
        while not self._shutdown:
            event = self._events.get()
            if event is None:
                break
            path = self._subject_path(event)
            if path is None:
                continue
            if _is_special(path):
                logger.debug("ignoring change to non-regular file %s", path)
                continue

            try:
                subject = path_to_url(path)
            except ValueError as exc:
                self.errors.put(WatchError(path, exc))
                continue

            try:
                reader = self._backend.open_reader(subject, ctx=ctx)
            except (OSError, ValueError) as exc:
                logger.debug("could not reopen %s: %s", subject, exc)
                self.errors.put(WatchError(subject, exc))
                continue

            threading.Thread(
                target=self._dispatch,
                args=(subject, reader),
                name="ctxfs-notify",
                daemon=True,
            ).start()

    def _dispatch(self, subject: str, reader: ContentHandle) -> None:
        try:
            self._notify(subject, reader)
        except Exception:
            logger.exception("watch callback failed for %s", subject)

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def _release(self) -> None:
        self._observer.stop()
        if self._observer.is_alive():
            self._observer.join()

    def shutdown(self) -> None:
        """Stop watching and release the OS watch.

        An event already taken off the queue may still be reported after
        this returns; nothing that happens later is. Calling it again does
        nothing.
        """
        if self._shutdown:
            return
        self._shutdown = True
        self.state = WatchState.SHUTTING_DOWN
        try:
            self._observer.unschedule(self._watch)
        finally:
            self._release()
            self._events.put(None)
            self.state = WatchState.CLOSED
        logger.debug("stopped watching %s", self.path)
