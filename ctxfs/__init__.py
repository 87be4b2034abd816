"""ctxfs: Local-filesystem storage backend with cancellable I/O and change watching."""

from .base import CancelWatch, StorageBackend, WatchCallback, backend_for
from .config import FileBackendConfig, connect_backend
from .context import (
    Cancelled,
    Context,
    DeadlineExceeded,
    background,
    current_context,
    get_context,
    timeout,
    use_context,
    with_cancel,
    with_deadline,
    with_timeout,
)
from .handle import ContentHandle
from .local import FileBackend
from .urls import path_to_url, url_to_path
from .watcher import FileWatcher, WatchError, WatchState

__all__ = [
    "background",
    "backend_for",
    "Cancelled",
    "CancelWatch",
    "connect_backend",
    "ContentHandle",
    "Context",
    "current_context",
    "DeadlineExceeded",
    "FileBackend",
    "FileBackendConfig",
    "FileWatcher",
    "get_context",
    "path_to_url",
    "StorageBackend",
    "timeout",
    "url_to_path",
    "use_context",
    "WatchCallback",
    "WatchError",
    "WatchState",
    "with_cancel",
    "with_deadline",
    "with_timeout",
]
