"""Configuration for the local file backend.

Provides the FileBackendConfig dataclass and the connect_backend factory
that validates keyword arguments into one.
"""

from dataclasses import dataclass
from typing import Literal


@dataclass
class FileBackendConfig:
    """Configuration for the ``file`` scheme backend.

    Attributes:
        type: Always "file".
        dir_mode: Permission bits for parent directories created by writers.
        file_mode: Permission bits for files created by writers.
        max_symlink_hops: Symbolic links followed when resolving a watch
            target before giving up with ELOOP. None means unlimited.
        polling: Watch by periodic stat polling instead of the native OS
            notification API (useful on filesystems without one).
        polling_interval: Seconds between polls when ``polling`` is set.
    """

    type: Literal["file"] = "file"
    dir_mode: int = 0o755
    file_mode: int = 0o644
    max_symlink_hops: int | None = 40
    polling: bool = False
    polling_interval: float = 1.0


def connect_backend(
    type: Literal["file"] = "file",
    **kwargs,
) -> FileBackendConfig:
    """Configure a storage backend.

    Args:
        type: Backend type. Only "file" (local filesystem) is available.
        **kwargs: Fields of the backend's config dataclass:
            - dir_mode (int): Mode for auto-created directories.
            - file_mode (int): Mode for created files.
            - max_symlink_hops (int | None): Symlink resolution bound.
            - polling (bool): Use the polling watch observer.
            - polling_interval (float): Poll period in seconds.

    Returns:
        Config for FileBackend.

    Examples:
        >>> connect_backend(type="file", polling=True)
        FileBackendConfig(type='file', dir_mode=493, file_mode=420, max_symlink_hops=40, polling=True, polling_interval=1.0)
    """
    if type != "file":
        raise ValueError(f"Unsupported backend type: {type}. Use 'file'.")

    dir_mode = kwargs.pop("dir_mode", 0o755)
    file_mode = kwargs.pop("file_mode", 0o644)
    max_symlink_hops = kwargs.pop("max_symlink_hops", 40)
    polling = kwargs.pop("polling", False)
    polling_interval = kwargs.pop("polling_interval", 1.0)

    if kwargs:
        raise ValueError(
            f"Unexpected arguments for file backend: {list(kwargs.keys())}"
        )
    if max_symlink_hops is not None and max_symlink_hops < 0:
        raise ValueError("max_symlink_hops must be non-negative or None")
    if polling_interval <= 0:
        raise ValueError("polling_interval must be positive")

    return FileBackendConfig(
        dir_mode=dir_mode,
        file_mode=file_mode,
        max_symlink_hops=max_symlink_hops,
        polling=polling,
        polling_interval=polling_interval,
    )
