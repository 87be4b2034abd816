"""Tests for configuration, URL helpers and scheme lookup."""

import pytest

from ctxfs import (
    FileBackend,
    FileBackendConfig,
    backend_for,
    connect_backend,
    path_to_url,
    url_to_path,
)


class TestConnectBackend:
    """Test connect_backend() validation."""

    def test_defaults(self):
        """No arguments gives the default configuration."""
        config = connect_backend()
        assert config == FileBackendConfig()
        assert config.dir_mode == 0o755
        assert config.file_mode == 0o644
        assert config.max_symlink_hops == 40
        assert config.polling is False

    def test_overrides(self):
        """Keyword arguments override the defaults."""
        config = connect_backend(type="file", polling=True, polling_interval=0.5)
        assert config.polling is True
        assert config.polling_interval == 0.5

    def test_unbounded_symlinks(self):
        """max_symlink_hops=None turns off the hop limit."""
        assert connect_backend(max_symlink_hops=None).max_symlink_hops is None

    def test_unexpected_argument(self):
        """Unknown keyword arguments are rejected."""
        with pytest.raises(ValueError, match="Unexpected arguments"):
            connect_backend(root="/tmp")

    def test_unsupported_type(self):
        """Only the file backend type is accepted."""
        with pytest.raises(ValueError, match="Unsupported backend type"):
            connect_backend(type="s3")

    def test_negative_hops(self):
        """A negative hop limit is rejected."""
        with pytest.raises(ValueError):
            connect_backend(max_symlink_hops=-1)

    def test_bad_polling_interval(self):
        """A non-positive polling interval is rejected."""
        with pytest.raises(ValueError):
            connect_backend(polling_interval=0)

    def test_backend_default_config(self):
        """FileBackend without a config uses the defaults."""
        assert FileBackend().config == FileBackendConfig()


class TestUrls:
    """Test file URL conversion."""

    def test_absolute(self):
        """An absolute file URL maps to its path."""
        assert url_to_path("file:///tmp/data.txt") == "/tmp/data.txt"

    def test_percent_encoded(self):
        """Percent escapes in the URL are decoded."""
        assert url_to_path("file:///tmp/my%20file.txt") == "/tmp/my file.txt"

    def test_localhost(self):
        """localhost is accepted as the URL host."""
        assert url_to_path("file://localhost/tmp/x") == "/tmp/x"

    def test_relative(self):
        """A URL without slashes gives a relative path."""
        assert url_to_path("file:notes/today.md") == "notes/today.md"

    def test_other_scheme(self):
        """URLs with another scheme are rejected."""
        with pytest.raises(ValueError):
            url_to_path("https://example.com/x")

    def test_remote_host(self):
        """URLs naming a remote host are rejected."""
        with pytest.raises(ValueError):
            url_to_path("file://server/x")

    def test_empty_path(self):
        """A URL without a path is rejected."""
        with pytest.raises(ValueError):
            url_to_path("file://")

    def test_path_to_url(self, tmp_path):
        """path_to_url escapes the path and converts back to it."""
        target = tmp_path / "a b.txt"
        converted = path_to_url(target)
        assert converted.startswith("file:///")
        assert "%20" in converted
        assert url_to_path(converted) == str(target)


class TestBackendFor:
    """Test dispatching URLs to the backend for their scheme."""

    def test_finds_backend(self):
        """A URL is dispatched to the backend for its scheme."""
        backend = FileBackend()
        backends = {backend.scheme: backend}
        assert backend_for(backends, "file:///tmp/x") is backend

    def test_scheme_is_case_insensitive(self):
        """Scheme lookup ignores case."""
        backend = FileBackend()
        assert backend_for({"file": backend}, "FILE:///tmp/x") is backend

    def test_unknown_scheme(self):
        """A scheme with no backend is rejected."""
        with pytest.raises(ValueError, match="No backend"):
            backend_for({"file": FileBackend()}, "gs://bucket/x")
