"""Cache management for git sources."""

import asyncio
import hashlib
import logging
from pathlib import Path
from shutil import rmtree
from urllib.parse import urlparse

from slugify import slugify

from bundle_engine.exceptions import ConfigurationError, UnpackException

_LOGGER = logging.getLogger(__name__)


class GitCache:
    """Cache manager for local clones of git repositories.

    Each repository and reference gets its own clone so that bundles pinned
    to different references never share a working tree. A clone is shared by
    every bundle with the same source, and is guarded by its own lock.
    """

    def __init__(self, cache_dir: Path) -> None:
        """Initialize the cache manager."""
        self._cache_dir = cache_dir
        self._repos: dict[Path, asyncio.Lock] = {}

    def _slugify_url(self, url: str) -> str:
        """Extract and slugify a repository name from a URL."""
        parsed = urlparse(url)
        path = parsed.path.removesuffix(".git")
        slug = path.rstrip("/").split("/")[-1]

        # Handle SSH URLs (git@github.com:user/repo.git)
        if parsed.scheme == "" and "@" in url and ":" in url:
            slug = url.rsplit(":", 1)[1].removesuffix(".git").split("/")[-1]

        if not (name := slugify(slug, max_length=50, lowercase=True, separator="-")):
            raise ConfigurationError(f"Invalid repository URL: {url!r}")
        return name

    def get_repo_path(self, url: str, ref: str | None = None) -> Path:
        """Get the local path for a clone of a repository at a reference.

        The parent directory is created; the clone itself is not.
        """
        cache_key = hashlib.sha256()
        cache_key.update(url.encode("utf-8"))
        if ref:
            cache_key.update(ref.encode("utf-8"))

        # e.g. /bundle-engine-cache/my-repo/ab1234567890abcdef
        cache_path = self._cache_dir / self._slugify_url(url) / cache_key.hexdigest()[:16]
        try:
            cache_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise UnpackException(f"Failed to create cache directory: {err}") from err
        self._repos.setdefault(cache_path, asyncio.Lock())
        return cache_path

    def lock(self, repo_path: Path) -> asyncio.Lock:
        """Return the lock held while a clone is updated or read."""
        return self._repos[repo_path]

    def cleanup(self) -> None:
        """Remove all cached clones."""
        for path in self._repos:
            if path.exists():
                _LOGGER.info("Cleaning up cached repository: %s", path)
                rmtree(path)
        self._repos.clear()
