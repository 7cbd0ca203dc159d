"""Tests for the git clone cache."""

from pathlib import Path

import pytest

from bundle_engine.exceptions import ConfigurationError
from bundle_engine.source.cache import GitCache


@pytest.mark.parametrize(
    ("url", "slug"),
    [
        ("https://github.com/example/combo.git", "combo"),
        ("https://github.com/example/Combo-Bundles/", "combo-bundles"),
        ("git@github.com:example/combo.git", "combo"),
    ],
)
def test_repo_path(tmp_path: Path, url: str, slug: str) -> None:
    """Test clones are keyed by repository and reference."""
    cache = GitCache(tmp_path)
    path = cache.get_repo_path(url)
    assert path.parent == tmp_path / slug
    assert path.parent.is_dir()
    assert not path.exists()
    assert cache.get_repo_path(url) == path
    assert cache.get_repo_path(url, "tag:v1") != path


def test_invalid_url(tmp_path: Path) -> None:
    """Test a URL without a repository name."""
    with pytest.raises(ConfigurationError):
        GitCache(tmp_path).get_repo_path("https://github.com/")


def test_cleanup(tmp_path: Path) -> None:
    """Test cleanup removes clones."""
    cache = GitCache(tmp_path)
    path = cache.get_repo_path("https://github.com/example/combo.git")
    path.mkdir()
    (path / "file").write_text("x")
    cache.cleanup()
    assert not path.exists()


def test_lock_per_clone(tmp_path: Path) -> None:
    """Test each clone has one lock, released from the cache on cleanup."""
    cache = GitCache(tmp_path)
    url = "https://github.com/example/combo.git"
    path = cache.get_repo_path(url, "tag:v1")
    lock = cache.lock(path)
    assert cache.get_repo_path(url, "tag:v1") == path
    assert cache.lock(path) is lock
    assert cache.lock(cache.get_repo_path(url, "tag:v2")) is not lock

    cache.cleanup()
    with pytest.raises(KeyError):
        cache.lock(path)
    assert cache.lock(cache.get_repo_path(url, "tag:v1")) is not lock
