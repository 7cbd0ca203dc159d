"""Unpack bundle content stored in a git repository."""

import asyncio
from dataclasses import replace
import logging
from pathlib import Path
from shutil import rmtree

import git

from bundle_engine.exceptions import ConfigurationError, UnpackException
from bundle_engine.fs import BundleFS, clean_path
from bundle_engine.manifest import Bundle, GitRef, GitSource, SourceType

from .cache import GitCache
from .result import Result, State
from .unpacker import Unpacker

_LOGGER = logging.getLogger(__name__)


def _checkout(source: GitSource, repo_path: Path) -> str:
    """Clone or update the repository and check out the reference, returning the commit SHA."""
    try:
        if (repo_path / ".git").exists():
            _LOGGER.info("Updating existing repository at %s", repo_path)
            repo = git.Repo(str(repo_path))
            repo.git.fetch("--tags", "origin")
        else:
            if repo_path.exists():
                # Left behind by an interrupted clone
                rmtree(repo_path)
            _LOGGER.info("Cloning repository %s to %s", source.repository, repo_path)
            repo = git.Repo.clone_from(source.repository, str(repo_path))

        # Reference priority: commit > tag > branch > remote HEAD
        ref = source.ref or GitRef()
        if ref.commit:
            _LOGGER.debug("Checking out commit %s", ref.commit)
            repo.git.checkout(ref.commit)
        elif ref.tag:
            _LOGGER.debug("Checking out tag %s", ref.tag)
            repo.git.checkout(f"tags/{ref.tag}")
        elif ref.branch:
            _LOGGER.debug("Checking out branch %s", ref.branch)
            repo.git.checkout(f"origin/{ref.branch}")
        else:
            repo.git.checkout("origin/HEAD")
        return repo.head.commit.hexsha
    except git.exc.GitCommandError as err:
        raise UnpackException(f"git operation failed: {err}") from err


class GitUnpacker(Unpacker):
    """Reads bundle content from a directory of a git repository.

    The repository is cloned by the controller itself and the unpacked source
    is pinned to the commit that was checked out.
    """

    source_type = SourceType.GIT

    def __init__(self, cache: GitCache) -> None:
        """Initialize GitUnpacker."""
        self._cache = cache

    async def unpack(self, bundle: Bundle) -> Result:
        """Unpack the content of the bundle."""
        self.check_source_type(bundle)
        if (source := bundle.source.git) is None:
            raise ConfigurationError("bundle source git configuration is unset")
        if not source.repository:
            raise ConfigurationError("bundle source git repository is unset")
        directory = clean_path(source.directory)

        repo_path = self._cache.get_repo_path(
            source.repository, source.ref.ref_str if source.ref else None
        )
        async with self._cache.lock(repo_path):
            commit = await asyncio.to_thread(_checkout, source, repo_path)
            content = await BundleFS.from_directory(
                repo_path / directory, ignore=[".git"]
            )

        _LOGGER.info(
            "Fetched %s at %s for bundle %s", source.repository, commit, bundle.name
        )
        resolved = bundle.source.deep_copy()
        resolved.git = replace(source, ref=GitRef(commit=commit))
        return Result(
            state=State.UNPACKED,
            content=content,
            resolved_source=resolved,
            message=f"unpacked {source.repository} at {commit}",
        )
