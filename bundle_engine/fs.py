"""An in-memory, read-only filesystem tree holding bundle content.

Every source strategy produces a `BundleFS` and every provisioner consumes
one. Paths are relative POSIX paths, normalized on the way in, so `./a/b`,
`a//b` and `a/b` all name the same file. Directories are implied by the
files beneath them and may also be recorded explicitly (e.g. an empty
directory read from an archive).

A tree is never modified in place. Operations that reshape a tree, such as
`with_base_dir`, return a new tree.
"""

from collections.abc import Generator, Iterable, Mapping
import io
import logging
from pathlib import Path
import posixpath
import tarfile
from typing import IO

import aiofiles
import aiofiles.os

from .exceptions import ContentValidationError

__all__ = [
    "BundleFS",
    "ROOT",
    "clean_path",
]

_LOGGER = logging.getLogger(__name__)

ROOT = "."


def clean_path(path: str) -> str:
    """Normalize a relative path, rejecting paths outside the root."""
    if posixpath.isabs(path):
        raise ContentValidationError(f"path {path!r} must be relative")
    cleaned = posixpath.normpath(path or ROOT)
    if cleaned == ".." or cleaned.startswith("../"):
        raise ContentValidationError(f"path {path!r} is outside the bundle root")
    return cleaned


def _parents(path: str) -> Generator[str, None, None]:
    parent = posixpath.dirname(path)
    while parent:
        yield parent
        parent = posixpath.dirname(parent)


class BundleFS(Mapping[str, bytes]):
    """An immutable tree of files keyed by relative path."""

    def __init__(
        self, files: Mapping[str, bytes] | None = None, dirs: Iterable[str] = ()
    ) -> None:
        """Initialize BundleFS from file contents and extra directories."""
        self._files: dict[str, bytes] = {}
        self._dirs: set[str] = set()
        for name, data in (files or {}).items():
            path = clean_path(name)
            if path == ROOT:
                raise ContentValidationError("bundle root can't be a file")
            if path in self._files:
                raise ContentValidationError(f"duplicate path {path!r}")
            self._files[path] = bytes(data)
            self._dirs.update(_parents(path))
        for name in dirs:
            if (path := clean_path(name)) == ROOT:
                continue
            self._dirs.add(path)
            self._dirs.update(_parents(path))
        if conflicts := self._dirs.intersection(self._files):
            raise ContentValidationError(
                f"paths are used as both a file and a directory: {sorted(conflicts)}"
            )

    def __getitem__(self, path: str) -> bytes:
        return self._files[clean_path(path)]

    def __iter__(self):  # type: ignore[no-untyped-def]
        return iter(sorted(self._files))

    def __len__(self) -> int:
        return len(self._files)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BundleFS):
            return NotImplemented
        return self._files == other._files and self._dirs == other._dirs

    def __repr__(self) -> str:
        return f"BundleFS({sorted(self._files)})"

    @property
    def dirs(self) -> list[str]:
        """All directories in the tree, excluding the root."""
        return sorted(self._dirs)

    def read_bytes(self, path: str) -> bytes:
        """Return the contents of a file."""
        try:
            return self[path]
        except KeyError as err:
            raise FileNotFoundError(path) from err

    def read_text(self, path: str) -> str:
        return self.read_bytes(path).decode("utf-8")

    def is_dir(self, path: str) -> bool:
        path = clean_path(path)
        return path == ROOT or path in self._dirs

    def exists(self, path: str) -> bool:
        path = clean_path(path)
        return path in self._files or self.is_dir(path)

    def list_dir(self, path: str = ROOT) -> list[str]:
        """Return the names of the entries directly within a directory."""
        path = clean_path(path)
        if not self.is_dir(path):
            raise NotADirectoryError(path)
        names = set()
        for entry in (*self._files, *self._dirs):
            parent = posixpath.dirname(entry) or ROOT
            if parent == path:
                names.add(posixpath.basename(entry))
        return sorted(names)

    def walk(self) -> Generator[tuple[str, bool], None, None]:
        """Yield every path in the tree, parents first, with whether it is a directory."""
        for path in sorted({*self._files, *self._dirs}):
            yield path, path in self._dirs

    def sub(self, path: str) -> "BundleFS":
        """Return the subtree rooted at a directory."""
        path = clean_path(path)
        if path == ROOT:
            return self
        if path not in self._dirs:
            raise NotADirectoryError(path)
        prefix = f"{path}/"
        return BundleFS(
            {
                name.removeprefix(prefix): data
                for name, data in self._files.items()
                if name.startswith(prefix)
            },
            [name.removeprefix(prefix) for name in self._dirs if name.startswith(prefix)],
        )

    def with_base_dir(self, base_dir: str) -> "BundleFS":
        """Return a tree whose root holds a single directory.

        Some loaders expect the content to live in exactly one top level
        directory. If this tree already has that shape it is returned as is,
        otherwise the content is placed under `base_dir`.
        """
        cleaned = clean_path(base_dir)
        if cleaned == ROOT or "/" in cleaned:
            raise ContentValidationError(
                f"default base directory {base_dir!r} contains multiple path segments: must be exactly one"
            )
        entries = self.list_dir()
        if len(entries) == 1 and self.is_dir(entries[0]):
            return self
        return BundleFS(
            {posixpath.join(cleaned, name): data for name, data in self._files.items()},
            [cleaned, *(posixpath.join(cleaned, name) for name in self._dirs)],
        )

    def write_tar_gz(self, fileobj: IO[bytes]) -> None:
        """Write the tree as a gzip compressed tar stream."""
        with tarfile.open(fileobj=fileobj, mode="w|gz") as tar:
            for path, is_dir in self.walk():
                info = tarfile.TarInfo(path)
                if is_dir:
                    info.type = tarfile.DIRTYPE
                    info.mode = 0o755
                    tar.addfile(info)
                    continue
                data = self._files[path]
                info.size = len(data)
                info.mode = 0o644
                tar.addfile(info, io.BytesIO(data))

    def to_tar_gz(self) -> bytes:
        """Return the tree as gzip compressed tar bytes."""
        buf = io.BytesIO()
        self.write_tar_gz(buf)
        return buf.getvalue()

    @classmethod
    def from_tar(cls, fileobj: IO[bytes], compression: str = "gz") -> "BundleFS":
        """Read a tar stream into a tree.

        The stream is read sequentially so `fileobj` may be a pipe.
        """
        files: dict[str, bytes] = {}
        dirs: list[str] = []
        try:
            with tarfile.open(fileobj=fileobj, mode=f"r|{compression}") as tar:
                for member in tar:
                    if member.isdir():
                        dirs.append(member.name)
                    elif member.isfile():
                        extracted = tar.extractfile(member)
                        if extracted is None:
                            continue
                        files[member.name] = extracted.read()
                    else:
                        _LOGGER.warning(
                            "Skipping unsupported archive member %s", member.name
                        )
        except (tarfile.TarError, EOFError, OSError) as err:
            raise ContentValidationError(f"read bundle archive: {err}") from err
        return cls(files, dirs)

    @classmethod
    async def from_directory(
        cls, path: Path, ignore: Iterable[str] = ()
    ) -> "BundleFS":
        """Read a local directory into a tree.

        Paths in `ignore` are relative to `path`. They are skipped along with
        their contents, which are never listed or read.
        """
        if not await aiofiles.os.path.isdir(path):
            raise ContentValidationError(f"bundle directory {path} does not exist")
        ignored = {clean_path(ignored_path) for ignored_path in ignore}
        files: dict[str, bytes] = {}
        dirs: list[str] = []
        pending = [path]
        try:
            while pending:
                directory = pending.pop()
                for child in sorted(directory.iterdir()):
                    rel = child.relative_to(path).as_posix()
                    if rel in ignored:
                        continue
                    if child.is_symlink():
                        _LOGGER.warning("Skipping symlink %s", child)
                    elif child.is_dir():
                        dirs.append(rel)
                        pending.append(child)
                    elif child.is_file():
                        async with aiofiles.open(child, mode="rb") as bundle_file:
                            files[rel] = await bundle_file.read()
                    else:
                        _LOGGER.warning("Skipping special file %s", child)
        except OSError as err:
            raise ContentValidationError(
                f"read bundle directory {path}: {err}"
            ) from err
        return cls(files, dirs)
