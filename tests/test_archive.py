"""Tests for the archive pipeline."""

from typing import IO
from unittest.mock import patch

import pytest

from bundle_engine import archive
from bundle_engine.exceptions import ContentValidationError
from bundle_engine.fs import BundleFS


async def test_load_archive() -> None:
    """Test the loader receives the serialized tree."""
    tree = BundleFS({"chart/Chart.yaml": b"name: a", "chart/values.yaml": b"x: 1"})
    loaded = await archive.load_archive(tree, BundleFS.from_tar)
    assert loaded == tree


async def test_load_archive_large_tree() -> None:
    """Test a tree much larger than the pipe buffer."""
    tree = BundleFS(
        {f"data/{i}.bin": bytes([i % 256]) * 100_000 for i in range(20)}
    )
    loaded = await archive.load_archive(tree, BundleFS.from_tar)
    assert loaded == tree


async def test_loader_stops_early() -> None:
    """Test a loader that does not read the whole stream."""
    tree = BundleFS({f"{i}.bin": bytes(100_000) for i in range(10)})

    def read_header(fileobj: IO[bytes]) -> bytes:
        return fileobj.read(2)

    assert await archive.load_archive(tree, read_header) == b"\x1f\x8b"


async def test_loader_failure() -> None:
    """Test a loader error is raised."""

    def fail(fileobj: IO[bytes]) -> None:
        raise ValueError("bad chart")

    with pytest.raises(ValueError, match="bad chart"):
        await archive.load_archive(BundleFS({"a": b"a"}), fail)


async def test_writer_failure_is_not_masked() -> None:
    """Test a writer error wins over the truncated stream error it causes."""
    tree = BundleFS({"a": b"a"})

    def broken_write(self: BundleFS, fileobj: IO[bytes]) -> None:
        fileobj.write(b"\x1f\x8b")
        raise OSError("disk on fire")

    with patch.object(BundleFS, "write_tar_gz", broken_write):
        with pytest.raises(OSError, match="disk on fire"):
            await archive.load_archive(tree, BundleFS.from_tar)


async def test_invalid_stream_reports_reader_error() -> None:
    """Test a reader that rejects the stream reports its own error."""

    def reject(fileobj: IO[bytes]) -> None:
        fileobj.read(10)
        raise ContentValidationError("not a chart")

    with pytest.raises(ContentValidationError, match="not a chart"):
        await archive.load_archive(BundleFS({"a": b"a"}), reject)
