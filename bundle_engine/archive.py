"""Stream a filesystem tree into a loader that expects a tar.gz archive.

The tree is serialized by one stage and consumed by another, connected by an
OS pipe, so the whole archive never needs to exist in memory at once:

```python
from bundle_engine import archive
from bundle_engine.provisioner.helm import chart

loaded = await archive.load_archive(bundle_fs, chart.load_archive)
```

Both stages run concurrently in worker threads. When a stage fails it closes
its end of the pipe, which unblocks the other stage. The error raised is the
one from whichever stage failed first, so a failure while writing is not
masked by the truncated stream error it causes in the reader.
"""

import asyncio
from collections.abc import Callable
import logging
import os
import threading
from typing import IO, TypeVar, cast

from .fs import BundleFS

__all__ = [
    "load_archive",
]

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

_DRAIN_SIZE = 64 * 1024


class _StageErrors:
    """Records stage failures in the order they happen."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._errors: list[BaseException] = []

    def add(self, err: BaseException) -> None:
        with self._lock:
            self._errors.append(err)

    @property
    def first(self) -> BaseException | None:
        with self._lock:
            return self._errors[0] if self._errors else None


async def load_archive(tree: BundleFS, loader: Callable[[IO[bytes]], _T]) -> _T:
    """Serialize `tree` as a tar.gz stream and hand the stream to `loader`."""
    read_fd, write_fd = os.pipe()
    reader = os.fdopen(read_fd, "rb")
    writer = os.fdopen(write_fd, "wb")
    errors = _StageErrors()

    def write_stage() -> None:
        try:
            tree.write_tar_gz(writer)
        except BaseException as err:
            errors.add(err)
            raise
        finally:
            writer.close()

    def read_stage() -> _T:
        try:
            loaded = loader(reader)
            # Drain trailing padding so the writer never sees a closed pipe
            while reader.read(_DRAIN_SIZE):
                pass
            return loaded
        except BaseException as err:
            errors.add(err)
            raise
        finally:
            reader.close()

    results = await asyncio.gather(
        asyncio.to_thread(write_stage),
        asyncio.to_thread(read_stage),
        return_exceptions=True,
    )
    if (err := errors.first) is not None:
        _LOGGER.debug("Archive pipeline failed: %s", err)
        raise err
    return cast(_T, results[1])
