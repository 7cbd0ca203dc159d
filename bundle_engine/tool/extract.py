"""Bundle-engine extract action.

This is the worker side of the unpack pod protocol. The unpack pod runs
`bundle-engine extract --bundle-dir DIR` and the controller reads the
payload envelope from the pod logs.
"""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
import sys
from typing import IO, cast

from bundle_engine.fs import BundleFS
from bundle_engine.source.pod import encode_bundle_payload

_LOGGER = logging.getLogger(__name__)


class ExtractAction:
    """Write the payload envelope for a bundle directory."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "extract",
                help="Write bundle content to stdout",
                description="Archive a bundle directory and write the payload envelope to stdout",
            ),
        )
        args.add_argument(
            "--bundle-dir",
            type=pathlib.Path,
            required=True,
            help="Directory containing the bundle content",
        )
        args.add_argument(
            "--exclude",
            action="append",
            default=[],
            metavar="PATH",
            help="Path relative to the bundle directory to leave out, may be repeated",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        bundle_dir: pathlib.Path,
        exclude: list[str] | None = None,
        output: IO[bytes] | None = None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        tree = await BundleFS.from_directory(bundle_dir, ignore=exclude or ())
        _LOGGER.debug("Extracted %d files from %s", len(tree), bundle_dir)
        out = output or sys.stdout.buffer
        out.write(encode_bundle_payload(tree))
        out.flush()
