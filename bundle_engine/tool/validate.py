"""Bundle-engine validate action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
import sys
from typing import TextIO, cast

from bundle_engine.fs import BundleFS
from bundle_engine.manifest import Bundle, BundleSource
from bundle_engine.provisioner import PROVISIONERS, get_provisioner
from bundle_engine.provisioner.plain import PROVISIONER_ID as PLAIN_PROVISIONER_ID

_LOGGER = logging.getLogger(__name__)


class ValidateAction:
    """Validate a local bundle directory with a provisioner."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "validate",
                help="Validate a local bundle directory",
                description="Run a provisioner over a local bundle directory and print the stored files",
            ),
        )
        args.add_argument(
            "path",
            type=pathlib.Path,
            help="Directory containing the bundle content",
        )
        args.add_argument(
            "--provisioner",
            choices=sorted(PROVISIONERS),
            default=PLAIN_PROVISIONER_ID,
            help="Provisioner used to validate the content",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        path: pathlib.Path,
        provisioner: str,
        output: TextIO | None = None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        tree = await BundleFS.from_directory(path)
        bundle = Bundle(
            name=path.resolve().name,
            source=BundleSource(type=""),
            provisioner_class_name=provisioner,
        )
        content = await get_provisioner(provisioner).handle_bundle(tree, bundle)
        out = output or sys.stdout
        for name in content:
            print(name, file=out)
