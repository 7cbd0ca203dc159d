"""Bundle-engine chart action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import json
import logging
import pathlib
import sys
from typing import Any, TextIO, cast

import aiofiles
import yaml

from bundle_engine.exceptions import ConfigurationError
from bundle_engine.fs import BundleFS
from bundle_engine.manifest import Bundle, BundleDeployment, BundleSource
from bundle_engine.provisioner.helm import PROVISIONER_ID, HelmProvisioner

_LOGGER = logging.getLogger(__name__)


async def _read_config(config: str) -> dict[str, Any]:
    """Parse a JSON config blob, or read it from a file with an `@` prefix."""
    if config.startswith("@"):
        try:
            async with aiofiles.open(config[1:]) as config_file:
                config = await config_file.read()
        except OSError as err:
            raise ConfigurationError(f"read config {config[1:]}: {err}") from err
    try:
        doc = json.loads(config)
    except json.JSONDecodeError as err:
        raise ConfigurationError(f"parse config: {err}") from err
    if not isinstance(doc, dict):
        raise ConfigurationError("parse config: expected a JSON object")
    return doc


class ChartAction:
    """Load a local chart as a deployment would."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "chart",
                help="Load a local chart bundle",
                description="Validate a local chart bundle and load it with a deployment config",
            ),
        )
        args.add_argument(
            "path",
            type=pathlib.Path,
            help="Directory containing the chart bundle",
        )
        args.add_argument(
            "--config",
            default="{}",
            help="Deployment config as JSON, or @file to read it from a file",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        path: pathlib.Path,
        config: str,
        output: TextIO | None = None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        name = path.resolve().name
        deployment = BundleDeployment(
            name=name,
            provisioner_class_name=PROVISIONER_ID,
            config=await _read_config(config),
        )
        tree = await BundleFS.from_directory(path)
        provisioner = HelmProvisioner()
        content = await provisioner.handle_bundle(
            tree,
            Bundle(
                name=name, source=BundleSource(type=""), provisioner_class_name=PROVISIONER_ID
            ),
        )
        rendered = await provisioner.handle_bundle_deployment(content, deployment)
        out = output or sys.stdout
        print(
            yaml.dump(
                {
                    "chart": rendered.chart.metadata.to_dict(),
                    "namespace": rendered.namespace,
                    "values": rendered.values,
                },
                sort_keys=False,
                explicit_start=True,
            ),
            end="",
            file=out,
        )
