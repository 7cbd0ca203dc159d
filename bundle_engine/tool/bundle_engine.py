"""Command line tool for unpacking and validating bundle content."""

import argparse
import asyncio
import logging
import sys
import traceback
from typing import Any

import yaml

from bundle_engine.exceptions import BundleException
from . import chart, extract, validate

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Command line utility for unpacking and validating bundle content.",
    )
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    extract.ExtractAction.register(subparsers)
    validate.ValidateAction.register(subparsers)
    chart.ChartAction.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> None:
    """Bundle-engine command line tool main entry point."""

    def str_presenter(dumper: yaml.Dumper, data: Any) -> Any:
        """Represent multi-line yaml strings as you'd expect.

        See https://github.com/yaml/pyyaml/issues/240
        """
        return dumper.represent_scalar(
            "tag:yaml.org,2002:str", data, style="|" if data.count("\n") > 0 else None
        )

    yaml.add_representer(str, str_presenter)

    parser = _make_parser()
    args = parser.parse_args(argv)

    if args.log_level:
        logging.basicConfig(level=args.log_level, stream=sys.stderr)
    else:
        # Pod logs merge stdout and stderr, so the extract payload must be the
        # only output unless logging was asked for.
        logging.basicConfig(handlers=[logging.NullHandler()])

    action = args.cls()
    try:
        asyncio.run(action.run(**vars(args)))
    except BundleException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("bundle-engine error: ", err, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
