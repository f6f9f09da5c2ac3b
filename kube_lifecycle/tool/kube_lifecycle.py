"""Command line tool for managing the lifecycle of kubernetes objects."""

import argparse
import asyncio
import logging
import sys
import traceback
from typing import Any

import yaml

from kube_lifecycle.context import collect_timings
from kube_lifecycle.exceptions import KubeLifecycleException
from . import resource, walkthrough

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Command line utility for creating, updating, listing and deleting kubernetes objects.",
    )
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    )
    parser.add_argument(
        "--timings",
        default=False,
        action=argparse.BooleanOptionalAction,
        help="Print the time spent in each request to stderr when done",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    walkthrough.WalkthroughAction.register(subparsers)
    resource.CreateAction.register(subparsers)
    resource.GetAction.register(subparsers)
    resource.ListAction.register(subparsers)
    resource.SetAction.register(subparsers)
    resource.DeleteAction.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> None:
    """kube-lifecycle command line tool main entry point."""

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
        logging.basicConfig(level=args.log_level)

    action = args.cls()
    with collect_timings() as timings:
        try:
            asyncio.run(action.run(**vars(args)))
        except KubeLifecycleException as err:
            if args.log_level == "DEBUG":
                traceback.print_exc(file=sys.stderr)
            print("kube-lifecycle error: ", err, file=sys.stderr)
            sys.exit(1)
        finally:
            if args.timings:
                for line in timings.summary():
                    print(f" - {line}", file=sys.stderr)


if __name__ == "__main__":
    main()
