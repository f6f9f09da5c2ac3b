"""Command line actions operating on objects of any resource."""

import logging
from argparse import (
    ArgumentParser,
    BooleanOptionalAction,
    _SubParsersAction as SubParsersAction,
)
import pathlib
from typing import Any, cast

import aiofiles
import yaml

from kube_lifecycle.client import ALL_NAMESPACES
from kube_lifecycle.document import DynamicResourceRecord, parse_path
from kube_lifecycle.dynamic import DynamicClient
from kube_lifecycle.exceptions import InputException
from kube_lifecycle.manifest import GroupVersionResource, gvr_for_kind
from kube_lifecycle.propagation import PropagationPolicy

from . import common
from .format import PrintFormatter, struct_formatter

_LOGGER = logging.getLogger(__name__)


def _add_output_flag(args: ArgumentParser, choices: list[str], default: str) -> None:
    args.add_argument(
        "--output",
        "-o",
        choices=choices,
        default=default,
        help="Output format of the command",
    )


class GetAction:
    """Get a single object."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "get",
                help="Print a single object",
                description="Print the current state of a single object.",
            ),
        )
        common.add_resource_arg(args)
        args.add_argument("name", help="Name of the object")
        _add_output_flag(args, ["yaml", "json"], "yaml")
        common.add_connection_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        resource: GroupVersionResource,
        name: str,
        output: str,
        namespace: str,
        timeout: float | None,
        in_memory: bool,
        kubeconfig: str | None,
        context: str | None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        config = common.client_config(namespace, timeout)
        async with common.connect(in_memory, kubeconfig, context) as connection:
            client = DynamicClient(connection, config).resource(resource).namespace()
            record = await client.get(name)
        struct_formatter(output).print([record.to_doc()])


class ListAction:
    """List the objects of a resource."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "list",
                aliases=["ls"],
                help="List objects of a resource",
                description="Print the objects of a resource in a namespace.",
            ),
        )
        common.add_resource_arg(args)
        args.add_argument(
            "--all-namespaces",
            "-A",
            default=False,
            action=BooleanOptionalAction,
            help="List objects in every namespace",
        )
        _add_output_flag(args, ["table", "yaml", "json"], "table")
        common.add_connection_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        resource: GroupVersionResource,
        all_namespaces: bool,
        output: str,
        namespace: str,
        timeout: float | None,
        in_memory: bool,
        kubeconfig: str | None,
        context: str | None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        config = common.client_config(namespace, timeout)
        async with common.connect(in_memory, kubeconfig, context) as connection:
            client = DynamicClient(connection, config).resource(resource).namespace()
            records = await client.list(ALL_NAMESPACES if all_namespaces else None)

        if output != "table":
            struct_formatter(output).print([record.to_doc() for record in records])
            return
        if not records:
            print(f"No {resource.resource} found in namespace {namespace}")
            return
        cols = ["name", "resourceVersion"]
        if all_namespaces:
            cols.insert(0, "namespace")
        PrintFormatter(cols).print(
            [
                {
                    "namespace": record.namespace,
                    "name": record.name,
                    "resourceVersion": record.resource_version,
                }
                for record in records
            ]
        )


class SetAction:
    """Set a field of an object, retrying on conflict."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "set",
                help="Set a field of an object",
                description=(
                    "Set the field at a dotted path e.g. spec.replicas. The value "
                    "is parsed as a yaml scalar and every parent field must exist. "
                    "The update is retried when the object changed concurrently."
                ),
            ),
        )
        common.add_resource_arg(args)
        args.add_argument("name", help="Name of the object")
        args.add_argument(
            "path", type=common.arg_type(parse_path), help="Dotted path of the field"
        )
        args.add_argument("value", help="New value of the field")
        common.add_connection_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        resource: GroupVersionResource,
        name: str,
        path: tuple[str, ...],
        value: str,
        namespace: str,
        timeout: float | None,
        in_memory: bool,
        kubeconfig: str | None,
        context: str | None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        try:
            parsed = yaml.safe_load(value)
        except yaml.YAMLError as err:
            raise InputException(f"Invalid value '{value}': {err}") from err

        def update(record: DynamicResourceRecord) -> None:
            record.set_path(path, parsed)

        config = common.client_config(namespace, timeout)
        async with common.connect(in_memory, kubeconfig, context) as connection:
            client = DynamicClient(connection, config).resource(resource).namespace()
            record = await client.mutate(name, update)
        print(
            f"Updated {resource.resource} {record.name} with resourceVersion {record.resource_version}"
        )


class DeleteAction:
    """Delete an object."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "delete",
                help="Delete an object",
                description="Delete an object, selecting how its dependents are handled.",
            ),
        )
        common.add_resource_arg(args)
        args.add_argument("name", help="Name of the object")
        args.add_argument(
            "--cascade",
            type=common.arg_type(PropagationPolicy.parse),
            default=PropagationPolicy.BACKGROUND,
            help="Propagation policy: foreground, background or orphan",
        )
        common.add_connection_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        resource: GroupVersionResource,
        name: str,
        cascade: PropagationPolicy,
        namespace: str,
        timeout: float | None,
        in_memory: bool,
        kubeconfig: str | None,
        context: str | None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        config = common.client_config(namespace, timeout)
        async with common.connect(in_memory, kubeconfig, context) as connection:
            client = DynamicClient(connection, config).resource(resource).namespace()
            await client.delete(name, cascade)
        print(f"Deleted {resource.resource} {name} with propagation {cascade}")


async def read_documents(path: pathlib.Path) -> list[dict[str, Any]]:
    """Return the objects in a yaml file."""
    async with aiofiles.open(str(path)) as doc_file:
        content = await doc_file.read()
    try:
        docs = [doc for doc in yaml.safe_load_all(content) if doc is not None]
    except yaml.YAMLError as err:
        raise InputException(f"`{path}` failed to parse as yaml: {err}") from err
    for doc in docs:
        if not isinstance(doc, dict):
            raise InputException(f"`{path}` was not a dictionary: {doc}")
        if not doc.get("apiVersion") or not doc.get("kind"):
            raise InputException(f"`{path}` object missing apiVersion or kind: {doc}")
    return docs


class CreateAction:
    """Create objects from a file."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "create",
                help="Create objects from a yaml file",
                description="Create every object in a yaml file.",
            ),
        )
        args.add_argument(
            "--filename",
            "-f",
            type=pathlib.Path,
            required=True,
            help="Yaml file with one or more objects",
        )
        common.add_connection_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        filename: pathlib.Path,
        namespace: str,
        timeout: float | None,
        in_memory: bool,
        kubeconfig: str | None,
        context: str | None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        docs = await read_documents(filename)
        config = common.client_config(namespace, timeout)
        async with common.connect(in_memory, kubeconfig, context) as connection:
            dynamic = DynamicClient(connection, config)
            for doc in docs:
                gvr = gvr_for_kind(doc["apiVersion"], doc["kind"])
                client = dynamic.resource(gvr).namespace(
                    (doc.get("metadata") or {}).get("namespace") or namespace
                )
                record = await client.create(DynamicResourceRecord(doc))
                print(
                    f"Created {doc['kind']} {record.namespace}/{record.name} with resourceVersion {record.resource_version}"
                )
