"""Common utilities for commands that talk to the store."""

import contextlib
from argparse import ArgumentParser, ArgumentTypeError, BooleanOptionalAction
from collections.abc import AsyncGenerator, Callable
import logging
from typing import TypeVar

from kube_lifecycle.config import ClientConfig
from kube_lifecycle.connection import Connection, InMemoryConnection
from kube_lifecycle.exceptions import InputException
from kube_lifecycle.manifest import ConfigMap, Deployment, GroupVersionResource

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

# Short names accepted in place of group/version/resource
RESOURCE_ALIASES: dict[str, GroupVersionResource] = {
    alias: record_cls.gvr()
    for record_cls in (Deployment, ConfigMap)
    for alias in (record_cls.resource, record_cls.kind.lower())
}
RESOURCE_ALIASES["deploy"] = Deployment.gvr()
RESOURCE_ALIASES["cm"] = ConfigMap.gvr()


def add_connection_flags(args: ArgumentParser) -> None:
    """Add flags selecting the store and namespace."""
    args.add_argument(
        "--in-memory",
        default=False,
        action=BooleanOptionalAction,
        help="Use a store held in memory for the duration of the command",
    )
    args.add_argument(
        "--kubeconfig",
        default=None,
        help="Path to the kubeconfig file, defaults to the kubernetes library search",
    )
    args.add_argument(
        "--context",
        default=None,
        help="Name of the kubeconfig context to use",
    )
    args.add_argument(
        "--namespace",
        "-n",
        default="default",
        help="Namespace of the objects",
    )
    args.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Time budget in seconds for each step of the command, retries included",
    )


def add_resource_arg(args: ArgumentParser) -> None:
    """Add the positional resource selector."""
    args.add_argument(
        "resource",
        type=arg_type(parse_resource),
        help="Resource as group/version/resource, version/resource for the core group, or a short name e.g. deployments",
    )


def arg_type(parse: Callable[[str], _T]) -> Callable[[str], _T]:
    """Adapt a parser so argparse reports its errors as usage errors."""

    def wrapper(value: str) -> _T:
        try:
            return parse(value)
        except InputException as err:
            raise ArgumentTypeError(str(err)) from err

    wrapper.__name__ = parse.__name__
    return wrapper


def parse_resource(value: str) -> GroupVersionResource:
    """Parse a resource selector flag."""
    if (gvr := RESOURCE_ALIASES.get(value.lower())) is not None:
        return gvr
    return GroupVersionResource.parse(value)


def client_config(namespace: str, timeout: float | None) -> ClientConfig:
    """Build the client configuration from flags."""
    return ClientConfig(namespace=namespace, timeout=timeout)


@contextlib.asynccontextmanager
async def connect(
    in_memory: bool, kubeconfig: str | None, context: str | None
) -> AsyncGenerator[Connection, None]:
    """Open a connection to the store selected by flags."""
    connection: Connection
    if in_memory:
        _LOGGER.debug("Using in memory store")
        connection = InMemoryConnection()
    else:
        # Deferred so the in memory store works without cluster configuration
        from kube_lifecycle.connection.cluster import KubernetesConnection

        connection = KubernetesConnection.from_kubeconfig(kubeconfig, context)
    try:
        yield connection
    finally:
        await connection.close()
