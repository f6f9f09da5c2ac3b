"""Client for objects selected by group/version/resource without a schema.

Objects are returned as `DynamicResourceRecord` values whose fields are read
and written by path.

Example:

    deployments = DynamicClient(connection).resource(
        GroupVersionResource("apps", "v1", "deployments")
    ).namespace("default")

    def scale(record: DynamicResourceRecord) -> None:
        record.set_path(["spec", "replicas"], 1)

    await deployments.mutate("api", scale)
"""

from collections.abc import Callable
import logging
from typing import Any

from .client import BaseClient
from .config import ClientConfig
from .connection import Connection
from .context import trace_context
from .deadline import Deadline
from .document import DynamicResourceRecord
from .exceptions import InputException
from .manifest import GroupVersionResource
from .retry import ConflictRetryExecutor

__all__ = [
    "DynamicClient",
    "DynamicResourceInterface",
    "DynamicResourceClient",
]

_LOGGER = logging.getLogger(__name__)


class DynamicResourceClient(BaseClient):
    """Create, read, update, list and delete objects of a collection in a namespace."""

    def _body(self, record: DynamicResourceRecord) -> tuple[str, dict[str, Any]]:
        body = record.to_doc()
        if not isinstance(body.get("metadata"), dict):
            raise InputException(f"Object missing metadata: {body}")
        namespace = self._body_namespace(body["metadata"].get("namespace"))
        body["metadata"]["namespace"] = namespace
        body.setdefault("apiVersion", self._gvr.api_version)
        return namespace, body

    async def create(
        self, record: DynamicResourceRecord, deadline: Deadline | None = None
    ) -> DynamicResourceRecord:
        """Create the object, returning it with store assigned fields.

        Raises AlreadyExistsError if an object with the same name exists.
        """
        namespace, body = self._body(record)
        return DynamicResourceRecord(await self._create(namespace, body, deadline))

    async def get(
        self, name: str, deadline: Deadline | None = None
    ) -> DynamicResourceRecord:
        """Return the current object, raising NotFoundError if absent."""
        return DynamicResourceRecord(await self._get(name, deadline))

    async def update(
        self, record: DynamicResourceRecord, deadline: Deadline | None = None
    ) -> DynamicResourceRecord:
        """Replace the object, returning it with its new resourceVersion.

        Raises ConflictError if `metadata.resourceVersion` is not current.
        """
        namespace, body = self._body(record)
        return DynamicResourceRecord(await self._update(namespace, body, deadline))

    async def list(
        self, namespace: str | None = None, deadline: Deadline | None = None
    ) -> list[DynamicResourceRecord]:
        """Return the objects in the client's namespace or the given one.

        Pass `ALL_NAMESPACES` to list every namespace.
        """
        return [
            DynamicResourceRecord(doc) for doc in await self._list(namespace, deadline)
        ]

    async def mutate(
        self,
        name: str,
        fn: Callable[[DynamicResourceRecord], None],
        executor: ConflictRetryExecutor | None = None,
        deadline: Deadline | None = None,
    ) -> DynamicResourceRecord:
        """Fetch the object, apply `fn` to it and submit the update.

        The whole cycle is retried on conflict. Field access errors raised by
        `fn` are never retried.
        """
        deadline = self._deadline(deadline)

        async def attempt() -> DynamicResourceRecord:
            record = await self.get(name, deadline)
            fn(record)
            return await self.update(record, deadline)

        with trace_context(f"mutate {self._gvr.resource}"):
            return await self._executor(executor).run(attempt, deadline)


class DynamicResourceInterface:
    """A collection of objects, not yet bound to a namespace."""

    def __init__(
        self,
        connection: Connection,
        gvr: GroupVersionResource,
        config: ClientConfig,
    ) -> None:
        """Initialize DynamicResourceInterface."""
        self._connection = connection
        self._gvr = gvr
        self._config = config

    def namespace(self, namespace: str | None = None) -> DynamicResourceClient:
        """Return a client for the namespace, or the configured default."""
        return DynamicResourceClient(
            self._connection, self._gvr, namespace, self._config
        )


class DynamicClient:
    """Entry point for the schema-less surface."""

    def __init__(
        self, connection: Connection, config: ClientConfig | None = None
    ) -> None:
        """Initialize DynamicClient."""
        self._connection = connection
        self._config = config or ClientConfig()

    def resource(self, gvr: GroupVersionResource) -> DynamicResourceInterface:
        """Select a collection of objects."""
        return DynamicResourceInterface(self._connection, gvr, self._config)
