"""Client for resource records bound to a fixed schema.

Example:

    client = ResourceClient(connection, Deployment)
    deployment = await client.create(deployment)

    def scale(deployment: Deployment) -> None:
        deployment.spec.replicas = 1

    deployment = await client.mutate("api", scale)
"""

from collections.abc import Awaitable, Callable
import logging
from typing import Any, Generic, TypeVar

from .config import ClientConfig
from .connection import Connection
from .context import trace_context
from .deadline import Deadline
from .exceptions import InputException
from .manifest import GroupVersionResource, ResourceRecord
from .propagation import PropagationPolicy
from .retry import ConflictRetryExecutor

__all__ = [
    "ALL_NAMESPACES",
    "ResourceClient",
]

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T", bound=ResourceRecord)
_R = TypeVar("_R")

ALL_NAMESPACES = ""
"""Namespace filter that lists objects in every namespace."""


class BaseClient:
    """Verb plumbing shared by the typed and dynamic clients."""

    def __init__(
        self,
        connection: Connection,
        gvr: GroupVersionResource,
        namespace: str | None = None,
        config: ClientConfig | None = None,
    ) -> None:
        """Initialize BaseClient."""
        self._connection = connection
        self._gvr = gvr
        self._config = config or ClientConfig()
        self._namespace = namespace or self._config.namespace

    @property
    def gvr(self) -> GroupVersionResource:
        return self._gvr

    @property
    def namespace(self) -> str:
        """Namespace the client operates in."""
        return self._namespace

    def _deadline(self, deadline: Deadline | None) -> Deadline | None:
        if deadline is None and self._config.timeout is not None:
            return Deadline(self._config.timeout)
        return deadline

    async def _invoke(
        self,
        operation: str,
        call: Callable[[], Awaitable[_R]],
        deadline: Deadline | None,
    ) -> _R:
        """Issue a single remote call honoring the deadline."""
        with trace_context(f"{operation} {self._gvr}"):
            if deadline is None:
                return await call()
            return await deadline.run(operation, call)

    def _executor(
        self, executor: ConflictRetryExecutor | None
    ) -> ConflictRetryExecutor:
        return executor or ConflictRetryExecutor(self._config.backoff)

    def _list_namespace(self, namespace: str | None) -> str | None:
        if namespace is None:
            return self._namespace
        if namespace == ALL_NAMESPACES:
            return None
        return namespace

    def _policy(self, policy: PropagationPolicy | None) -> PropagationPolicy:
        return policy or self._config.propagation_policy

    def _body_namespace(self, namespace: str | None) -> str:
        """Return the namespace of a submitted object, which must be the client's."""
        if namespace and namespace != self._namespace:
            raise InputException(
                f"Object namespace '{namespace}' does not match the client namespace "
                f"'{self._namespace}'"
            )
        return self._namespace

    async def _create(
        self, namespace: str, body: dict[str, Any], deadline: Deadline | None
    ) -> dict[str, Any]:
        return await self._invoke(
            "create",
            lambda: self._connection.create(self._gvr, namespace, body),
            self._deadline(deadline),
        )

    async def _get(
        self, name: str, deadline: Deadline | None
    ) -> dict[str, Any]:
        return await self._invoke(
            "get",
            lambda: self._connection.get(self._gvr, self._namespace, name),
            self._deadline(deadline),
        )

    async def _update(
        self, namespace: str, body: dict[str, Any], deadline: Deadline | None
    ) -> dict[str, Any]:
        return await self._invoke(
            "update",
            lambda: self._connection.update(self._gvr, namespace, body),
            self._deadline(deadline),
        )

    async def _list(
        self, namespace: str | None, deadline: Deadline | None
    ) -> list[dict[str, Any]]:
        scope = self._list_namespace(namespace)
        return await self._invoke(
            "list",
            lambda: self._connection.list(self._gvr, scope),
            self._deadline(deadline),
        )

    async def delete(
        self,
        name: str,
        propagation_policy: PropagationPolicy | None = None,
        deadline: Deadline | None = None,
    ) -> None:
        """Delete an object, forwarding the propagation policy to the store.

        Raises NotFoundError if the object does not exist.
        """
        policy = self._policy(propagation_policy)
        _LOGGER.debug("Deleting %s %s/%s (%s)", self._gvr, self._namespace, name, policy)
        await self._invoke(
            "delete",
            lambda: self._connection.delete(self._gvr, self._namespace, name, policy),
            self._deadline(deadline),
        )


class ResourceClient(BaseClient, Generic[T]):
    """Create, read, update, list and delete records of a single kind."""

    def __init__(
        self,
        connection: Connection,
        record_cls: type[T],
        namespace: str | None = None,
        config: ClientConfig | None = None,
    ) -> None:
        """Initialize ResourceClient for the record type."""
        super().__init__(connection, record_cls.gvr(), namespace, config)
        self._record_cls = record_cls

    def _body(self, record: T) -> tuple[str, dict[str, Any]]:
        namespace = self._body_namespace(record.metadata.namespace)
        body = record.to_doc()
        body["metadata"]["namespace"] = namespace
        return namespace, body

    async def create(self, record: T, deadline: Deadline | None = None) -> T:
        """Create the record, returning it with store assigned fields.

        Raises AlreadyExistsError if an object with the same name exists.
        """
        namespace, body = self._body(record)
        result = await self._create(namespace, body, deadline)
        return self._record_cls.parse_doc(result)

    async def get(self, name: str, deadline: Deadline | None = None) -> T:
        """Return the current record, raising NotFoundError if absent."""
        return self._record_cls.parse_doc(await self._get(name, deadline))

    async def update(self, record: T, deadline: Deadline | None = None) -> T:
        """Replace the record, returning it with its new resourceVersion.

        Raises ConflictError if the record's resourceVersion is not current.
        """
        namespace, body = self._body(record)
        result = await self._update(namespace, body, deadline)
        return self._record_cls.parse_doc(result)

    async def list(
        self, namespace: str | None = None, deadline: Deadline | None = None
    ) -> list[T]:
        """Return the records in the client's namespace or the given one.

        Pass `ALL_NAMESPACES` to list every namespace.
        """
        return [
            self._record_cls.parse_doc(doc)
            for doc in await self._list(namespace, deadline)
        ]

    async def mutate(
        self,
        name: str,
        fn: Callable[[T], None],
        executor: ConflictRetryExecutor | None = None,
        deadline: Deadline | None = None,
    ) -> T:
        """Fetch the record, apply `fn` to it and submit the update.

        The whole cycle is retried on conflict so that `fn` always sees the
        latest version. `fn` may be called several times.
        """
        deadline = self._deadline(deadline)

        async def attempt() -> T:
            record = await self.get(name, deadline)
            fn(record)
            return await self.update(record, deadline)

        with trace_context(f"mutate {self._gvr.resource}"):
            return await self._executor(executor).run(attempt, deadline)
