"""Connection to the store holding resource objects."""

from abc import ABC, abstractmethod
from typing import Any

from kube_lifecycle.manifest import GroupVersionResource
from kube_lifecycle.propagation import PropagationPolicy


class Connection(ABC):
    """Abstract handle able to issue requests against the store.

    Objects are exchanged as plain documents in the wire format. Every method
    raises the errors of `kube_lifecycle.exceptions`: NotFoundError,
    AlreadyExistsError, ConflictError, or TransportError for anything else.
    """

    @abstractmethod
    async def create(
        self, gvr: GroupVersionResource, namespace: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        """Create a new object, returning it as stored."""

    @abstractmethod
    async def get(
        self, gvr: GroupVersionResource, namespace: str, name: str
    ) -> dict[str, Any]:
        """Return the current state of an object."""

    @abstractmethod
    async def update(
        self, gvr: GroupVersionResource, namespace: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        """Replace an object.

        The body must carry the `metadata.resourceVersion` last observed by
        the caller; the store rejects the update if the object changed since.
        """

    @abstractmethod
    async def list(
        self, gvr: GroupVersionResource, namespace: str | None
    ) -> list[dict[str, Any]]:
        """Return all objects in the namespace, or in all namespaces for None."""

    @abstractmethod
    async def delete(
        self,
        gvr: GroupVersionResource,
        namespace: str,
        name: str,
        propagation_policy: PropagationPolicy,
    ) -> None:
        """Delete an object, passing the propagation policy to the store."""

    async def close(self) -> None:
        """Release any resources held by the connection."""
