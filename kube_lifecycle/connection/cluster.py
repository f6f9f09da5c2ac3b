"""Connection to a kubernetes API server using the official client library.

The library is blocking, so every request runs in a worker thread. Errors
returned by the API server are mapped onto the exceptions of this library.
Loading credentials is left entirely to the kubernetes library.
"""

import asyncio
from collections.abc import Callable
import json
import logging
from typing import Any, TypeVar

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import DynamicApiError, ResourceNotFoundError
import urllib3

from kube_lifecycle.exceptions import (
    AlreadyExistsError,
    ConflictError,
    InputException,
    NotFoundError,
    TransportError,
)
from kube_lifecycle.manifest import GroupVersionResource, NamedResource
from kube_lifecycle.propagation import PropagationPolicy

from .connection import Connection

_LOGGER = logging.getLogger(__name__)

__all__ = ["KubernetesConnection"]

_T = TypeVar("_T")


def _reason(err: DynamicApiError) -> str | None:
    """Return the machine readable reason from the Status body of an error."""
    body = getattr(err, "body", None)
    if not body:
        return None
    try:
        status = json.loads(body)
    except (TypeError, ValueError):
        return None
    if not isinstance(status, dict):
        return None
    return status.get("reason")


def _map_error(err: DynamicApiError, resource_id: NamedResource) -> Exception:
    """Return the library exception for an API server error."""
    status = getattr(err, "status", None)
    if status == 404:
        return NotFoundError(resource_id)
    if status == 409:
        if _reason(err) == "AlreadyExists":
            return AlreadyExistsError(resource_id)
        return ConflictError(resource_id)
    if status in (400, 422):
        return InputException(f"{resource_id} rejected by the API server: {err}")
    return TransportError(f"Request for {resource_id} failed: {err}", status=status)


class KubernetesConnection(Connection):
    """Connection issuing requests through `kubernetes.dynamic.DynamicClient`."""

    def __init__(self, api_client: k8s_client.ApiClient) -> None:
        """Initialize KubernetesConnection with a configured api client."""
        self._api_client = api_client
        self._dynamic: DynamicClient | None = None

    @classmethod
    def from_kubeconfig(
        cls, config_file: str | None = None, context: str | None = None
    ) -> "KubernetesConnection":
        """Build a connection from a kubeconfig file, or the in-cluster config."""
        try:
            api_client = k8s_config.new_client_from_config(
                config_file=config_file, context=context
            )
        except k8s_config.ConfigException as err:
            _LOGGER.debug("Unable to load kubeconfig (%s), trying in-cluster", err)
            try:
                k8s_config.load_incluster_config()
            except k8s_config.ConfigException as in_cluster_err:
                raise TransportError(
                    f"Unable to load cluster configuration: {err}"
                ) from in_cluster_err
            api_client = k8s_client.ApiClient()
        return cls(api_client)

    async def _call(
        self, resource_id: NamedResource, fn: Callable[..., _T], *args: Any, **kwargs: Any
    ) -> _T:
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except DynamicApiError as err:
            raise _map_error(err, resource_id) from err
        except (urllib3.exceptions.HTTPError, OSError) as err:
            raise TransportError(f"Request for {resource_id} failed: {err}") from err

    def _resource(self, gvr: GroupVersionResource) -> Any:
        """Discover the API resource for a collection (blocking)."""
        if self._dynamic is None:
            self._dynamic = DynamicClient(self._api_client)
        try:
            if gvr.group:
                return self._dynamic.resources.get(
                    group=gvr.group, api_version=gvr.version, name=gvr.resource
                )
            return self._dynamic.resources.get(
                prefix="api", api_version=gvr.version, name=gvr.resource
            )
        except ResourceNotFoundError as err:
            raise InputException(f"Unknown resource {gvr}") from err

    async def _api_resource(self, gvr: GroupVersionResource) -> Any:
        return await self._call(
            NamedResource(gvr.resource, None, "*"), self._resource, gvr
        )

    async def create(
        self, gvr: GroupVersionResource, namespace: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        """Create a new object, returning it as stored."""
        resource = await self._api_resource(gvr)
        name = body.get("metadata", {}).get("name", "")
        result = await self._call(
            NamedResource(gvr.resource, namespace, name),
            resource.create,
            body=body,
            namespace=namespace,
        )
        return result.to_dict()

    async def get(
        self, gvr: GroupVersionResource, namespace: str, name: str
    ) -> dict[str, Any]:
        """Return the current state of an object."""
        resource = await self._api_resource(gvr)
        result = await self._call(
            NamedResource(gvr.resource, namespace, name),
            resource.get,
            name=name,
            namespace=namespace,
        )
        return result.to_dict()

    async def update(
        self, gvr: GroupVersionResource, namespace: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        """Replace an object, failing with a conflict on a stale version."""
        resource = await self._api_resource(gvr)
        name = body.get("metadata", {}).get("name", "")
        result = await self._call(
            NamedResource(gvr.resource, namespace, name),
            resource.replace,
            body=body,
            namespace=namespace,
        )
        return result.to_dict()

    async def list(
        self, gvr: GroupVersionResource, namespace: str | None
    ) -> list[dict[str, Any]]:
        """Return all objects in the namespace, or in all namespaces for None."""
        resource = await self._api_resource(gvr)
        result = await self._call(
            NamedResource(gvr.resource, namespace, "*"),
            resource.get,
            namespace=namespace,
        )
        items = result.to_dict().get("items") or []
        # Items of a list response do not repeat the type information
        kind = getattr(resource, "kind", None)
        for item in items:
            item.setdefault("apiVersion", gvr.api_version)
            if kind:
                item.setdefault("kind", kind)
        return items

    async def delete(
        self,
        gvr: GroupVersionResource,
        namespace: str,
        name: str,
        propagation_policy: PropagationPolicy,
    ) -> None:
        """Delete an object, passing the propagation policy to the API server."""
        resource = await self._api_resource(gvr)
        await self._call(
            NamedResource(gvr.resource, namespace, name),
            resource.delete,
            name=name,
            namespace=namespace,
            body=propagation_policy.delete_options(),
        )

    async def close(self) -> None:
        """Close the underlying api client."""
        await asyncio.to_thread(self._api_client.close)
