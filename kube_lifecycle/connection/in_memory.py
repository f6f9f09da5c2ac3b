"""Module for an in memory store that behaves like the kubernetes API server.

The store assigns resourceVersion, uid and generation, rejects updates that
carry a stale resourceVersion, and emulates garbage collection of dependents
through `metadata.ownerReferences` according to the propagation policy.
"""

import asyncio
import copy
import datetime
import logging
from typing import Any
import uuid

from kube_lifecycle.exceptions import (
    AlreadyExistsError,
    ConflictError,
    InputException,
    NotFoundError,
)
from kube_lifecycle.manifest import GroupVersionResource, NamedResource
from kube_lifecycle.propagation import PropagationPolicy

from .connection import Connection

_LOGGER = logging.getLogger(__name__)

__all__ = ["InMemoryConnection"]

_Key = tuple[GroupVersionResource, str, str]


def _resource_id(gvr: GroupVersionResource, namespace: str, name: str) -> NamedResource:
    return NamedResource(gvr.resource, namespace, name)


def _now() -> str:
    return datetime.datetime.now(datetime.UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class InMemoryConnection(Connection):
    """In-memory implementation of the Connection interface.

    Objects are copied on the way in and out so callers only ever hold
    transient copies of the stored state.
    """

    def __init__(self) -> None:
        """Initialize the InMemoryConnection."""
        self._objects: dict[_Key, dict[str, Any]] = {}
        self._version = 0
        self._gc_tasks: set[asyncio.Task[None]] = set()
        self.requests: list[tuple[str, str]] = []
        """Log of (verb, resource id) for every request received."""

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def _record(self, verb: str, resource_id: Any) -> None:
        _LOGGER.debug("%s %s", verb, resource_id)
        self.requests.append((verb, str(resource_id)))

    @staticmethod
    def _check_body(
        gvr: GroupVersionResource, namespace: str, body: dict[str, Any]
    ) -> tuple[dict[str, Any], str]:
        """Validate the identity of a submitted object, returning a copy."""
        if not isinstance(body, dict):
            raise InputException(f"Object must be a mapping: {body}")
        obj = copy.deepcopy(body)
        if obj.get("apiVersion") != gvr.api_version:
            raise InputException(
                f"Object apiVersion '{obj.get('apiVersion')}' does not match {gvr}"
            )
        if not obj.get("kind"):
            raise InputException(f"Object missing kind: {body}")
        if not isinstance(metadata := obj.get("metadata"), dict) or not (
            name := metadata.get("name")
        ):
            raise InputException(f"Object missing metadata.name: {body}")
        if (ns := metadata.get("namespace")) and ns != namespace:
            raise InputException(
                f"Object namespace '{ns}' does not match the request namespace '{namespace}'"
            )
        metadata["namespace"] = namespace
        return obj, name

    def _dependents(self, uid: str) -> list[_Key]:
        return [
            key
            for key, obj in self._objects.items()
            if any(
                ref.get("uid") == uid
                for ref in obj["metadata"].get("ownerReferences") or ()
            )
        ]

    def _delete_dependents(self, uid: str, seen: set[str] | None = None) -> None:
        seen = seen if seen is not None else set()
        seen.add(uid)
        for key in self._dependents(uid):
            if (obj := self._objects.get(key)) is None:
                continue
            if (dep_uid := obj["metadata"]["uid"]) not in seen:
                self._delete_dependents(dep_uid, seen)
            if key not in self._objects:
                continue
            _LOGGER.debug("Deleting dependent %s", _resource_id(*key))
            del self._objects[key]

    def _orphan_dependents(self, uid: str) -> None:
        for key in self._dependents(uid):
            metadata = self._objects[key]["metadata"]
            refs = [
                ref for ref in metadata["ownerReferences"] if ref.get("uid") != uid
            ]
            if refs:
                metadata["ownerReferences"] = refs
            else:
                del metadata["ownerReferences"]
            metadata["resourceVersion"] = self._next_version()
            _LOGGER.debug("Orphaned dependent %s", _resource_id(*key))

    async def create(
        self, gvr: GroupVersionResource, namespace: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        """Create a new object, returning it as stored."""
        obj, name = self._check_body(gvr, namespace, body)
        resource_id = _resource_id(gvr, namespace, name)
        self._record("create", resource_id)
        metadata = obj["metadata"]
        if metadata.get("resourceVersion"):
            raise InputException(
                f"{resource_id}: resourceVersion should not be set on objects to be created"
            )
        key = (gvr, namespace, name)
        if key in self._objects:
            raise AlreadyExistsError(resource_id)
        metadata["uid"] = str(uuid.uuid4())
        metadata["generation"] = 1
        metadata["creationTimestamp"] = _now()
        metadata["resourceVersion"] = self._next_version()
        obj.setdefault("status", {})
        self._objects[key] = obj
        return copy.deepcopy(obj)

    async def get(
        self, gvr: GroupVersionResource, namespace: str, name: str
    ) -> dict[str, Any]:
        """Return the current state of an object."""
        resource_id = _resource_id(gvr, namespace, name)
        self._record("get", resource_id)
        if (obj := self._objects.get((gvr, namespace, name))) is None:
            raise NotFoundError(resource_id)
        return copy.deepcopy(obj)

    async def update(
        self, gvr: GroupVersionResource, namespace: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        """Replace an object if the submitted resourceVersion is current."""
        obj, name = self._check_body(gvr, namespace, body)
        resource_id = _resource_id(gvr, namespace, name)
        self._record("update", resource_id)
        key = (gvr, namespace, name)
        if (existing := self._objects.get(key)) is None:
            raise NotFoundError(resource_id)
        metadata = obj["metadata"]
        if not (submitted := metadata.get("resourceVersion")):
            raise InputException(
                f"{resource_id}: metadata.resourceVersion must be specified for an update"
            )
        current = existing["metadata"]["resourceVersion"]
        if submitted != current:
            raise ConflictError(resource_id, submitted, current)

        # Fields owned by the store are not changed by a client update
        for field in ("uid", "creationTimestamp", "deletionTimestamp"):
            if field in existing["metadata"]:
                metadata[field] = existing["metadata"][field]
            else:
                metadata.pop(field, None)
        generation = existing["metadata"].get("generation", 1)
        if obj.get("spec") != existing.get("spec"):
            generation += 1
        metadata["generation"] = generation
        obj["status"] = copy.deepcopy(existing.get("status", {}))
        metadata["resourceVersion"] = self._next_version()
        self._objects[key] = obj
        return copy.deepcopy(obj)

    async def list(
        self, gvr: GroupVersionResource, namespace: str | None
    ) -> list[dict[str, Any]]:
        """Return all objects in the namespace, or in all namespaces for None."""
        self._record("list", f"{gvr.resource}/{namespace or '*'}")
        return [
            copy.deepcopy(obj)
            for (obj_gvr, obj_ns, _), obj in sorted(
                self._objects.items(), key=lambda item: (item[0][1], item[0][2])
            )
            if obj_gvr == gvr and (namespace is None or obj_ns == namespace)
        ]

    async def delete(
        self,
        gvr: GroupVersionResource,
        namespace: str,
        name: str,
        propagation_policy: PropagationPolicy,
    ) -> None:
        """Delete an object, handling dependents per the propagation policy."""
        resource_id = _resource_id(gvr, namespace, name)
        self._record("delete", resource_id)
        key = (gvr, namespace, name)
        if (obj := self._objects.get(key)) is None:
            raise NotFoundError(resource_id)
        uid = obj["metadata"]["uid"]
        _LOGGER.debug("Deleting %s with propagation %s", resource_id, propagation_policy)
        if propagation_policy == PropagationPolicy.FOREGROUND:
            self._delete_dependents(uid)
            self._objects.pop(key, None)
        elif propagation_policy == PropagationPolicy.ORPHAN:
            self._orphan_dependents(uid)
            del self._objects[key]
        else:
            del self._objects[key]
            task = asyncio.create_task(
                self._collect_garbage(uid), name=f"gc-{resource_id}"
            )
            self._gc_tasks.add(task)
            task.add_done_callback(self._gc_done)

    async def _collect_garbage(self, uid: str) -> None:
        # Yield first so the delete call returns before dependents are removed
        await asyncio.sleep(0)
        self._delete_dependents(uid)

    def _gc_done(self, task: asyncio.Task[None]) -> None:
        try:
            task.result()
        except asyncio.CancelledError:
            pass
        except Exception as err:
            _LOGGER.error("Garbage collection failed: %s", err)
        finally:
            self._gc_tasks.discard(task)

    async def block_till_done(self) -> None:
        """Wait for pending background garbage collection to complete."""
        tasks = list(self._gc_tasks)
        if tasks:
            _LOGGER.debug("Waiting for %d garbage collection tasks", len(tasks))
            await asyncio.gather(*tasks)
        else:
            await asyncio.sleep(0)

    async def close(self) -> None:
        """Wait for background work before the connection goes away."""
        await self.block_till_done()
