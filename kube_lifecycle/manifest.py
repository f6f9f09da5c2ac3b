"""Typed representation of the resource records held by the store.

Records are dataclasses bound to a fixed schema. Only the subset of the
kubernetes wire format needed by this library is modeled. Unknown fields in
a parsed document are kept aside and written back when the record is
serialized, so a round trip through a record never drops them.
"""

import copy
from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, TypeVar

import yaml
from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig

from .exceptions import InputException

__all__ = [
    "NamedResource",
    "GroupVersionResource",
    "ObjectMeta",
    "OwnerReference",
    "ResourceRecord",
    "Deployment",
    "DeploymentSpec",
    "DeploymentStatus",
    "LabelSelector",
    "PodTemplateSpec",
    "TemplateMetadata",
    "PodSpec",
    "Container",
    "ContainerPort",
    "ConfigMap",
    "gvr_for_kind",
]

DEPLOYMENT_KIND = "Deployment"
CONFIG_MAP_KIND = "ConfigMap"

# Plural resource names for kinds that do not follow the simple rule of
# lowercasing and appending an "s".
_IRREGULAR_PLURALS = {
    "Endpoints": "endpoints",
    "Ingress": "ingresses",
    "NetworkPolicy": "networkpolicies",
    "PodSecurityPolicy": "podsecuritypolicies",
    "StorageClass": "storageclasses",
    "PriorityClass": "priorityclasses",
    "IngressClass": "ingressclasses",
}

_T = TypeVar("_T", bound="ResourceRecord")


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a kubernetes resource."""

    kind: str
    namespace: str | None
    name: str

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


@dataclass(frozen=True, order=True)
class GroupVersionResource:
    """Selects a resource collection without a compiled type."""

    group: str
    version: str
    resource: str

    @property
    def api_version(self) -> str:
        """The apiVersion of objects in this collection e.g. `apps/v1`."""
        if self.group:
            return f"{self.group}/{self.version}"
        return self.version

    @classmethod
    def parse(cls, value: str) -> "GroupVersionResource":
        """Parse `group/version/resource`, or `version/resource` for the core group."""
        parts = value.strip("/").split("/")
        if len(parts) == 3 and all(parts):
            return cls(group=parts[0], version=parts[1], resource=parts[2])
        if len(parts) == 2 and all(parts):
            return cls(group="", version=parts[0], resource=parts[1])
        raise InputException(
            f"Invalid resource '{value}', expected group/version/resource"
        )

    def __str__(self) -> str:
        return f"{self.api_version}/{self.resource}"


def gvr_for_kind(api_version: str, kind: str) -> GroupVersionResource:
    """Return the resource collection that stores objects of the given kind."""
    group, _, version = api_version.rpartition("/")
    resource = _IRREGULAR_PLURALS.get(kind)
    if resource is None:
        lower = kind.lower()
        if lower.endswith("y") and not lower.endswith(("ay", "ey", "oy")):
            resource = f"{lower[:-1]}ies"
        elif lower.endswith(("s", "x", "ch", "sh")):
            resource = f"{lower}es"
        else:
            resource = f"{lower}s"
    return GroupVersionResource(group=group, version=version, resource=resource)


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all typed objects."""

    def overlay(self, doc: dict[str, Any] | None) -> dict[str, Any]:
        """Return a copy of `doc` with the modeled fields replaced by this object.

        Fields the schema does not model are carried over from `doc`. A
        modeled field that is unset is removed.
        """
        result = copy.deepcopy(doc) if isinstance(doc, dict) else {}
        serialized = self.to_dict()
        for item in fields(self):
            key = item.metadata.get("alias") or item.name
            if key not in serialized:
                result.pop(key, None)
                continue
            result[key] = _overlay_value(
                result.get(key), getattr(self, item.name), serialized[key]
            )
        return result

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


def _overlay_value(current: Any, value: Any, serialized: Any) -> Any:
    if isinstance(value, BaseManifest):
        return value.overlay(current)
    if isinstance(value, list) and value and isinstance(value[0], BaseManifest):
        existing = current if isinstance(current, list) else []
        return [
            item.overlay(_matching_item(existing, index, serialized[index]))
            for index, item in enumerate(value)
        ]
    return serialized


def _matching_item(
    existing: list[Any], index: int, serialized: dict[str, Any]
) -> dict[str, Any] | None:
    """Find the fetched list entry an object was parsed from, by name or position."""
    if (name := serialized.get("name")) is not None:
        for item in existing:
            if isinstance(item, dict) and item.get("name") == name:
                return item
        return None
    if index < len(existing) and isinstance(existing[index], dict):
        return existing[index]
    return None


@dataclass
class OwnerReference(BaseManifest):
    """Links a dependent object to the object that owns it."""

    api_version: str = field(metadata=field_options(alias="apiVersion"))
    kind: str
    name: str
    uid: str
    controller: bool | None = None
    block_owner_deletion: bool | None = field(
        metadata=field_options(alias="blockOwnerDeletion"), default=None
    )


@dataclass
class ObjectMeta(BaseManifest):
    """Metadata common to all stored objects."""

    name: str
    """The name of the object, unique within a namespace."""

    namespace: str | None = None
    """The namespace of the object."""

    resource_version: str | None = field(
        metadata=field_options(alias="resourceVersion"), default=None
    )
    """Opaque version assigned by the store, changed on every write."""

    uid: str | None = None
    """Unique id assigned by the store on create."""

    generation: int | None = None
    """Sequence number of the desired state, bumped when the spec changes."""

    creation_timestamp: str | None = field(
        metadata=field_options(alias="creationTimestamp"), default=None
    )

    deletion_timestamp: str | None = field(
        metadata=field_options(alias="deletionTimestamp"), default=None
    )

    labels: dict[str, str] | None = None

    annotations: dict[str, str] | None = None

    owner_references: list[OwnerReference] | None = field(
        metadata=field_options(alias="ownerReferences"), default=None
    )

    finalizers: list[str] | None = None


@dataclass
class ResourceRecord(BaseManifest):
    """A stored entity bound to a fixed schema.

    Subclasses declare the `kind`, `api_version` and plural `resource` they
    are stored under.
    """

    kind: ClassVar[str]
    api_version: ClassVar[str]
    resource: ClassVar[str]

    metadata: ObjectMeta

    # Document the record was parsed from, kept so that fields the schema does
    # not model survive an update.
    _source = None

    @classmethod
    def gvr(cls) -> GroupVersionResource:
        """The resource collection this record is stored in."""
        group, _, version = cls.api_version.rpartition("/")
        return GroupVersionResource(group=group, version=version, resource=cls.resource)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str | None:
        return self.metadata.namespace

    @property
    def resource_version(self) -> str | None:
        return self.metadata.resource_version

    @property
    def resource_id(self) -> NamedResource:
        """Identity of the record within the store."""
        return NamedResource(self.kind, self.metadata.namespace, self.metadata.name)

    def owner_reference(self, controller: bool = True) -> OwnerReference:
        """Return a reference that marks another object as owned by this one."""
        if not self.metadata.uid:
            raise InputException(f"{self.resource_id} has no uid, create it first")
        return OwnerReference(
            api_version=self.api_version,
            kind=self.kind,
            name=self.metadata.name,
            uid=self.metadata.uid,
            controller=controller,
            block_owner_deletion=True,
        )

    def to_doc(self) -> dict[str, Any]:
        """Return the wire representation of the record."""
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            **self.overlay(self._source),
        }

    @classmethod
    def parse_doc(cls: type[_T], doc: dict[str, Any]) -> _T:
        """Parse a record from its wire representation."""
        if doc.get("apiVersion") != cls.api_version:
            raise InputException(
                f"Invalid {cls.kind} expected apiVersion '{cls.api_version}': {doc}"
            )
        if doc.get("kind") != cls.kind:
            raise InputException(f"Invalid object expected kind '{cls.kind}': {doc}")
        if not (metadata := doc.get("metadata")) or not metadata.get("name"):
            raise InputException(f"Invalid {cls.kind} missing metadata.name: {doc}")
        try:
            record = cls.from_dict(doc)
        except (LookupError, ValueError, TypeError) as err:
            raise InputException(f"Invalid {cls.kind} document: {err}") from err
        object.__setattr__(record, "_source", copy.deepcopy(doc))
        return record

    @classmethod
    def parse_yaml(cls: type[_T], content: str) -> _T:
        """Parse a record from a YAML document."""
        return cls.parse_doc(yaml.safe_load(content))

    def yaml(self) -> str:
        """Return a YAML string of the wire representation."""
        return yaml.dump(self.to_doc(), sort_keys=False)


@dataclass
class LabelSelector(BaseManifest):
    """Selects objects by label."""

    match_labels: dict[str, str] | None = field(
        metadata=field_options(alias="matchLabels"), default=None
    )


@dataclass
class ContainerPort(BaseManifest):
    """A network port exposed by a container."""

    container_port: int = field(metadata=field_options(alias="containerPort"))
    name: str | None = None
    protocol: str | None = None


@dataclass
class Container(BaseManifest):
    """A single container in a pod template."""

    name: str
    image: str | None = None
    ports: list[ContainerPort] | None = None
    args: list[str] | None = None


@dataclass
class PodSpec(BaseManifest):
    """The desired contents of a pod."""

    containers: list[Container] = field(default_factory=list)


@dataclass
class TemplateMetadata(BaseManifest):
    """Metadata stamped onto objects created from a template."""

    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None


@dataclass
class PodTemplateSpec(BaseManifest):
    """Template used to create pods."""

    metadata: TemplateMetadata | None = None
    spec: PodSpec = field(default_factory=PodSpec)


@dataclass
class DeploymentSpec(BaseManifest):
    """Desired state of a Deployment."""

    replicas: int | None = None
    """Number of desired pods."""

    selector: LabelSelector | None = None
    """Label query over pods managed by the Deployment."""

    template: PodTemplateSpec = field(default_factory=PodTemplateSpec)
    """Template for the pods that will be created."""


@dataclass
class DeploymentStatus(BaseManifest):
    """Most recently observed state of a Deployment."""

    observed_generation: int | None = field(
        metadata=field_options(alias="observedGeneration"), default=None
    )
    replicas: int | None = None
    ready_replicas: int | None = field(
        metadata=field_options(alias="readyReplicas"), default=None
    )
    available_replicas: int | None = field(
        metadata=field_options(alias="availableReplicas"), default=None
    )
    updated_replicas: int | None = field(
        metadata=field_options(alias="updatedReplicas"), default=None
    )


@dataclass
class Deployment(ResourceRecord):
    """A representation of an apps/v1 Deployment."""

    kind: ClassVar[str] = DEPLOYMENT_KIND
    api_version: ClassVar[str] = "apps/v1"
    resource: ClassVar[str] = "deployments"

    spec: DeploymentSpec = field(default_factory=DeploymentSpec)
    status: DeploymentStatus | None = None

    @property
    def replicas(self) -> int | None:
        """Desired number of pods."""
        return self.spec.replicas

    @property
    def containers(self) -> list[Container]:
        """Containers in the pod template."""
        return self.spec.template.spec.containers


@dataclass
class ConfigMap(ResourceRecord):
    """A representation of a v1 ConfigMap."""

    kind: ClassVar[str] = CONFIG_MAP_KIND
    api_version: ClassVar[str] = "v1"
    resource: ClassVar[str] = "configmaps"

    data: dict[str, str] | None = None
