"""Tests for the dynamic client."""

import pytest

from kube_lifecycle.client import ALL_NAMESPACES, ResourceClient
from kube_lifecycle.config import ClientConfig
from kube_lifecycle.connection import InMemoryConnection
from kube_lifecycle.document import DynamicResourceRecord, NodeKind
from kube_lifecycle.dynamic import DynamicClient, DynamicResourceClient
from kube_lifecycle.exceptions import (
    AlreadyExistsError,
    ConflictError,
    InputException,
    NotFoundError,
    PathNotFoundError,
    TypeMismatchError,
)
from kube_lifecycle.manifest import Deployment, GroupVersionResource
from kube_lifecycle.propagation import PropagationPolicy
from kube_lifecycle.retry import ConflictRetryExecutor

from .conftest import FakeSleep, RacingConnection, make_deployment_doc

DEPLOYMENTS = GroupVersionResource("apps", "v1", "deployments")
CONFIG_MAPS = GroupVersionResource("", "v1", "configmaps")
REPLICAS = ("spec", "replicas")
CONTAINERS = ("spec", "template", "spec", "containers")


@pytest.fixture(name="deployments")
def deployments_fixture(connection: InMemoryConnection) -> DynamicResourceClient:
    return DynamicClient(connection).resource(DEPLOYMENTS).namespace("default")


async def test_create_get(deployments: DynamicResourceClient) -> None:
    """A created object is returned by get with store assigned fields."""
    created = await deployments.create(DynamicResourceRecord(make_deployment_doc()))
    assert created.resource_version == "1"
    assert created.get_int(("metadata", "generation")) == 1
    assert created.get_str(("metadata", "uid"))
    assert created.get_int(REPLICAS) == 4

    fetched = await deployments.get("api")
    assert fetched == created


async def test_typed_and_dynamic_agree(
    connection: InMemoryConnection, deployments: DynamicResourceClient
) -> None:
    """Objects written by one surface are readable by the other."""
    await deployments.create(DynamicResourceRecord(make_deployment_doc()))
    deployment = Deployment.parse_doc((await deployments.get("api")).to_doc())
    assert deployment.replicas == 4
    assert deployment.containers[0].image == "nginx:1.12"


async def test_typed_mutate_keeps_unmodeled_fields(
    connection: InMemoryConnection, deployments: DynamicResourceClient
) -> None:
    """A typed update does not drop the fields its schema does not model."""
    doc = make_deployment_doc()
    doc["spec"]["strategy"] = {"type": "Recreate"}
    doc["spec"]["template"]["spec"]["containers"][0]["env"] = [
        {"name": "LOG_LEVEL", "value": "debug"}
    ]
    await deployments.create(DynamicResourceRecord(doc))

    def scale(deployment: Deployment) -> None:
        deployment.spec.replicas = 1

    await ResourceClient(connection, Deployment).mutate("api", scale)

    record = await deployments.get("api")
    assert record.get_int(REPLICAS) == 1
    assert record.get_mapping(("spec", "strategy")) == {"type": "Recreate"}
    assert record.get_sequence(CONTAINERS)[0]["env"] == [
        {"name": "LOG_LEVEL", "value": "debug"}
    ]


async def test_create_other_namespace(deployments: DynamicResourceClient) -> None:
    """Objects must be in the namespace the client is bound to."""
    with pytest.raises(InputException, match="does not match the client namespace"):
        await deployments.create(
            DynamicResourceRecord(make_deployment_doc(namespace="other"))
        )


async def test_create_defaults(connection: InMemoryConnection) -> None:
    """The namespace and apiVersion are filled in from the client."""
    config_maps = DynamicClient(connection, ClientConfig(namespace="demo")).resource(
        CONFIG_MAPS
    ).namespace()
    assert config_maps.namespace == "demo"
    created = await config_maps.create(
        DynamicResourceRecord(
            {"kind": "ConfigMap", "metadata": {"name": "settings"}, "data": {}}
        )
    )
    assert created.namespace == "demo"
    assert created.api_version == "v1"


async def test_create_invalid(deployments: DynamicResourceClient) -> None:
    """Objects must carry metadata."""
    with pytest.raises(InputException, match="missing metadata"):
        await deployments.create(
            DynamicResourceRecord({"apiVersion": "apps/v1", "kind": "Deployment"})
        )
    doc = make_deployment_doc()
    doc["apiVersion"] = "v1"
    with pytest.raises(InputException, match="does not match"):
        await deployments.create(DynamicResourceRecord(doc))


async def test_create_already_exists(deployments: DynamicResourceClient) -> None:
    """Names are unique within a namespace."""
    await deployments.create(DynamicResourceRecord(make_deployment_doc()))
    with pytest.raises(AlreadyExistsError):
        await deployments.create(DynamicResourceRecord(make_deployment_doc()))


async def test_get_not_found(deployments: DynamicResourceClient) -> None:
    """Reading an absent object fails."""
    with pytest.raises(NotFoundError):
        await deployments.get("missing")


async def test_update_conflict(deployments: DynamicResourceClient) -> None:
    """A stale resourceVersion is rejected."""
    await deployments.create(DynamicResourceRecord(make_deployment_doc()))
    first = await deployments.get("api")
    second = await deployments.get("api")
    first.set_path(REPLICAS, 2)
    await deployments.update(first)
    second.set_path(REPLICAS, 3)
    with pytest.raises(ConflictError):
        await deployments.update(second)


async def test_update_requires_version(deployments: DynamicResourceClient) -> None:
    """An update without a resourceVersion is rejected."""
    await deployments.create(DynamicResourceRecord(make_deployment_doc()))
    with pytest.raises(InputException, match="resourceVersion must be specified"):
        await deployments.update(DynamicResourceRecord(make_deployment_doc()))


async def test_mutate(deployments: DynamicResourceClient) -> None:
    """Scale down and update the image by path."""
    created = await deployments.create(DynamicResourceRecord(make_deployment_doc()))

    def update(record: DynamicResourceRecord) -> None:
        record.set_path(REPLICAS, 1)
        containers = record.get_sequence(CONTAINERS)
        containers[0]["image"] = "nginx:1.13"
        record.set_sequence(CONTAINERS, containers)

    updated = await deployments.mutate("api", update)
    assert updated.get_int(REPLICAS) == 1
    assert int(updated.resource_version or "0") > int(created.resource_version or "0")

    current = await deployments.get("api")
    assert current.get_int(REPLICAS) == 1
    assert current.get_sequence(CONTAINERS)[0]["image"] == "nginx:1.13"
    assert current.get_path(CONTAINERS, NodeKind.SEQUENCE)[0]["ports"] == [
        {"name": "http", "protocol": "TCP", "containerPort": 80}
    ]


async def test_mutate_concurrent_writer(
    executor: ConflictRetryExecutor, fake_sleep: FakeSleep
) -> None:
    """A competing write is retried and preserved."""
    connection = RacingConnection(races=1)
    deployments = DynamicClient(connection).resource(DEPLOYMENTS).namespace()
    await deployments.create(DynamicResourceRecord(make_deployment_doc()))

    updated = await deployments.mutate(
        "api", lambda record: record.set_path(REPLICAS, 1), executor=executor
    )
    assert updated.get_int(REPLICAS) == 1
    assert updated.get_mapping(("metadata", "annotations")) == {"racer-0": "true"}
    assert len(fake_sleep.delays) == 1


@pytest.mark.parametrize(
    ("path", "error"),
    [
        (("spec", "strategy", "type"), PathNotFoundError),
        (("spec", "replicas", "value"), TypeMismatchError),
    ],
)
async def test_mutate_field_error_not_retried(
    deployments: DynamicResourceClient,
    connection: InMemoryConnection,
    path: tuple[str, ...],
    error: type[Exception],
) -> None:
    """Field errors fail the mutation on the first attempt."""
    await deployments.create(DynamicResourceRecord(make_deployment_doc()))
    connection.requests.clear()

    with pytest.raises(error):
        await deployments.mutate("api", lambda record: record.set_path(path, "x"))
    assert [verb for verb, _ in connection.requests] == ["get"]
    assert (await deployments.get("api")).get_int(REPLICAS) == 4


async def test_list(connection: InMemoryConnection) -> None:
    """Lists are scoped to a namespace unless all namespaces are requested."""
    resource = DynamicClient(connection).resource(DEPLOYMENTS)
    for namespace, name in (("default", "b"), ("default", "a"), ("demo", "c")):
        await resource.namespace(namespace).create(
            DynamicResourceRecord(make_deployment_doc(name, namespace))
        )
    deployments = resource.namespace()
    assert [r.name for r in await deployments.list()] == ["a", "b"]
    assert [r.name for r in await deployments.list("demo")] == ["c"]
    assert [
        (r.namespace, r.name) for r in await deployments.list(ALL_NAMESPACES)
    ] == [("default", "a"), ("default", "b"), ("demo", "c")]


async def test_delete(
    deployments: DynamicResourceClient, connection: InMemoryConnection
) -> None:
    """Foreground delete removes the object and its dependents."""
    owner = await deployments.create(DynamicResourceRecord(make_deployment_doc()))
    config_maps = DynamicClient(connection).resource(CONFIG_MAPS).namespace()
    await config_maps.create(
        DynamicResourceRecord(
            {
                "apiVersion": "v1",
                "kind": "ConfigMap",
                "metadata": {
                    "name": "settings",
                    "ownerReferences": [
                        {
                            "apiVersion": "apps/v1",
                            "kind": "Deployment",
                            "name": owner.name,
                            "uid": owner.get_str(("metadata", "uid")),
                        }
                    ],
                },
            }
        )
    )

    await deployments.delete("api", PropagationPolicy.FOREGROUND)
    with pytest.raises(NotFoundError):
        await deployments.get("api")
    with pytest.raises(NotFoundError):
        await config_maps.get("settings")
    with pytest.raises(NotFoundError):
        await deployments.delete("api")
