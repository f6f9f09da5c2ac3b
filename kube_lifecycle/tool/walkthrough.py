"""Command line action that walks a deployment through its whole lifecycle.

The deployment is created, scaled and given a new image under conflict
retry, listed, and finally deleted with foreground propagation. Either the
typed or the dynamic client is used.
"""

import logging
from argparse import (
    ArgumentParser,
    BooleanOptionalAction,
    _SubParsersAction as SubParsersAction,
)
from typing import Any, cast

from kube_lifecycle.client import ResourceClient
from kube_lifecycle.config import ClientConfig
from kube_lifecycle.connection import Connection
from kube_lifecycle.document import DynamicResourceRecord
from kube_lifecycle.dynamic import DynamicClient
from kube_lifecycle.manifest import (
    Container,
    ContainerPort,
    Deployment,
    DeploymentSpec,
    LabelSelector,
    ObjectMeta,
    PodSpec,
    PodTemplateSpec,
    TemplateMetadata,
)
from kube_lifecycle.propagation import PropagationPolicy

from . import common
from .format import PrintFormatter

_LOGGER = logging.getLogger(__name__)

TYPED_NAME = "apiserver-deploy"
DYNAMIC_NAME = "dynamic-deploy"
COLUMNS = ["name", "replicas", "image"]


def typed_deployment(namespace: str) -> Deployment:
    """Return the deployment used by the typed walkthrough."""
    return Deployment(
        metadata=ObjectMeta(name=TYPED_NAME, namespace=namespace),
        spec=DeploymentSpec(
            replicas=3,
            selector=LabelSelector(match_labels={"app": "demo"}),
            template=PodTemplateSpec(
                metadata=TemplateMetadata(labels={"app": "demo"}),
                spec=PodSpec(
                    containers=[
                        Container(
                            name="api",
                            image="takia111/new-image",
                            ports=[
                                ContainerPort(
                                    name="http", protocol="TCP", container_port=8080
                                )
                            ],
                            args=["server", "-p", "8080"],
                        )
                    ]
                ),
            ),
        ),
    )


def dynamic_deployment(namespace: str) -> dict[str, Any]:
    """Return the document used by the dynamic walkthrough."""
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": DYNAMIC_NAME, "namespace": namespace},
        "spec": {
            "replicas": 4,
            "selector": {"matchLabels": {"app": "demo"}},
            "template": {
                "metadata": {"labels": {"app": "demo"}},
                "spec": {
                    "containers": [
                        {
                            "name": "api",
                            "image": "nginx:1.12",
                            "ports": [
                                {
                                    "name": "http",
                                    "protocol": "TCP",
                                    "containerPort": 80,
                                }
                            ],
                        }
                    ]
                },
            },
        },
    }


async def typed_walkthrough(connection: Connection, config: ClientConfig) -> None:
    """Run the lifecycle with the typed client."""
    client = ResourceClient(connection, Deployment, config=config)
    print(f"Creating deployment {client.namespace}/{TYPED_NAME}")
    created = await client.create(typed_deployment(client.namespace))
    print(
        f"Created deployment {created.name} with resourceVersion {created.resource_version}"
    )

    def update(deployment: Deployment) -> None:
        deployment.spec.replicas = 2
        deployment.containers[0].image = "takia111/new-image"

    print(f"Updating deployment {TYPED_NAME}")
    updated = await client.mutate(TYPED_NAME, update)
    print(
        f"Updated deployment {updated.name} with resourceVersion {updated.resource_version}"
    )

    print(f"Listing deployments in namespace {client.namespace}")
    PrintFormatter(COLUMNS).print(
        [
            {
                "name": deployment.name,
                "replicas": deployment.replicas,
                "image": deployment.containers[0].image if deployment.containers else "",
            }
            for deployment in await client.list()
        ]
    )

    policy = PropagationPolicy.FOREGROUND
    print(f"Deleting deployment {TYPED_NAME} with propagation {policy}")
    await client.delete(TYPED_NAME, policy)
    print(f"Deleted deployment {TYPED_NAME}")


async def dynamic_walkthrough(connection: Connection, config: ClientConfig) -> None:
    """Run the lifecycle with the dynamic client."""
    client = (
        DynamicClient(connection, config)
        .resource(Deployment.gvr())
        .namespace(config.namespace)
    )
    print(f"Creating deployment {client.namespace}/{DYNAMIC_NAME}")
    created = await client.create(
        DynamicResourceRecord(dynamic_deployment(client.namespace))
    )
    print(
        f"Created deployment {created.name} with resourceVersion {created.resource_version}"
    )

    def update(record: DynamicResourceRecord) -> None:
        record.set_path(["spec", "replicas"], 1)
        containers = record.get_sequence(["spec", "template", "spec", "containers"])
        containers[0]["image"] = "nginx:1.13"
        record.set_sequence(["spec", "template", "spec", "containers"], containers)

    print(f"Updating deployment {DYNAMIC_NAME}")
    updated = await client.mutate(DYNAMIC_NAME, update)
    print(
        f"Updated deployment {updated.name} with resourceVersion {updated.resource_version}"
    )

    print(f"Listing deployments in namespace {client.namespace}")
    rows = []
    for record in await client.list():
        containers = record.get_sequence(["spec", "template", "spec", "containers"])
        rows.append(
            {
                "name": record.name,
                "replicas": record.get_int(["spec", "replicas"]),
                "image": containers[0].get("image", "") if containers else "",
            }
        )
    PrintFormatter(COLUMNS).print(rows)

    policy = PropagationPolicy.FOREGROUND
    print(f"Deleting deployment {DYNAMIC_NAME} with propagation {policy}")
    await client.delete(DYNAMIC_NAME, policy)
    print(f"Deleted deployment {DYNAMIC_NAME}")


class WalkthroughAction:
    """Walk a deployment through create, update, list and delete."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "walkthrough",
                help="Create, update, list and delete an example deployment",
                description="Walk an example deployment through its whole lifecycle, printing each step.",
            ),
        )
        args.add_argument(
            "--dynamic",
            default=False,
            action=BooleanOptionalAction,
            help="Use the schema-less client instead of the typed client",
        )
        common.add_connection_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        dynamic: bool,
        in_memory: bool,
        kubeconfig: str | None,
        context: str | None,
        namespace: str,
        timeout: float | None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        config = common.client_config(namespace, timeout)
        async with common.connect(in_memory, kubeconfig, context) as connection:
            if dynamic:
                await dynamic_walkthrough(connection, config)
            else:
                await typed_walkthrough(connection, config)
