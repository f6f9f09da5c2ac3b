"""Shared fixtures for kube-lifecycle tests."""

from typing import Any

import pytest

from kube_lifecycle.connection import InMemoryConnection
from kube_lifecycle.manifest import (
    Container,
    ContainerPort,
    Deployment,
    DeploymentSpec,
    GroupVersionResource,
    LabelSelector,
    ObjectMeta,
    PodSpec,
    PodTemplateSpec,
    TemplateMetadata,
)
from kube_lifecycle.retry import ConflictRetryExecutor, DEFAULT_RETRY


class RacingConnection(InMemoryConnection):
    """Store where another writer changes an object right before an update.

    The competing write adds an annotation, so a lost update is detectable.
    """

    def __init__(self, races: int) -> None:
        """Initialize RacingConnection with the number of updates to race."""
        super().__init__()
        self.races = races

    async def update(
        self, gvr: GroupVersionResource, namespace: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        if self.races > 0:
            self.races -= 1
            current = await self.get(gvr, namespace, body["metadata"]["name"])
            annotations = current["metadata"].setdefault("annotations", {})
            annotations[f"racer-{self.races}"] = "true"
            await super().update(gvr, namespace, current)
        return await super().update(gvr, namespace, body)


class FakeSleep:
    """Records requested pauses instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def connection() -> InMemoryConnection:
    return InMemoryConnection()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def executor(fake_sleep: FakeSleep) -> ConflictRetryExecutor:
    """Executor with the default schedule that never really sleeps."""
    return ConflictRetryExecutor(DEFAULT_RETRY, sleep=fake_sleep, rand=lambda: 0.0)


def make_deployment(
    name: str = "api",
    namespace: str | None = "default",
    replicas: int = 4,
    image: str = "nginx:1.12",
) -> Deployment:
    """Return a deployment with a single container."""
    return Deployment(
        metadata=ObjectMeta(name=name, namespace=namespace),
        spec=DeploymentSpec(
            replicas=replicas,
            selector=LabelSelector(match_labels={"app": name}),
            template=PodTemplateSpec(
                metadata=TemplateMetadata(labels={"app": name}),
                spec=PodSpec(
                    containers=[
                        Container(
                            name="api",
                            image=image,
                            ports=[
                                ContainerPort(
                                    name="http", protocol="TCP", container_port=80
                                )
                            ],
                        )
                    ]
                ),
            ),
        ),
    )


def make_deployment_doc(
    name: str = "api", namespace: str = "default", replicas: int = 4
) -> dict[str, Any]:
    """Return the wire document of a deployment."""
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "replicas": replicas,
            "selector": {"matchLabels": {"app": name}},
            "template": {
                "metadata": {"labels": {"app": name}},
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
