from collections.abc import Callable
from typing import Any
from uuid import uuid4

import pytest

from platform_secrets_webhook.admission_controller.evaluator import AdmissionEvaluator
from platform_secrets_webhook.admission_controller.schema import AdmissionRequest
from platform_secrets_webhook.config import AdmissionControllerConfig


PodFactory = Callable[..., dict[str, Any]]
RequestFactory = Callable[..., AdmissionRequest]

POD_RESOURCE_PRIMITIVE = {"group": "", "version": "v1", "resource": "pods"}


@pytest.fixture
def sidecar_image() -> str:
    return "registry.example/secrets-sidecar:latest"


@pytest.fixture
def init_container_image() -> str:
    return "registry.example/secrets-init:latest"


@pytest.fixture
def config(sidecar_image: str, init_container_image: str) -> AdmissionControllerConfig:
    return AdmissionControllerConfig(
        sidecar_image=sidecar_image,
        init_container_image=init_container_image,
    )


@pytest.fixture
def evaluator(config: AdmissionControllerConfig) -> AdmissionEvaluator:
    return AdmissionEvaluator(config)


@pytest.fixture
def pod_factory() -> PodFactory:
    """
    Builds a raw pod object, the way it arrives in `AdmissionReview.request.object`
    """

    def _create(
        *,
        labels: dict[str, str] | None = None,
        annotations: dict[str, str] | None = None,
        containers: list[dict[str, Any]] | None = None,
        init_containers: list[dict[str, Any]] | None = None,
        volumes: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        metadata: dict[str, Any] = {"name": "pod", "namespace": "default"}
        if labels is not None:
            metadata["labels"] = labels
        if annotations is not None:
            metadata["annotations"] = annotations

        spec: dict[str, Any] = {
            "containers": (
                containers
                if containers is not None
                else [{"name": "app", "image": "busybox"}]
            ),
        }
        if init_containers is not None:
            spec["initContainers"] = init_containers
        if volumes is not None:
            spec["volumes"] = volumes

        return {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": metadata,
            "spec": spec,
        }

    return _create


@pytest.fixture
def request_factory() -> RequestFactory:
    def _create(
        raw_object: Any,
        *,
        resource: dict[str, str] | None = None,
        sub_resource: str = "",
        name: str = "",
        operation: str = "CREATE",
    ) -> AdmissionRequest:
        return AdmissionRequest.model_validate(
            {
                "uid": str(uuid4()),
                "resource": resource or POD_RESOURCE_PRIMITIVE,
                "subResource": sub_resource,
                "name": name,
                "namespace": "default",
                "operation": operation,
                "object": raw_object,
            }
        )

    return _create
