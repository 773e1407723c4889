import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any
from uuid import uuid4

from platform_secrets_webhook.admission_controller.errors import MalformedPatchError
from platform_secrets_webhook.admission_controller.schema import (
    Container,
    PatchDocument,
    PodSpec,
    json_pointer,
)
from platform_secrets_webhook.config import MountPathMode


logger = logging.getLogger(__name__)

SIDECAR_INJECTOR_TOGGLE_NAME = "sidecarInjectorWebhook"

INIT_CONTAINER_NAME_PREFIX = "secrets-init-container"
SIDECAR_CONTAINER_NAME = "webhook-added-sidecar"

SECRET_VOLUME_NAME = "secret-vol"
# init containers write the fetched secrets into this directory
SECRET_VOLUME_INIT_MOUNT_PATH = "/tmp"
SECRET_ARN_ENV_NAME = "SECRET_ARN"
SECRET_LOCATION_ENV_NAME = "SEC_LOC"

SIDECAR_VOLUME_NAME = "vol"
SIDECAR_VOLUME_MOUNT_PATH = "/tmp"

MOUNT_PATH_BASE = "/tmp"


def has_container(
    containers: Iterable[Container],
    name: str,
    *,
    prefix: bool = False,
) -> bool:
    """
    Returns a boolean indicating whether a container with a given name exists.
    With `prefix=True` any container whose name starts with `name` matches.
    """
    for container in containers:
        if container.name == name:
            return True
        if prefix and container.name.startswith(name):
            return True
    return False


def create_mount_path(mode: MountPathMode) -> str:
    """
    Returns a path the secrets volume is mounted at in the main containers.
    A randomized path makes the secrets file location unpredictable.
    """
    if mode is MountPathMode.FIXED:
        return MOUNT_PATH_BASE
    return f"{MOUNT_PATH_BASE}/{uuid4()}"


def _has_volume(pod_spec: PodSpec, name: str) -> bool:
    return any(volume.name == name for volume in pod_spec.volumes or [])


def _ensure_volumes(pod_spec: PodSpec, patch: PatchDocument) -> None:
    if pod_spec.volumes is None:
        patch.add(path=json_pointer("spec", "volumes"), value=[])


class AnnotationScanner:
    """
    Finds secret references among pod annotations.
    The injector toggle shares the prefix but never references a secret.
    """

    def __init__(self, prefix: str) -> None:
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def toggle_key(self) -> str:
        return f"{self._prefix}/{SIDECAR_INJECTOR_TOGGLE_NAME}"

    def scan(self, annotations: Mapping[str, str]) -> list[tuple[str, str]]:
        return sorted(
            (key, value)
            for key, value in annotations.items()
            if self._prefix in key and key != self.toggle_key
        )


class InitContainerPatchBuilder:
    def __init__(self, image: str) -> None:
        self._image = image

    def create_container(self, idx: int, annotation_key: str) -> dict[str, Any]:
        return {
            "image": self._image,
            "name": f"{INIT_CONTAINER_NAME_PREFIX}-{idx}",
            "volumeMounts": [
                {
                    "name": SECRET_VOLUME_NAME,
                    "mountPath": SECRET_VOLUME_INIT_MOUNT_PATH,
                }
            ],
            "env": [
                {
                    "name": SECRET_ARN_ENV_NAME,
                    # resolved by the kubelet when the pod starts
                    "valueFrom": {
                        "fieldRef": {
                            "fieldPath": f"metadata.annotations['{annotation_key}']",
                        }
                    },
                }
            ],
            "resources": {},
        }

    def build(
        self,
        scan_results: Sequence[tuple[str, str]],
        pod_spec: PodSpec,
    ) -> PatchDocument:
        """
        Creates an init container per secret reference,
        and a shared in-memory volume they populate.
        """
        if not scan_results:
            raise MalformedPatchError("no secret references to inject")

        containers = [
            self.create_container(idx, annotation_key)
            for idx, (annotation_key, _) in enumerate(scan_results)
        ]
        logger.info("Injecting %d init container(s)", len(containers))

        patch = PatchDocument()
        if pod_spec.init_containers is None:
            patch.add(path=json_pointer("spec", "initContainers"), value=containers)
        else:
            # keep the init containers a pod already defines
            for container in containers:
                patch.add(
                    path=json_pointer("spec", "initContainers", "-"),
                    value=container,
                )

        if _has_volume(pod_spec, SECRET_VOLUME_NAME):
            logger.info("Pod already declares volume %s", SECRET_VOLUME_NAME)
            return patch

        _ensure_volumes(pod_spec, patch)
        patch.add(
            path=json_pointer("spec", "volumes", "-"),
            value={
                "name": SECRET_VOLUME_NAME,
                "emptyDir": {"medium": "Memory"},
            },
        )
        return patch


class MainContainerPatchBuilder:
    """
    Mounts the secrets volume into every main container,
    optionally exposing the mount path through an env variable.
    """

    def __init__(
        self,
        mount_path_mode: MountPathMode = MountPathMode.RANDOMIZED,
        inject_env_var: bool = True,
    ) -> None:
        self._mount_path_mode = mount_path_mode
        self._inject_env_var = inject_env_var

    def create_mount_path(self) -> str:
        return create_mount_path(self._mount_path_mode)

    def build(self, containers: Sequence[Container], mount_path: str) -> PatchDocument:
        logger.info("Will mount secrets in main containers to %s", mount_path)
        patch = PatchDocument()

        for idx, container in enumerate(containers):
            if container.volume_mounts is None:
                patch.add(
                    path=json_pointer("spec", "containers", idx, "volumeMounts"),
                    value=[],
                )
            patch.add(
                path=json_pointer("spec", "containers", idx, "volumeMounts", "-"),
                value={
                    "name": SECRET_VOLUME_NAME,
                    "mountPath": mount_path,
                },
            )

            if not self._inject_env_var:
                continue

            if container.env is None:
                patch.add(
                    path=json_pointer("spec", "containers", idx, "env"),
                    value=[],
                )
            patch.add(
                path=json_pointer("spec", "containers", idx, "env", "-"),
                value={
                    "name": SECRET_LOCATION_ENV_NAME,
                    "value": mount_path,
                },
            )

        return patch


class SidecarPatchBuilder:
    def __init__(self, image: str) -> None:
        self._image = image

    def build(self, pod_spec: PodSpec) -> PatchDocument:
        patch = PatchDocument()

        if not _has_volume(pod_spec, SIDECAR_VOLUME_NAME):
            _ensure_volumes(pod_spec, patch)
            patch.add(
                path=json_pointer("spec", "volumes", "-"),
                value={
                    "name": SIDECAR_VOLUME_NAME,
                    "emptyDir": {},
                },
            )

        patch.add(
            path=json_pointer("spec", "containers", "-"),
            value={
                "image": self._image,
                "name": SIDECAR_CONTAINER_NAME,
                "volumeMounts": [
                    {
                        "name": SIDECAR_VOLUME_NAME,
                        "mountPath": SIDECAR_VOLUME_MOUNT_PATH,
                    }
                ],
                "resources": {},
            },
        )
        return patch
