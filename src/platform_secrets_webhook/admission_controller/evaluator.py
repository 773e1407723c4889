import asyncio
import logging
from enum import Enum

from platform_secrets_webhook.admission_controller.errors import (
    AdmissionControllerError,
    ConfigurationError,
    ResourceMismatchError,
    SubresourceMismatchError,
)
from platform_secrets_webhook.admission_controller.patch import (
    INIT_CONTAINER_NAME_PREFIX,
    SIDECAR_CONTAINER_NAME,
    AnnotationScanner,
    InitContainerPatchBuilder,
    MainContainerPatchBuilder,
    SidecarPatchBuilder,
    has_container,
)
from platform_secrets_webhook.admission_controller.schema import (
    POD_RESOURCE,
    AdmissionRequest,
    AdmissionResponse,
    PatchDocument,
    Pod,
    PodAttachOptions,
    decode_object,
)
from platform_secrets_webhook.config import AdmissionControllerConfig


logger = logging.getLogger(__name__)

LABEL_E2E_TEST = "webhook-e2e-test"
LABEL_E2E_TEST_DISALLOW = "webhook-disallow"
LABEL_E2E_TEST_WAIT_FOREVER = "wait-forever"
DISALLOWED_CONTAINER_NAME_PART = "webhook-disallow"

ATTACH_SUBRESOURCE = "attach"


class MutationStrategy(str, Enum):
    ANNOTATION_DRIVEN = "annotation-driven"
    SIDECAR_ONLY = "sidecar-only"


class AdmissionEvaluator:
    """
    Makes admission decisions for pods.
    Holds nothing but the startup configuration,
    so a single instance serves concurrent requests.
    """

    def __init__(self, config: AdmissionControllerConfig) -> None:
        self._config = config
        self._scanner = AnnotationScanner(prefix=config.annotation_prefix)
        self._main_container_builder = MainContainerPatchBuilder(
            mount_path_mode=config.mount_path_mode,
            inject_env_var=config.inject_env_var,
        )

    @property
    def config(self) -> AdmissionControllerConfig:
        return self._config

    async def evaluate_pod_admission(
        self, request: AdmissionRequest
    ) -> AdmissionResponse:
        logger.info("admitting pods")
        try:
            self._check_pod_resource(request)
            pod = decode_object(Pod, request.raw_object)
        except AdmissionControllerError as e:
            logger.error(e.message)
            return AdmissionResponse.decline(
                uid=request.uid,
                status_code=e.status_code,
                message=e.message,
            )

        reasons: list[str] = []
        label = pod.metadata.labels.get(LABEL_E2E_TEST)
        if label == LABEL_E2E_TEST_DISALLOW:
            reasons.append("the pod contains unwanted label;")
        if label == LABEL_E2E_TEST_WAIT_FOREVER:
            reasons.append("the pod response should not be sent;")
            if self._config.wait_forever_hook_enabled:
                logger.warning(
                    "wait-forever hook: request %s won't be answered", request.uid
                )
                await asyncio.Event().wait()  # sleep forever
        for container in pod.spec.containers:
            if DISALLOWED_CONTAINER_NAME_PART in container.name:
                reasons.append("the pod contains unwanted container name;")

        if reasons:
            return AdmissionResponse.deny(uid=request.uid, message=" ".join(reasons))
        return AdmissionResponse.allow(uid=request.uid)

    async def evaluate_pod_attach_admission(
        self, request: AdmissionRequest
    ) -> AdmissionResponse:
        logger.info("handling attaching pods")
        if request.name != self._config.attach_pod_name:
            return AdmissionResponse.allow(uid=request.uid)

        try:
            self._check_pod_resource(request)
            if request.sub_resource != ATTACH_SUBRESOURCE:
                raise SubresourceMismatchError(
                    f"expect subresource to be {ATTACH_SUBRESOURCE}, "
                    f"got {request.sub_resource}"
                )
            options = decode_object(PodAttachOptions, request.raw_object)
        except AdmissionControllerError as e:
            logger.error(e.message)
            return AdmissionResponse.decline(
                uid=request.uid,
                status_code=e.status_code,
                message=e.message,
            )

        logger.debug("podAttachOptions=%r", options)
        if (
            not options.stdin
            or options.container != self._config.attach_container_name
        ):
            return AdmissionResponse.allow(uid=request.uid)

        return AdmissionResponse.deny(
            uid=request.uid,
            message=f"attaching to pod '{request.name}' is not allowed",
        )

    async def evaluate_pod_mutation(
        self,
        request: AdmissionRequest,
        strategy: MutationStrategy = MutationStrategy.ANNOTATION_DRIVEN,
    ) -> AdmissionResponse:
        logger.info("mutating pods, strategy %s", strategy.value)
        try:
            if (
                strategy is MutationStrategy.SIDECAR_ONLY
                and not self._config.sidecar_image
            ):
                raise ConfigurationError(
                    "No image specified by the sidecar-image parameter"
                )
            self._check_pod_resource(request)
            pod = decode_object(Pod, request.raw_object)

            if not self.should_patch(pod, strategy):
                return AdmissionResponse.allow(uid=request.uid)

            patch = self._build_patch(pod, strategy)
        except AdmissionControllerError as e:
            logger.error(e.message)
            return AdmissionResponse.decline(
                uid=request.uid,
                status_code=e.status_code,
                message=e.message,
            )
        except Exception:
            logger.exception("secrets injector unhandled error")
            return AdmissionResponse.decline(
                uid=request.uid,
                status_code=500,
                message="secrets injector unhandled error",
            )

        logger.info("Patching pod with %d operation(s)", len(patch))
        return AdmissionResponse.allow(uid=request.uid, patch=patch)

    def should_patch(self, pod: Pod, strategy: MutationStrategy) -> bool:
        """
        Returns a boolean indicating whether a pod
        should actually be mutated at all.
        """
        if strategy is MutationStrategy.SIDECAR_ONLY:
            if has_container(pod.spec.containers, SIDECAR_CONTAINER_NAME):
                logger.info("Pod already has a sidecar, skipping")
                return False
            return True

        if not self._scanner.scan(pod.metadata.annotations):
            logger.info("Pod won't be mutated, it doesn't reference any secrets")
            return False

        if has_container(
            pod.spec.init_containers or [], INIT_CONTAINER_NAME_PREFIX, prefix=True
        ):
            logger.info("Pod already has secrets init containers, skipping")
            return False

        return True

    def _build_patch(self, pod: Pod, strategy: MutationStrategy) -> PatchDocument:
        if strategy is MutationStrategy.SIDECAR_ONLY:
            assert self._config.sidecar_image
            return SidecarPatchBuilder(self._config.sidecar_image).build(pod.spec)

        image = self._config.init_container_image
        if not image:
            raise ConfigurationError("No image specified for the init containers")

        secrets = self._scanner.scan(pod.metadata.annotations)
        patch = InitContainerPatchBuilder(image).build(secrets, pod.spec)

        # one path per request, shared by all the containers
        mount_path = self._main_container_builder.create_mount_path()
        patch.extend(
            self._main_container_builder.build(pod.spec.containers, mount_path)
        )
        return patch

    @staticmethod
    def _check_pod_resource(request: AdmissionRequest) -> None:
        if request.resource != POD_RESOURCE:
            raise ResourceMismatchError(
                f"expect resource to be {POD_RESOURCE}, got {request.resource}"
            )
