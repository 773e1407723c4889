import enum
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8443
    keep_alive_timeout_s: float = 75

    @classmethod
    def from_environ(cls, environ: dict[str, str] | None = None) -> "ServerConfig":
        return EnvironConfigFactory(environ).create_server()


@dataclass(frozen=True)
class TLSConfig:
    cert_path: Path
    key_path: Path


class MountPathMode(str, enum.Enum):
    # a fresh /tmp/<uuid> per admission request
    RANDOMIZED = "randomized"
    # legacy, a predictable /tmp
    FIXED = "fixed"


@dataclass(frozen=True)
class AdmissionControllerConfig:
    sidecar_image: str | None = None
    init_container_image: str | None = None
    annotation_prefix: str = "secrets.k8s.aws"
    mount_path_mode: MountPathMode = MountPathMode.RANDOMIZED
    inject_env_var: bool = True
    wait_forever_hook_enabled: bool = False
    attach_pod_name: str = "to-be-attached-pod"
    attach_container_name: str = "container1"

    @classmethod
    def from_environ(
        cls,
        environ: dict[str, str] | None = None,
    ) -> "AdmissionControllerConfig":
        return EnvironConfigFactory(environ).create_admission_controller()


@dataclass(frozen=True)
class Config:
    server: ServerConfig
    tls: TLSConfig
    admission_controller: AdmissionControllerConfig

    @classmethod
    def from_environ(cls, environ: dict[str, str] | None = None) -> "Config":
        return EnvironConfigFactory(environ).create()


class EnvironConfigFactory:
    def __init__(self, environ: dict[str, str] | None = None) -> None:
        self._environ = environ if environ is not None else os.environ

    def create(self) -> Config:
        return Config(
            server=self.create_server(),
            tls=self.create_tls(),
            admission_controller=self.create_admission_controller(),
        )

    def _get_bool(self, name: str, default: bool) -> bool:
        value = self._environ.get(name)
        if value is None or value == "":
            return default
        normalized = value.strip().lower()
        if normalized in ("1", "true", "yes", "on"):
            return True
        if normalized in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"{name}: {value!r} is not a boolean")

    def _get_optional(self, name: str) -> str | None:
        # an empty string means "not configured"
        return self._environ.get(name) or None

    def create_server(self) -> ServerConfig:
        return ServerConfig(
            host=self._environ.get("NP_SECRETS_WEBHOOK_HOST", ServerConfig.host),
            port=int(self._environ.get("NP_SECRETS_WEBHOOK_PORT", ServerConfig.port)),
            keep_alive_timeout_s=float(
                self._environ.get(
                    "NP_SECRETS_WEBHOOK_KEEP_ALIVE_TIMEOUT",
                    ServerConfig.keep_alive_timeout_s,
                )
            ),
        )

    def create_tls(self) -> TLSConfig:
        return TLSConfig(
            cert_path=Path(self._environ["NP_SECRETS_WEBHOOK_TLS_CERT_FILE"]),
            key_path=Path(self._environ["NP_SECRETS_WEBHOOK_TLS_KEY_FILE"]),
        )

    def create_admission_controller(self) -> AdmissionControllerConfig:
        sidecar_image = self._get_optional("NP_SECRETS_WEBHOOK_SIDECAR_IMAGE")
        init_container_image = (
            self._get_optional("NP_SECRETS_WEBHOOK_INIT_CONTAINER_IMAGE")
            or sidecar_image
        )
        if init_container_image is None:
            logger.info("no init container image configured, injection is disabled")
        return AdmissionControllerConfig(
            sidecar_image=sidecar_image,
            init_container_image=init_container_image,
            annotation_prefix=self._environ.get(
                "NP_SECRETS_WEBHOOK_ANNOTATION_PREFIX",
                AdmissionControllerConfig.annotation_prefix,
            ),
            mount_path_mode=MountPathMode(
                self._environ.get(
                    "NP_SECRETS_WEBHOOK_MOUNT_PATH_MODE",
                    AdmissionControllerConfig.mount_path_mode.value,
                ).lower()
            ),
            inject_env_var=self._get_bool(
                "NP_SECRETS_WEBHOOK_INJECT_ENV_VAR",
                AdmissionControllerConfig.inject_env_var,
            ),
            wait_forever_hook_enabled=self._get_bool(
                "NP_SECRETS_WEBHOOK_WAIT_FOREVER_HOOK",
                AdmissionControllerConfig.wait_forever_hook_enabled,
            ),
            attach_pod_name=self._environ.get(
                "NP_SECRETS_WEBHOOK_ATTACH_POD_NAME",
                AdmissionControllerConfig.attach_pod_name,
            ),
            attach_container_name=self._environ.get(
                "NP_SECRETS_WEBHOOK_ATTACH_CONTAINER_NAME",
                AdmissionControllerConfig.attach_container_name,
            ),
        )
