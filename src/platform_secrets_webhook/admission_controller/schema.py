import base64
import dataclasses
import json
from collections.abc import Iterable, Iterator
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from platform_secrets_webhook.admission_controller.errors import DecodeError


ADMISSION_API_VERSION = "admission.k8s.io/v1"
ADMISSION_REVIEW_KIND = "AdmissionReview"

STATUS_FAILURE = "Failure"


class _KubeModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class GroupVersionResource(_KubeModel):
    model_config = ConfigDict(frozen=True)

    group: str = ""
    version: str = ""
    resource: str = ""

    def __str__(self) -> str:
        return "/".join(p for p in (self.group, self.version, self.resource) if p)


class GroupVersionKind(_KubeModel):
    model_config = ConfigDict(frozen=True)

    group: str = ""
    version: str = ""
    kind: str = ""


POD_RESOURCE = GroupVersionResource(group="", version="v1", resource="pods")


class AdmissionRequest(_KubeModel):
    """
    A read-only view of `AdmissionReview.request`.
    `raw_object` keeps the submitted object undecoded,
    every use case decodes it into the structure it expects.
    """

    model_config = ConfigDict(frozen=True)

    uid: str
    kind: GroupVersionKind = Field(default_factory=GroupVersionKind)
    resource: GroupVersionResource = Field(default_factory=GroupVersionResource)
    sub_resource: str = Field("", alias="subResource")
    name: str = ""
    namespace: str = ""
    operation: str = ""
    raw_object: Any = Field(None, alias="object")


class AdmissionReviewRequest(_KubeModel):
    api_version: str = Field(ADMISSION_API_VERSION, alias="apiVersion")
    kind: str = ADMISSION_REVIEW_KIND
    request: AdmissionRequest


class Container(_KubeModel):
    name: str
    image: str | None = None
    # `None` means the key is absent, an append onto it would fail
    volume_mounts: list[dict[str, Any]] | None = Field(None, alias="volumeMounts")
    env: list[dict[str, Any]] | None = None


class Volume(_KubeModel):
    name: str


class ObjectMeta(_KubeModel):
    name: str | None = None
    namespace: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)

    @field_validator("labels", "annotations", mode="before")
    @classmethod
    def null_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class PodSpec(_KubeModel):
    containers: list[Container] = Field(default_factory=list)
    init_containers: list[Container] | None = Field(None, alias="initContainers")
    volumes: list[Volume] | None = None

    @field_validator("containers", mode="before")
    @classmethod
    def null_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class Pod(_KubeModel):
    api_version: str | None = Field(None, alias="apiVersion")
    kind: str | None = None
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: PodSpec = Field(default_factory=PodSpec)

    @field_validator("kind", mode="after")
    @classmethod
    def is_pod(cls, value: str | None) -> str | None:
        if value is not None and value != "Pod":
            err = f"`{value}` is not a Pod"
            raise ValueError(err)
        return value

    @field_validator("metadata", "spec", mode="before")
    @classmethod
    def null_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class PodAttachOptions(_KubeModel):
    kind: str | None = None
    stdin: bool = False
    container: str = ""

    @field_validator("kind", mode="after")
    @classmethod
    def is_attach_options(cls, value: str | None) -> str | None:
        if value is not None and value != "PodAttachOptions":
            err = f"`{value}` is not a PodAttachOptions"
            raise ValueError(err)
        return value


ModelT = TypeVar("ModelT", bound=BaseModel)


def decode_object(model: type[ModelT], raw: Any) -> ModelT:
    """Decodes a raw admission object, raising `DecodeError` on any mismatch"""
    try:
        if isinstance(raw, (str, bytes, bytearray)):
            return model.model_validate_json(raw)
        return model.model_validate(raw)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        )
        raise DecodeError(
            f"couldn't decode the object into {model.__name__}: {details}"
        ) from e


def json_pointer(*tokens: str | int) -> str:
    """Builds an RFC 6901 pointer, escaping every reference token"""
    return "".join(
        "/" + str(token).replace("~", "~0").replace("/", "~1") for token in tokens
    )


class PatchOp(str, Enum):
    ADD = "add"


@dataclasses.dataclass(frozen=True)
class PatchOperation:
    path: str
    value: Any
    op: PatchOp = PatchOp.ADD

    def to_primitive(self) -> dict[str, Any]:
        return {
            "op": self.op.value,
            "path": self.path,
            "value": self.value,
        }


class PatchDocument:
    """
    An RFC 6902 document.
    Operations are applied in the insertion order, so appends (`/-`)
    and index-based paths are only valid relative to the operations before them.
    """

    def __init__(self, operations: Iterable[PatchOperation] = ()) -> None:
        self._operations: list[PatchOperation] = list(operations)

    def add(self, path: str, value: Any) -> None:
        self._operations.append(PatchOperation(path=path, value=value))

    def extend(self, operations: Iterable[PatchOperation]) -> None:
        self._operations.extend(operations)

    def __iter__(self) -> Iterator[PatchOperation]:
        return iter(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    def __repr__(self) -> str:
        return f"PatchDocument({self._operations!r})"

    @property
    def paths(self) -> list[str]:
        return [operation.path for operation in self._operations]

    def to_primitive(self) -> list[dict[str, Any]]:
        return [operation.to_primitive() for operation in self._operations]

    def dumps(self) -> str:
        return json.dumps(self.to_primitive())

    def to_base64(self) -> str:
        return base64.b64encode(self.dumps().encode()).decode()


class AdmissionReviewPatchType(str, Enum):
    JSON = "JSONPatch"


@dataclasses.dataclass(frozen=True)
class Status:
    message: str
    code: int | None = None
    status: str | None = None

    def to_primitive(self) -> dict[str, Any]:
        result: dict[str, Any] = {"message": self.message}
        if self.status is not None:
            result["status"] = self.status
        if self.code is not None:
            result["code"] = self.code
        return result


@dataclasses.dataclass(frozen=True)
class AdmissionResponse:
    uid: str
    allowed: bool
    patch: PatchDocument | None = None
    result: Status | None = None

    @classmethod
    def allow(
        cls, uid: str, patch: PatchDocument | None = None
    ) -> "AdmissionResponse":
        # an empty document is the same as no patch at all
        return cls(uid=uid, allowed=True, patch=patch or None)

    @classmethod
    def deny(cls, uid: str, message: str) -> "AdmissionResponse":
        return cls(uid=uid, allowed=False, result=Status(message=message))

    @classmethod
    def decline(cls, uid: str, status_code: int, message: str) -> "AdmissionResponse":
        return cls(
            uid=uid,
            allowed=False,
            result=Status(message=message, code=status_code, status=STATUS_FAILURE),
        )

    @property
    def patch_type(self) -> AdmissionReviewPatchType | None:
        if self.patch is None:
            return None
        return AdmissionReviewPatchType.JSON

    def to_primitive(self) -> dict[str, Any]:
        response: dict[str, Any] = {
            "uid": self.uid,
            "allowed": self.allowed,
        }
        if self.patch is not None:
            # a patch always travels as a base64-encoded JSON array
            response.update(
                {
                    "patch": self.patch.to_base64(),
                    "patchType": AdmissionReviewPatchType.JSON.value,
                }
            )
        if self.result is not None:
            response["status"] = self.result.to_primitive()
        return response

    def to_review(self) -> dict[str, Any]:
        return {
            "apiVersion": ADMISSION_API_VERSION,
            "kind": ADMISSION_REVIEW_KIND,
            "response": self.to_primitive(),
        }
