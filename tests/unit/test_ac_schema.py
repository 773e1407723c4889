import base64
import json

import pytest
from pydantic import ValidationError

from platform_secrets_webhook.admission_controller.errors import DecodeError
from platform_secrets_webhook.admission_controller.schema import (
    POD_RESOURCE,
    AdmissionResponse,
    AdmissionReviewPatchType,
    AdmissionReviewRequest,
    GroupVersionResource,
    PatchDocument,
    PatchOperation,
    Pod,
    PodAttachOptions,
    decode_object,
    json_pointer,
)


class TestAdmissionReviewRequest:
    def test_decode(self) -> None:
        review = AdmissionReviewRequest.model_validate(
            {
                "apiVersion": "admission.k8s.io/v1",
                "kind": "AdmissionReview",
                "request": {
                    "uid": "705ab4f5-6393-11e8-b7cc-42010a800002",
                    "kind": {"group": "", "version": "v1", "kind": "Pod"},
                    "resource": {"group": "", "version": "v1", "resource": "pods"},
                    "subResource": "attach",
                    "name": "my-pod",
                    "namespace": "my-namespace",
                    "operation": "CONNECT",
                    "object": {"kind": "PodAttachOptions", "stdin": True},
                },
            }
        )
        request = review.request
        assert request.uid == "705ab4f5-6393-11e8-b7cc-42010a800002"
        assert request.resource == POD_RESOURCE
        assert request.kind.kind == "Pod"
        assert request.sub_resource == "attach"
        assert request.name == "my-pod"
        assert request.operation == "CONNECT"
        assert request.raw_object == {"kind": "PodAttachOptions", "stdin": True}

    def test_request_is_immutable(self) -> None:
        review = AdmissionReviewRequest.model_validate({"request": {"uid": "1"}})
        with pytest.raises(ValidationError):
            review.request.name = "other"  # type: ignore[misc]

    def test_group_version_resource_str(self) -> None:
        assert str(POD_RESOURCE) == "v1/pods"
        resource = GroupVersionResource(group="apps", version="v1", resource="jobs")
        assert str(resource) == "apps/v1/jobs"


class TestDecodeObject:
    def test_pod(self) -> None:
        pod = decode_object(
            Pod,
            {
                "kind": "Pod",
                "metadata": {
                    "labels": {"app": "web"},
                    "annotations": None,
                },
                "spec": {
                    "containers": [
                        {"name": "app", "image": "busybox", "volumeMounts": []},
                    ],
                    "initContainers": [{"name": "init"}],
                },
            },
        )
        assert pod.metadata.labels == {"app": "web"}
        assert pod.metadata.annotations == {}
        assert [c.name for c in pod.spec.containers] == ["app"]
        assert pod.spec.containers[0].volume_mounts == []
        assert pod.spec.containers[0].env is None
        assert pod.spec.init_containers is not None
        assert pod.spec.volumes is None

    def test_pod_from_bytes(self) -> None:
        raw = json.dumps({"kind": "Pod", "spec": {"containers": None}}).encode()
        pod = decode_object(Pod, raw)
        assert pod.spec.containers == []

    def test_not_a_pod(self) -> None:
        with pytest.raises(DecodeError) as e:
            decode_object(Pod, {"kind": "Job"})
        assert "`Job` is not a Pod" in e.value.message
        assert e.value.status_code == 400

    def test_missing_object(self) -> None:
        with pytest.raises(DecodeError, match="couldn't decode the object into Pod"):
            decode_object(Pod, None)

    def test_invalid_json(self) -> None:
        with pytest.raises(DecodeError):
            decode_object(Pod, b"{not a json")

    def test_container_without_name(self) -> None:
        with pytest.raises(DecodeError) as e:
            decode_object(Pod, {"spec": {"containers": [{"image": "busybox"}]}})
        assert "spec.containers.0.name" in e.value.message

    def test_attach_options(self) -> None:
        options = decode_object(
            PodAttachOptions,
            {"kind": "PodAttachOptions", "stdin": True, "container": "container1"},
        )
        assert options.stdin is True
        assert options.container == "container1"

    def test_attach_options_wrong_kind(self) -> None:
        with pytest.raises(DecodeError):
            decode_object(PodAttachOptions, {"kind": "Pod"})


def test_json_pointer() -> None:
    assert json_pointer("spec", "containers", 1, "env", "-") == (
        "/spec/containers/1/env/-"
    )
    assert json_pointer("metadata", "annotations", "a/b~c") == (
        "/metadata/annotations/a~1b~0c"
    )


class TestPatchDocument:
    def test_empty(self) -> None:
        patch = PatchDocument()
        assert len(patch) == 0
        assert not patch
        assert json.loads(patch.dumps()) == []

    def test_ordered_operations(self) -> None:
        patch = PatchDocument()
        patch.add(path="/spec/volumes", value=[])
        patch.add(path="/spec/volumes/-", value={"name": "vol"})
        patch.extend(PatchDocument([PatchOperation(path="/spec/x", value=1)]))

        assert patch.paths == ["/spec/volumes", "/spec/volumes/-", "/spec/x"]
        assert json.loads(patch.dumps()) == [
            {"op": "add", "path": "/spec/volumes", "value": []},
            {"op": "add", "path": "/spec/volumes/-", "value": {"name": "vol"}},
            {"op": "add", "path": "/spec/x", "value": 1},
        ]

    def test_value_with_quotes_and_commas_is_valid_json(self) -> None:
        patch = PatchDocument()
        patch.add(path="/spec/x", value="a\"b,c],{")
        assert json.loads(patch.dumps())[0]["value"] == "a\"b,c],{"

    def test_to_base64(self) -> None:
        patch = PatchDocument()
        patch.add(path="/spec/x", value=1)
        decoded = json.loads(base64.b64decode(patch.to_base64()))
        assert decoded == [{"op": "add", "path": "/spec/x", "value": 1}]


class TestAdmissionResponse:
    def test_allow_without_patch(self) -> None:
        response = AdmissionResponse.allow(uid="1")
        assert response.patch_type is None
        assert response.to_review() == {
            "apiVersion": "admission.k8s.io/v1",
            "kind": "AdmissionReview",
            "response": {"uid": "1", "allowed": True},
        }

    def test_allow_with_empty_patch_drops_it(self) -> None:
        response = AdmissionResponse.allow(uid="1", patch=PatchDocument())
        assert response.patch is None
        assert "patch" not in response.to_primitive()

    def test_allow_with_patch(self) -> None:
        patch = PatchDocument()
        patch.add(path="/spec/x", value=1)
        response = AdmissionResponse.allow(uid="1", patch=patch)

        primitive = response.to_primitive()
        assert response.patch_type is AdmissionReviewPatchType.JSON
        assert primitive["patchType"] == "JSONPatch"
        assert json.loads(base64.b64decode(primitive["patch"])) == [
            {"op": "add", "path": "/spec/x", "value": 1}
        ]

    def test_deny(self) -> None:
        response = AdmissionResponse.deny(uid="1", message="nope")
        assert response.to_primitive() == {
            "uid": "1",
            "allowed": False,
            "status": {"message": "nope"},
        }

    def test_decline(self) -> None:
        response = AdmissionResponse.decline(uid="1", status_code=500, message="boom")
        assert response.to_primitive() == {
            "uid": "1",
            "allowed": False,
            "status": {"message": "boom", "status": "Failure", "code": 500},
        }
