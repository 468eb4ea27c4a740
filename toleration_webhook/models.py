"""
Minimal models for Kubernetes AdmissionReview and Pod used by this webhook.
We intentionally parse only the fields we need and ignore unknowns so that
new Kubernetes fields don't break this app. Fields we do read are checked
for shape; a mismatch raises AdmissionDecodeError.

References:
- AdmissionReview request/response shape:
  https://kubernetes.io/docs/reference/access-authn-authz/extensible-admission-controllers/#request-and-response
- Pod (core/v1) API reference:
  https://kubernetes.io/docs/reference/generated/kubernetes-api/latest/#pod-v1-core
- JSON Patch:
  https://datatracker.ietf.org/doc/html/rfc6902
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional, Union

DEFAULT_API_VERSION = "admission.k8s.io/v1"
SUPPORTED_API_VERSIONS = ("admission.k8s.io/v1", "admission.k8s.io/v1beta1")

TOLERATIONS_PATH = "/spec/tolerations"


class AdmissionDecodeError(ValueError):
    """The AdmissionReview envelope or its embedded Pod could not be decoded."""


def _get(d: dict[str, Any], key: str, default):
    # Missing or null -> default; present with the wrong type -> decode error
    v = d.get(key)
    if v is None:
        return default
    if not isinstance(v, type(default)):
        raise AdmissionDecodeError(
            f"field {key!r}: expected {type(default).__name__}, got {type(v).__name__}"
        )
    return v


@dataclass
class ContainerModel:
    name: str
    requests: dict[str, Any]

    @staticmethod
    def from_dict(d: Any) -> "ContainerModel":
        if not isinstance(d, dict):
            raise AdmissionDecodeError("container must be an object")
        resources = _get(d, "resources", {})
        return ContainerModel(
            name=_get(d, "name", ""),
            requests=_get(resources, "requests", {}),
        )


@dataclass
class PodModel:
    name: str
    namespace: str
    containers: list[ContainerModel] = field(default_factory=list)
    init_containers: list[ContainerModel] = field(default_factory=list)
    # None when spec.tolerations is absent; entries are kept verbatim
    tolerations: Optional[list[dict[str, Any]]] = None

    @staticmethod
    def from_dict(d: Any) -> "PodModel":
        if not isinstance(d, dict):
            raise AdmissionDecodeError("pod must be an object")
        meta = _get(d, "metadata", {})
        spec = _get(d, "spec", {})

        raw_tolerations = spec.get("tolerations")
        tolerations = None
        if raw_tolerations is not None:
            if not isinstance(raw_tolerations, list) or not all(
                isinstance(t, dict) for t in raw_tolerations
            ):
                raise AdmissionDecodeError("spec.tolerations must be a list of objects")
            for t in raw_tolerations:
                _get(t, "key", "")
            tolerations = list(raw_tolerations)

        return PodModel(
            name=_get(meta, "name", "") or _get(meta, "generateName", ""),
            namespace=_get(meta, "namespace", ""),
            containers=[ContainerModel.from_dict(c) for c in _get(spec, "containers", [])],
            init_containers=[
                ContainerModel.from_dict(c) for c in _get(spec, "initContainers", [])
            ],
            tolerations=tolerations,
        )


@dataclass
class AdmissionRequestModel:
    uid: str
    resource: str
    operation: str = "CREATE"
    namespace: str = ""
    raw_object: Any = None

    @staticmethod
    def from_dict(d: Any) -> "AdmissionRequestModel":
        if not isinstance(d, dict):
            raise AdmissionDecodeError("AdmissionReview has no request")
        resource = d.get("resource")
        if not isinstance(resource, dict):
            resource = {}
        return AdmissionRequestModel(
            uid=str(d.get("uid") or ""),
            resource=str(resource.get("resource") or ""),
            operation=str(d.get("operation") or "CREATE"),
            namespace=str(d.get("namespace") or ""),
            raw_object=d.get("object"),
        )

    def pod(self) -> PodModel:
        """Decode the embedded object as a Pod; it may arrive inline or as a raw JSON string."""
        raw = self.raw_object
        if raw is None:
            raise AdmissionDecodeError("admission request carries no object")
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except ValueError as e:
                raise AdmissionDecodeError(f"could not unmarshal raw object: {e}") from e
        pod = PodModel.from_dict(raw)
        if not pod.namespace:
            pod.namespace = self.namespace
        return pod


@dataclass
class AdmissionReviewModel:
    request: AdmissionRequestModel
    api_version: str = DEFAULT_API_VERSION

    @staticmethod
    def from_dict(d: Any) -> "AdmissionReviewModel":
        if not isinstance(d, dict):
            raise AdmissionDecodeError("AdmissionReview must be an object")
        api_version = d.get("apiVersion")
        if api_version not in SUPPORTED_API_VERSIONS:
            api_version = DEFAULT_API_VERSION
        return AdmissionReviewModel(
            request=AdmissionRequestModel.from_dict(d.get("request")),
            api_version=api_version,
        )

    @staticmethod
    def from_json(body: bytes) -> "AdmissionReviewModel":
        try:
            d = json.loads(body)
        except ValueError as e:
            raise AdmissionDecodeError(f"could not decode body: {e}") from e
        return AdmissionReviewModel.from_dict(d)


def api_version_of(body: bytes) -> str:
    # Best effort for error responses, where the envelope may not have decoded
    try:
        d = json.loads(body)
    except ValueError:
        return DEFAULT_API_VERSION
    v = d.get("apiVersion") if isinstance(d, dict) else None
    return v if v in SUPPORTED_API_VERSIONS else DEFAULT_API_VERSION


@dataclass(frozen=True)
class AddTolerations:
    """Create spec.tolerations holding only the synthesized entries."""

    tolerations: list[dict[str, Any]]
    op: str = "add"

    def to_dict(self) -> dict[str, Any]:
        return {"op": self.op, "path": TOLERATIONS_PATH, "value": self.tolerations}


@dataclass(frozen=True)
class ReplaceTolerations:
    """Rewrite spec.tolerations as the existing entries plus the synthesized ones."""

    tolerations: list[dict[str, Any]]
    op: str = "replace"

    def to_dict(self) -> dict[str, Any]:
        return {"op": self.op, "path": TOLERATIONS_PATH, "value": self.tolerations}


PatchOperation = Union[AddTolerations, ReplaceTolerations]
