import base64
import logging
from typing import Any, Iterable

import jsonpatch
from kubernetes import client

from .models import (
    DEFAULT_API_VERSION,
    AddTolerations,
    PatchOperation,
    PodModel,
    ReplaceTolerations,
)

log = logging.getLogger("toleration-webhook")

TOLERATION_OPERATOR = "Exists"
TOLERATION_EFFECT = "NoExecute"

# Used only for model -> wire dict conversion; never talks to a cluster
_serializer = client.ApiClient()


class PatchEncodeError(ValueError):
    """The JSON Patch for a pod could not be serialized."""


def demanded_resources(pod: PodModel, targets: frozenset[str]) -> set[str]:
    """Target resources requested (not limited) by any container or init container."""
    demanded = set()
    for container in [*pod.containers, *pod.init_containers]:
        for resource_name in container.requests:
            if resource_name in targets:
                demanded.add(resource_name)
    return demanded


def existing_toleration_keys(pod: PodModel, targets: frozenset[str]) -> set[str]:
    """
    Keys of the pod's tolerations that name a target resource.
    A wildcard toleration (empty key) never counts as covering a resource.
    """
    keys = set()
    for toleration in pod.tolerations or []:
        key = toleration.get("key")
        if key and key in targets:
            keys.add(key)
    return keys


def tolerations_to_add(pod: PodModel, targets: frozenset[str]) -> set[str]:
    return demanded_resources(pod, targets) - existing_toleration_keys(pod, targets)


def forbidden_toleration_keys(pod: PodModel, targets: frozenset[str]) -> list[str]:
    """Target-resource tolerations the pod holds without requesting the resource."""
    return sorted(
        existing_toleration_keys(pod, targets) - demanded_resources(pod, targets)
    )


def build_toleration(key: str) -> dict[str, Any]:
    toleration = client.V1Toleration(
        key=key, operator=TOLERATION_OPERATOR, effect=TOLERATION_EFFECT
    )
    return _serializer.sanitize_for_serialization(toleration)


def patch_operations(pod: PodModel, delta: Iterable[str]) -> list[PatchOperation]:
    """
    Operations adding one toleration per delta member, in lexicographic order.
    An absent toleration list is created; an existing one is replaced with its
    original entries followed by the new ones.
    """
    new_tolerations = [build_toleration(key) for key in sorted(delta)]
    if pod.tolerations is None:
        return [AddTolerations(new_tolerations)]
    return [ReplaceTolerations([*pod.tolerations, *new_tolerations])]


def build_patch(pod: PodModel, delta: Iterable[str]) -> bytes:
    ops = [op.to_dict() for op in patch_operations(pod, delta)]
    try:
        return jsonpatch.JsonPatch(ops).to_string().encode()
    except (TypeError, ValueError, jsonpatch.JsonPatchException) as e:
        raise PatchEncodeError(f"could not make patch data: {e}") from e


def make_admission_response(
    uid: str,
    allowed: bool = True,
    patch: bytes | None = None,
    message: str | None = None,
    api_version: str = DEFAULT_API_VERSION,
) -> dict[str, Any]:
    """Return the AdmissionReview the webhook sends to K8s to allow, deny or patch a Pod."""
    resp: dict[str, Any] = {"uid": uid, "allowed": allowed}

    if patch:
        resp["patchType"] = "JSONPatch"
        resp["patch"] = base64.b64encode(patch).decode()

    if message:
        resp["status"] = {"message": message}

    return {
        "apiVersion": api_version,
        "kind": "AdmissionReview",
        "response": resp,
    }
