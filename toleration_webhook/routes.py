import logging
from typing import Any

from flask import Blueprint, Response, abort, jsonify, request

from .helpers import (
    PatchEncodeError,
    build_patch,
    forbidden_toleration_keys,
    make_admission_response,
    tolerations_to_add,
)
from .models import AdmissionDecodeError, AdmissionReviewModel, api_version_of
from .registry import TargetResourceRegistry

log = logging.getLogger("toleration-webhook")

JSON_MEDIA_TYPE = "application/json"


def _require_json_body() -> bytes:
    body = request.get_data()
    if not body:
        log.warning("Empty body on %s", request.path)
        abort(Response("empty body", status=400, mimetype="text/plain"))

    if request.mimetype != JSON_MEDIA_TYPE:
        log.warning(
            "Content-Type=%s on %s, expect %s",
            request.content_type,
            request.path,
            JSON_MEDIA_TYPE,
        )
        abort(
            Response(
                "invalid Content-Type, expect `application/json`",
                status=415,
                mimetype="text/plain",
            )
        )
    return body


def _respond(review: dict[str, Any]):
    try:
        return jsonify(review)
    except (TypeError, ValueError) as e:
        log.error("Couldn't encode response: %s", e, exc_info=True)
        return Response(
            f"couldn't encode response: {e}", status=500, mimetype="text/plain"
        )


def create_routes(registry: TargetResourceRegistry):
    bp = Blueprint("webhook", __name__)

    @bp.route("/health", methods=["GET"])
    def health():
        return {"status": "healthy"}, 200

    @bp.route("/mutate", methods=["POST"])
    def mutate():
        """
        Mutating webhook: add an Exists/NoExecute toleration for every target
        resource the pod requests but does not already tolerate.
        """
        body = _require_json_body()

        try:
            admission = AdmissionReviewModel.from_json(body)
        except AdmissionDecodeError as e:
            log.warning("Can't decode body on /mutate: %s", e)
            return _respond(
                make_admission_response(
                    "", False, message=str(e), api_version=api_version_of(body)
                )
            )

        req = admission.request
        uid = req.uid
        api_version = admission.api_version

        try:
            pod = req.pod()
        except AdmissionDecodeError as e:
            log.warning("Could not unmarshal raw object uid=%s: %s", uid, e)
            return _respond(
                make_admission_response(
                    uid, False, message=str(e), api_version=api_version
                )
            )

        delta = tolerations_to_add(pod, registry.snapshot())
        if not delta:
            log.info("No need to mutate pod %s/%s", pod.namespace, pod.name)
            return _respond(make_admission_response(uid, True, api_version=api_version))

        try:
            patch = build_patch(pod, delta)
        except PatchEncodeError as e:
            log.error("Patch build failed for pod %s/%s: %s", pod.namespace, pod.name, e)
            return _respond(
                make_admission_response(
                    uid, False, message=str(e), api_version=api_version
                )
            )

        log.info(
            "Adding tolerations %s to pod %s/%s; patch=%s",
            sorted(delta),
            pod.namespace,
            pod.name,
            patch.decode(),
        )
        return _respond(
            make_admission_response(uid, True, patch, api_version=api_version)
        )

    @bp.route("/validate", methods=["POST"])
    def validate():
        """
        Validating webhook: deny pods that tolerate a target resource they
        never request.
        """
        body = _require_json_body()

        try:
            admission = AdmissionReviewModel.from_json(body)
        except AdmissionDecodeError as e:
            log.warning("Can't decode body on /validate: %s", e)
            return _respond(
                make_admission_response(
                    "", False, message=str(e), api_version=api_version_of(body)
                )
            )

        req = admission.request
        uid = req.uid
        api_version = admission.api_version

        if req.resource != "pods":
            log.info("Skipping validation for resource=%r uid=%s", req.resource, uid)
            return _respond(make_admission_response(uid, True, api_version=api_version))

        try:
            pod = req.pod()
        except AdmissionDecodeError as e:
            log.warning("Could not unmarshal raw object uid=%s: %s", uid, e)
            return _respond(
                make_admission_response(
                    uid, False, message=str(e), api_version=api_version
                )
            )

        forbidden = forbidden_toleration_keys(pod, registry.snapshot())
        if forbidden:
            message = (
                "Forbidden toleration usage: pod tolerates target resource(s) "
                f"it does not request: {', '.join(forbidden)}"
            )
            log.info("Denying pod %s/%s: %s", pod.namespace, pod.name, message)
            return _respond(
                make_admission_response(
                    uid, False, message=message, api_version=api_version
                )
            )

        return _respond(make_admission_response(uid, True, api_version=api_version))

    return bp
