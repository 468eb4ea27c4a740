import json
from typing import Any, Dict, List, Optional

from toleration_webhook.app import create_app
from toleration_webhook.registry import TargetResourceRegistry

GPU = "vendor.com/gpu"
FPGA = "vendor.com/fpga"


def make_client(*targets: str):
	return create_app(TargetResourceRegistry(targets or (GPU, FPGA))).test_client()


def validate_review(uid: str, pod: Any, resource: str = "pods") -> Dict[str, Any]:
	return {
		"apiVersion": "admission.k8s.io/v1",
		"kind": "AdmissionReview",
		"request": {
			"uid": uid,
			"resource": {"group": "", "version": "v1", "resource": resource},
			"operation": "CREATE",
			"object": pod,
		},
	}


def pod_with(requests: Dict[str, str], tolerations: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
	spec: Dict[str, Any] = {"containers": [{"name": "main", "resources": {"requests": requests}}]}
	if tolerations is not None:
		spec["tolerations"] = tolerations
	return {"metadata": {"name": "p", "namespace": "default"}, "spec": spec}


def test_validate_denies_unrequested_toleration():
	client = make_client()
	pod = pod_with({"cpu": "1"}, [{"key": GPU, "operator": "Exists", "effect": "NoExecute"}])
	r = client.post("/validate", json=validate_review("v1", pod))
	assert r.status_code == 200
	body = r.get_json()
	assert body["response"]["uid"] == "v1"
	assert body["response"]["allowed"] is False
	assert GPU in body["response"]["status"]["message"]


def test_validate_names_every_offending_key():
	client = make_client()
	pod = pod_with(
		{GPU: "1"},
		[{"key": GPU, "operator": "Exists"}, {"key": FPGA, "operator": "Exists"}],
	)
	body = client.post("/validate", json=validate_review("v2", pod)).get_json()
	assert body["response"]["allowed"] is False
	message = body["response"]["status"]["message"]
	assert FPGA in message
	assert message.endswith(FPGA)


def test_validate_allows_requested_toleration():
	client = make_client()
	pod = pod_with({GPU: "1"}, [{"key": GPU, "operator": "Exists", "effect": "NoExecute"}])
	body = client.post("/validate", json=validate_review("v3", pod)).get_json()
	assert body["response"]["allowed"] is True
	assert body["response"]["uid"] == "v3"


def test_validate_allows_request_without_toleration():
	# missing tolerations are the mutating webhook's job, not a denial
	client = make_client()
	body = client.post("/validate", json=validate_review("v4", pod_with({GPU: "1"}))).get_json()
	assert body["response"]["allowed"] is True


def test_validate_ignores_non_target_and_wildcard_tolerations():
	client = make_client()
	pod = pod_with(
		{"cpu": "1"},
		[{"operator": "Exists"}, {"key": "dedicated", "operator": "Equal", "value": "x"}],
	)
	body = client.post("/validate", json=validate_review("v5", pod)).get_json()
	assert body["response"]["allowed"] is True


def test_validate_non_pod_resource_passes_through():
	client = make_client()
	r = client.post("/validate", json=validate_review("v6", "{not a pod", resource="deployments"))
	assert r.status_code == 200
	body = r.get_json()
	assert body["response"]["allowed"] is True
	assert body["response"]["uid"] == "v6"


def test_validate_undecodable_pod_denied_with_uid():
	client = make_client()
	body = client.post("/validate", json=validate_review("v7", "{broken")).get_json()
	assert body["response"]["allowed"] is False
	assert body["response"]["uid"] == "v7"
	assert body["response"]["status"]["message"]


def test_validate_non_string_toleration_key_denied_with_uid():
	client = make_client()
	pod = pod_with({"cpu": "1"}, [{"key": {"name": GPU}, "operator": "Exists"}])
	r = client.post("/validate", json=validate_review("v9", pod))
	assert r.status_code == 200
	body = r.get_json()
	assert body["response"]["allowed"] is False
	assert body["response"]["uid"] == "v9"
	assert "key" in body["response"]["status"]["message"]


def test_validate_empty_body_400():
	client = make_client()
	r = client.post("/validate", data=b"", content_type="application/json")
	assert r.status_code == 400
	assert b"empty body" in r.data


def test_validate_wrong_content_type_415():
	client = make_client()
	r = client.post(
		"/validate",
		data=json.dumps(validate_review("v8", pod_with({GPU: "1"}))),
		content_type="application/x-www-form-urlencoded",
	)
	assert r.status_code == 415


def test_validate_get_not_allowed():
	client = make_client()
	assert client.get("/validate").status_code == 405
