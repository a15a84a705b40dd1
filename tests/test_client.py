"""Tests for the HTTP step store client."""

import json

import httpx
import pytest

from workflow_builder.api.client import HttpStepStore
from workflow_builder.api.schema import BulkCreateRequest, BulkUpdateRequest, StepPayload
from workflow_builder.core.errors import RemoteStoreError, SchemaError

BASE_URL = "http://store.test/api"


def _store(handler, token="secret"):
    return HttpStepStore(base_url=BASE_URL, token=token, timeout=5, transport=httpx.MockTransport(handler))


def test_fetch_workflow():
    """Test the workflow is fetched from its REST path with the bearer token."""
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={
            "id": 7,
            "name": "Checkout validation",
            "new_step_id": 2,
            "initial_step": 1,
            "steps": [{"id": 1, "name": "Check amount", "order": 1, "x": None, "y": None, "unknown_key": 1}],
        })

    with _store(handler) as store:
        workflow = store.fetch_workflow(7)

    assert seen == {"method": "GET", "path": "/api/validations/workflows/7/", "auth": "Bearer secret"}
    assert workflow.id == 7
    assert workflow.new_step_id == 2
    assert workflow.steps[0].name == "Check amount"
    assert not workflow.steps[0].has_position


def test_bulk_create_posts_request_body():
    """Test bulk create sends workflow id, watermark and full steps."""
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"success": True, "steps": [{"id": 10}], "created_count": 1})

    request = BulkCreateRequest(workflow_id=7, new_step_id=10, steps=[
        StepPayload(id=10, name="A", order=1, x=0, y=0,
                    if_true_action="complete_success", if_false_action="complete_failure"),
    ])
    response = _store(handler).bulk_create(request)

    assert seen["method"] == "POST"
    assert seen["path"] == "/api/validations/steps/bulk_create/"
    assert seen["body"]["workflow_id"] == 7
    assert seen["body"]["new_step_id"] == 10
    assert seen["body"]["steps"][0]["name"] == "A"
    assert [s.id for s in response.created] == [10]
    assert response.created_count == 1


def test_bulk_update_puts_partial_updates():
    """Test bulk update sends the watermark and per-step partial payloads."""
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "updated_count": 1})

    updates = [{"step_id": 1, "workflow_id": 7, "order": 1, "x": 5.0, "y": 6.0}]
    response = _store(handler).bulk_update(BulkUpdateRequest(new_step_id=3, updates=updates))

    assert seen["method"] == "PUT"
    assert seen["body"] == {"new_step_id": 3, "updates": updates}
    assert response.updated_count == 1


def test_delete_step_accepts_empty_response():
    """Test a 204 delete returns nothing."""
    def handler(request):
        assert request.method == "DELETE"
        assert request.url.path == "/api/validations/steps/42/"
        return httpx.Response(204)

    assert _store(handler).delete_step(42) is None


def test_fetch_datasources():
    """Test the datasource catalog for an execution point."""
    def handler(request):
        assert request.url.path == "/api/validations/execution-points/order_checkout/datasources/"
        return httpx.Response(200, json={
            "execution_point": {"code": "order_checkout", "name": "Order checkout"},
            "datasources": [{"name": "order_total", "return_type": "float"}],
            "total_datasources": 1,
        })

    response = _store(handler).fetch_datasources("order_checkout")

    assert response.execution_point.code == "order_checkout"
    assert [d.name for d in response.datasources] == ["order_total"]


def test_http_error_becomes_remote_store_error():
    """Test non-2xx responses carry their status code."""
    def handler(request):
        return httpx.Response(500, json={"detail": "boom"})

    with pytest.raises(RemoteStoreError, match="HTTP 500") as exc_info:
        _store(handler).delete_step(1)

    assert exc_info.value.status_code == 500


def test_transport_error_becomes_remote_store_error():
    """Test connection failures are wrapped too."""
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RemoteStoreError, match="connection refused") as exc_info:
        _store(handler).fetch_workflow(1)

    assert exc_info.value.status_code is None


def test_non_json_success_body_becomes_remote_store_error():
    """Test a 2xx response whose body is not JSON is a store error, not a decode error."""
    def handler(request):
        return httpx.Response(201, text="Created")

    request = BulkCreateRequest(workflow_id=7, new_step_id=3, steps=[])
    with pytest.raises(RemoteStoreError, match="invalid JSON") as exc_info:
        _store(handler).bulk_create(request)

    assert exc_info.value.status_code == 201


def test_malformed_workflow_raises_schema_error():
    """Test a response without a workflow id is rejected."""
    def handler(request):
        return httpx.Response(200, json={"name": "no id"})

    with pytest.raises(SchemaError, match="WorkflowResponse validation error"):
        _store(handler).fetch_workflow(1)


def test_no_token_sends_no_authorization_header():
    """Test the Authorization header is only sent with a token."""
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(204)

    _store(handler, token="").delete_step(1)

    assert seen["auth"] is None
