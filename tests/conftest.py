"""Shared fixtures: an in-memory step store and a small stored workflow."""

import pytest

from workflow_builder.api.client import StepStore
from workflow_builder.api.schema import (
    BulkCreateResponse,
    BulkUpdateResponse,
    CreatedStep,
    Datasource,
    DatasourcesResponse,
    WorkflowResponse,
)
from workflow_builder.core.errors import RemoteStoreError
from workflow_builder.presentation.adapter import load_graph


class FakeStepStore(StepStore):
    """Records every call; methods named in `fail` raise RemoteStoreError."""

    def __init__(self, workflow=None, datasources=None):
        self.workflow = workflow
        self.datasources = datasources or []
        self.calls = []
        self.fail = set()
        self.hooks = {}

    def _call(self, method, arg):
        self.calls.append((method, arg))
        if method in self.hooks:
            self.hooks[method]()
        if method in self.fail:
            raise RemoteStoreError(f"{method} failed with HTTP 500", status_code=500)

    def calls_to(self, method):
        return [arg for name, arg in self.calls if name == method]

    def fetch_workflow(self, workflow_id):
        self._call("fetch_workflow", workflow_id)
        return self.workflow

    def bulk_create(self, request):
        self._call("bulk_create", request)
        ids = [step.id for step in request.steps]
        return BulkCreateResponse(
            success=True,
            created_steps=[CreatedStep(id=step_id) for step_id in ids],
            created_count=len(ids),
            new_step_id=max(ids) + 1,
        )

    def bulk_update(self, request):
        self._call("bulk_update", request)
        return BulkUpdateResponse(success=True, updated_count=len(request.updates), steps=request.updates)

    def delete_step(self, step_id):
        self._call("delete_step", step_id)

    def fetch_datasources(self, execution_point):
        self._call("fetch_datasources", execution_point)
        return DatasourcesResponse(datasources=self.datasources)


def make_workflow(**overrides):
    """Two stored steps: amount check proceeds to a country check on true."""
    raw = {
        "id": 7,
        "name": "Checkout validation",
        "description": "Validate an order before checkout",
        "execution_point": "order_checkout",
        "status": "draft",
        "is_default": True,
        "initial_step": 1,
        "new_step_id": 3,
        "steps": [
            {
                "id": 1,
                "name": "Check amount",
                "order": 1,
                "left_expression": "{{order_total}}",
                "operation": ">",
                "right_expression": "0",
                "if_true_action": "proceed_to_step_by_id",
                "if_true_action_data": {"next_step_id": 2, "note": "Amount ok"},
                "if_false_action": "complete_failure",
                "if_false_action_data": {"error": "Amount must be positive"},
                "failure_message": "Amount must be positive",
                "is_active": True,
                "x": 500,
                "y": 80,
            },
            {
                "id": 2,
                "name": "Check country",
                "order": 2,
                "left_expression": "{{country}}",
                "operation": "in",
                "right_expression": '["US","CA"]',
                "if_true_action": "complete_success",
                "if_true_action_data": {"message": "Approved"},
                "if_false_action": "complete_failure",
                "if_false_action_data": {"error": "Unsupported country"},
                "failure_message": "Unsupported country",
                "is_active": True,
                "x": 150,
                "y": 640,
            },
        ],
    }
    raw.update(overrides)
    return WorkflowResponse.model_validate(raw)


def make_shared_target_workflow():
    """Steps 1 and 3 both proceed to step 2 on true."""
    workflow = make_workflow(new_step_id=4)
    again = workflow.steps[0].model_copy(update={"id": 3, "order": 3, "name": "Check again", "x": 900, "y": 80}, deep=True)
    workflow.steps.append(again)
    return workflow


def make_both_branches_workflow():
    """Step 1 proceeds to step 2 on true and on false."""
    workflow = make_workflow()
    workflow.steps[0] = workflow.steps[0].model_copy(update={
        "if_false_action": "proceed_to_step_by_id",
        "if_false_action_data": {"next_step_id": 2, "note": "Check country anyway"},
    }, deep=True)
    return workflow


CATALOG = [
    Datasource(name="order_total", return_type="float", description="Order total including tax"),
    Datasource(name="country", return_type="str", description="Shipping country code"),
    Datasource(name="customer_tier", return_type="str", description="Loyalty tier"),
]


@pytest.fixture
def workflow():
    return make_workflow()


@pytest.fixture
def store(workflow):
    return FakeStepStore(workflow, CATALOG)


@pytest.fixture
def loaded(workflow):
    """(graph, snapshot) for the stored two-step workflow."""
    return load_graph(workflow)
