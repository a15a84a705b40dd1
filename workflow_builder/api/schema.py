from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.errors import SchemaError


class StepDetail(BaseModel):
    """A condition step as the store returns it."""
    id: int
    name: str = ""
    description: Optional[str] = ""
    order: int = 0
    left_expression: str = ""
    operation: str = "=="
    right_expression: str = ""
    if_true_action: str = "complete_success"
    if_true_action_data: Dict[str, Any] = Field(default_factory=dict)
    if_false_action: str = "complete_failure"
    if_false_action_data: Dict[str, Any] = Field(default_factory=dict)
    failure_message: Optional[str] = None
    is_active: bool = True
    referenced_datasources_left: List[str] = Field(default_factory=list)
    referenced_datasources_right: List[str] = Field(default_factory=list)
    x: Optional[float] = None
    y: Optional[float] = None

    model_config = ConfigDict(extra="ignore")

    @property
    def has_position(self) -> bool:
        return self.x is not None and self.y is not None


class WorkflowResponse(BaseModel):
    id: int
    name: str = ""
    description: Optional[str] = ""
    execution_point: str = ""
    status: str = "draft"
    is_default: bool = True
    initial_step: Optional[int] = None
    new_step_id: int = 1
    steps: List[StepDetail] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class StepPayload(BaseModel):
    """Full field set of a step sent to bulk create."""
    id: int
    name: str
    description: str = ""
    order: int
    x: float
    y: float
    left_expression: str = ""
    operation: str = "=="
    right_expression: str = ""
    if_true_action: str
    if_true_action_data: Dict[str, Any] = Field(default_factory=dict)
    if_false_action: str
    if_false_action_data: Dict[str, Any] = Field(default_factory=dict)
    failure_message: str = ""
    is_active: bool = True


class BulkCreateRequest(BaseModel):
    workflow_id: int
    new_step_id: int
    steps: List[StepPayload]


class CreatedStep(BaseModel):
    id: Optional[int] = None

    model_config = ConfigDict(extra="allow")


class BulkCreateResponse(BaseModel):
    success: Optional[bool] = None
    message: Optional[str] = None
    created_steps: Optional[List[CreatedStep]] = None
    steps: Optional[List[CreatedStep]] = None
    workflow_id: Optional[int] = None
    created_count: Optional[int] = None
    new_step_id: Optional[int] = None

    model_config = ConfigDict(extra="ignore")

    @property
    def created(self) -> List[CreatedStep]:
        """Created steps in request order; the store uses either key."""
        return self.created_steps or self.steps or []


class BulkUpdateRequest(BaseModel):
    new_step_id: int
    updates: List[Dict[str, Any]]


class BulkUpdateResponse(BaseModel):
    success: bool = True
    updated_count: Optional[int] = None
    steps: List[Dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class Datasource(BaseModel):
    name: str
    parameters: List[str] = Field(default_factory=list)
    return_type: str = ""
    description: str = ""
    function_name: str = ""


class ExecutionPointInfo(BaseModel):
    code: str
    name: str = ""
    description: str = ""
    category: str = ""


class DatasourcesResponse(BaseModel):
    execution_point: Optional[ExecutionPointInfo] = None
    datasources: List[Datasource] = Field(default_factory=list)
    total_datasources: Optional[int] = None
    usage_example: str = ""
    message: str = ""


ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_model(model: Type[ModelT], raw: Any) -> ModelT:
    """Validate a raw dict against a wire model."""
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise SchemaError(f"{model.__name__} validation error: {e}")
