""" Data models for the condition-step graph """

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union


class Branch(str, Enum):
    TRUE = "true"
    FALSE = "false"

    @property
    def label(self) -> str:
        return "True" if self is Branch.TRUE else "False"


class NodeType(str, Enum):
    CONDITION = "condition"
    SUCCESS = "success"
    FAIL = "fail"


class ActionType(str, Enum):
    PROCEED_TO_STEP_BY_ID = "proceed_to_step_by_id"
    COMPLETE_SUCCESS = "complete_success"
    COMPLETE_FAILURE = "complete_failure"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ActionType"]:
        """Map a wire action name onto the enum ("proceed_to_step" is the legacy spelling)."""
        if value == "proceed_to_step":
            return cls.PROCEED_TO_STEP_BY_ID
        try:
            return cls(value)
        except ValueError:
            return None


class Operator(str, Enum):
    EQ = "=="
    NE = "!="
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    IN = "in"
    NOT_IN = "not_in"
    IN_CONTAIN = "in_contain"
    NOT_IN_CONTAIN = "not_in_contain"
    IN_STARTS_WITH = "in_starts_with"
    NOT_IN_STARTS_WITH = "not_in_starts_with"

    @property
    def is_set_membership(self) -> bool:
        return self in SET_OPERATORS


SET_OPERATORS = frozenset({
    Operator.IN,
    Operator.NOT_IN,
    Operator.IN_CONTAIN,
    Operator.NOT_IN_CONTAIN,
    Operator.IN_STARTS_WITH,
    Operator.NOT_IN_STARTS_WITH,
})


@dataclass(frozen=True)
class Position:
    x: float
    y: float

    def rounded(self) -> "Position":
        return Position(round(self.x, 2), round(self.y, 2))

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass
class Action:
    """ The persisted effect of taking one branch of a condition step """
    type: ActionType
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def proceed(cls, next_step_id: int, note: str) -> "Action":
        return cls(ActionType.PROCEED_TO_STEP_BY_ID, {"next_step_id": next_step_id, "note": note})

    @classmethod
    def success(cls, message: str = "") -> "Action":
        return cls(ActionType.COMPLETE_SUCCESS, {"message": message})

    @classmethod
    def failure(cls, error: str = "") -> "Action":
        return cls(ActionType.COMPLETE_FAILURE, {"error": error})

    @classmethod
    def default_for(cls, branch: Branch) -> "Action":
        return cls.success() if branch is Branch.TRUE else cls.failure()

    @property
    def next_step_id(self) -> Optional[int]:
        if self.type is not ActionType.PROCEED_TO_STEP_BY_ID:
            return None
        value = self.data.get("next_step_id")
        return value if isinstance(value, int) else None


@dataclass
class ConditionStep:
    node_id: str
    step_id: Optional[int] = None
    name: str = ""
    description: str = ""
    position: Optional[Position] = None
    left_expression: str = ""
    operator: str = Operator.EQ.value
    right_expression: str = ""
    if_true_action: Action = field(default_factory=Action.success)
    if_false_action: Action = field(default_factory=Action.failure)
    failure_message: str = ""
    is_active: bool = True

    type: NodeType = field(default=NodeType.CONDITION, init=False)

    def action_for(self, branch: Branch) -> Action:
        return self.if_true_action if branch is Branch.TRUE else self.if_false_action


@dataclass
class TerminalNode:
    """ Presentation-only success/fail endpoint, folded into the owning step's action on save """
    node_id: str
    type: NodeType
    text: str = ""  # message for success, error for fail
    position: Optional[Position] = None

    def __post_init__(self):
        if self.type is NodeType.CONDITION:
            raise ValueError(f"Terminal node {self.node_id} cannot be of type 'condition'")


GraphNode = Union[ConditionStep, TerminalNode]


@dataclass
class Edge:
    edge_id: str
    source: str
    target: str
    branch: Optional[Branch] = None  # None only for a terminal's pass-through edge


@dataclass
class WorkflowMeta:
    """ Workflow-level metadata; passed through untouched apart from the watermark """
    workflow_id: Optional[int] = None
    name: str = ""
    description: str = ""
    execution_point: str = ""
    status: str = "draft"
    is_default: bool = True
    initial_step: Optional[int] = None
    new_step_id: int = 1
