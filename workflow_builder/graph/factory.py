""" Factory for graph nodes and the identifiers they are stored under. """
import re
from typing import Callable, Dict, List, Optional

from .models import Branch, ConditionStep, GraphNode, NodeType, Position, TerminalNode

_CONDITION_ID = re.compile(r"^condition-(\d+)$")


def condition_node_id(step_id: int) -> str:
    return f"condition-{step_id}"


def terminal_node_id(node_type: NodeType, step_id: int, branch: Branch) -> str:
    return f"{node_type.value}-{step_id}-{branch.value}"


def edge_id(source: str, branch: Optional[Branch], target: str) -> str:
    handle = branch.value if branch else "next"
    return f"edge-{source}-{handle}-{target}"


def step_id_from_node_id(node_id: str) -> Optional[int]:
    """Return the step id encoded in a loaded condition node's id, if it follows the convention."""
    match = _CONDITION_ID.match(node_id)
    return int(match.group(1)) if match else None


def conventional_terminal_ids(step_id: int) -> List[str]:
    """Terminal node ids that loading a step with this id can produce."""
    return [
        terminal_node_id(node_type, step_id, branch)
        for node_type in (NodeType.SUCCESS, NodeType.FAIL)
        for branch in (Branch.TRUE, Branch.FALSE)
    ]


def _make_condition(node_id: str, position: Optional[Position], **fields) -> ConditionStep:
    return ConditionStep(node_id=node_id, position=position, **fields)


def _make_success(node_id: str, position: Optional[Position], text: str = "") -> TerminalNode:
    return TerminalNode(node_id=node_id, type=NodeType.SUCCESS, text=text, position=position)


def _make_fail(node_id: str, position: Optional[Position], text: str = "") -> TerminalNode:
    return TerminalNode(node_id=node_id, type=NodeType.FAIL, text=text, position=position)


_NODE_MAP: Dict[NodeType, Callable[..., GraphNode]] = {
    NodeType.CONDITION: _make_condition,
    NodeType.SUCCESS: _make_success,
    NodeType.FAIL: _make_fail,
}


class NodeFactory:
    """ Creates nodes added during an editing session, numbering them per graph. """

    def __init__(self):
        self._created = 0

    def make_node(self, node_type, position: Optional[Position] = None, **fields) -> GraphNode:
        node_type = NodeType(node_type)
        builder = _NODE_MAP.get(node_type)
        if not builder:
            raise ValueError(f"Unsupported node type: {node_type}")

        self._created += 1
        node_id = f"{node_type.value}-new-{self._created}"
        return builder(node_id, position, **fields)

    @property
    def created_count(self) -> int:
        return self._created
