"""
Layout Engine
Positions condition steps that arrive without stored coordinates.

The layout is a breadth-first tree walk from the workflow's initial step:
true branches fan out to the left, false branches to the right, and the
horizontal spread shrinks by DECAY per level so deep trees stay compact.
Steps the walk never reaches are stacked below the deepest row.
"""
from collections import deque
from dataclasses import dataclass
from typing import Dict, Hashable, List, Optional, Sequence

from ..core.logging import get_logger
from ..graph.model import GraphModel
from ..graph.models import Branch, ConditionStep, Position, TerminalNode

logger = get_logger(__name__)


# ============================================================================
# LAYOUT CONSTANTS
# ============================================================================

CONDITION_NODE_HEIGHT = 160
ACTION_NODE_HEIGHT = 100
ACTION_NODE_OFFSET_X = 280
ACTION_NODE_OFFSET_Y = 180
MIN_VERTICAL_GAP = 120

ORIGIN_X = 500
ORIGIN_Y = 80

BRANCH_SPACING = 350
MIN_BRANCH_SPACING = 200
DECAY = 0.7

DISCONNECTED_SPACING_X = 400

PLAIN_SLOT = CONDITION_NODE_HEIGHT + MIN_VERTICAL_GAP
TERMINAL_SLOT = CONDITION_NODE_HEIGHT + ACTION_NODE_OFFSET_Y + ACTION_NODE_HEIGHT + MIN_VERTICAL_GAP


@dataclass(frozen=True)
class LayoutStep:
    """ What the layout needs to know about one condition step """
    key: Hashable
    true_target: Optional[Hashable] = None
    false_target: Optional[Hashable] = None
    has_terminal_child: bool = False
    position: Optional[Position] = None


def _slot_below(parent: Optional[LayoutStep]) -> float:
    """Vertical distance from a parent row to its child row."""
    if parent is None:
        return 0
    return TERMINAL_SLOT if parent.has_terminal_child else PLAIN_SLOT


def branch_spacing(level: int) -> float:
    return max(BRANCH_SPACING * DECAY ** level, MIN_BRANCH_SPACING)


def compute_layout(steps: Sequence[LayoutStep], initial: Optional[Hashable] = None) -> Dict[Hashable, Position]:
    """
    Compute a position for every step.

    Steps with a stored position keep it unchanged. The result depends only on
    the arguments: the same steps in the same order always produce the same
    coordinates. A step reached a second time (a branch pointing back to an
    ancestor) keeps the position of its first visit.

    Args:
        steps: condition steps in workflow order
        initial: key of the entry step; falls back to the first step

    Returns:
        Mapping of step key to position
    """
    by_key = {step.key: step for step in steps}
    if not steps:
        return {}
    root = initial if initial in by_key else steps[0].key

    computed: Dict[Hashable, Position] = {}
    level_y: Dict[int, float] = {0: ORIGIN_Y}
    max_level = 0

    queue = deque([(root, 0, 0.0, None)])
    while queue:
        key, level, x_offset, parent_key = queue.popleft()
        if key in computed:
            continue
        step = by_key[key]

        max_level = max(max_level, level)
        y = level_y.get(level)
        if y is None:
            y = level_y.get(level - 1, ORIGIN_Y) + _slot_below(by_key.get(parent_key))
            level_y[level] = y

        computed[key] = Position(ORIGIN_X + x_offset, y)

        spacing = branch_spacing(level)
        for target, shift in ((step.true_target, -spacing), (step.false_target, spacing)):
            if target is not None and target in by_key and target not in computed:
                queue.append((target, level + 1, x_offset + shift, key))

    last_y = max(level_y.values())
    disconnected_x = ORIGIN_X
    for step in steps:
        if step.key in computed:
            continue
        last_y += TERMINAL_SLOT
        computed[step.key] = Position(disconnected_x, last_y)
        disconnected_x += DISCONNECTED_SPACING_X

    logger.debug(f"Layout computed for {len(computed)} steps ({max_level + 1} levels)")

    return {
        step.key: step.position if step.position is not None else computed[step.key]
        for step in steps
    }


def terminal_offset(anchor: Position, branch: Branch) -> Position:
    """Where a terminal hanging off a step's branch is drawn."""
    dx = -ACTION_NODE_OFFSET_X if branch is Branch.TRUE else ACTION_NODE_OFFSET_X
    return Position(anchor.x + dx, anchor.y + ACTION_NODE_OFFSET_Y)


def layout_steps_from_graph(graph: GraphModel) -> List[LayoutStep]:
    steps: List[LayoutStep] = []
    for step in graph.condition_steps():
        targets = {}
        has_terminal = False
        for branch in Branch:
            edge = graph.outgoing(step.node_id, branch)
            if not edge:
                continue
            target = graph.get_node(edge.target)
            if isinstance(target, TerminalNode):
                has_terminal = True
            nxt = graph.next_step(step.node_id, branch)
            targets[branch] = nxt.node_id if nxt else None
        steps.append(LayoutStep(
            key=step.node_id,
            true_target=targets.get(Branch.TRUE),
            false_target=targets.get(Branch.FALSE),
            has_terminal_child=has_terminal,
            position=step.position,
        ))
    return steps


def step_positions(graph: GraphModel) -> Dict[str, Position]:
    """Position of every condition step, computing the missing ones without touching the graph."""
    steps = graph.condition_steps()
    if all(step.position is not None for step in steps):
        return {step.node_id: step.position for step in steps}

    initial = None
    if graph.workflow.initial_step is not None:
        entry = graph.find_by_step_id(graph.workflow.initial_step)
        initial = entry.node_id if entry else None
    return compute_layout(layout_steps_from_graph(graph), initial)


def layout_graph(graph: GraphModel) -> GraphModel:
    """
    Fill in missing positions in a graph in place.

    Condition steps are laid out with compute_layout; terminal nodes without
    a position are placed beside the step whose branch leads into them.
    """
    positions = step_positions(graph)
    for step in graph.condition_steps():
        if step.position is None:
            step.position = positions[step.node_id]

    for terminal in graph.terminal_nodes():
        if terminal.position is not None:
            continue
        edge = graph.incoming(terminal.node_id)
        anchor = graph.get_node(edge.source) if edge else None
        if isinstance(anchor, ConditionStep) and anchor.position is not None:
            terminal.position = terminal_offset(anchor.position, edge.branch)
        else:
            terminal.position = Position(ORIGIN_X, ORIGIN_Y)

    return graph
