"""Tests for the in-memory graph and its edge-cardinality rules."""

import pytest

from workflow_builder.core.errors import GraphInvariantError
from workflow_builder.graph.factory import (
    conventional_terminal_ids,
    edge_id,
    step_id_from_node_id,
)
from workflow_builder.graph.model import GraphModel
from workflow_builder.graph.models import (
    Action,
    ActionType,
    Branch,
    ConditionStep,
    Edge,
    NodeType,
    Operator,
    Position,
    TerminalNode,
)


def _graph_with(*nodes):
    graph = GraphModel()
    for node in nodes:
        graph.add_node(node)
    return graph


def test_add_and_query_nodes():
    """Test nodes are stored in insertion order and split by kind."""
    a = ConditionStep(node_id="condition-1", step_id=1)
    ok = TerminalNode(node_id="success-1-true", type=NodeType.SUCCESS, text="ok")
    b = ConditionStep(node_id="condition-2", step_id=2)
    graph = _graph_with(a, ok, b)

    assert graph.condition_steps() == [a, b]
    assert graph.terminal_nodes() == [ok]
    assert graph.find_by_step_id(2) is b
    assert graph.find_by_step_id(99) is None


def test_duplicate_node_rejected():
    """Test a node id can only be used once."""
    graph = _graph_with(ConditionStep(node_id="condition-1"))

    with pytest.raises(GraphInvariantError, match="Duplicate node id"):
        graph.add_node(ConditionStep(node_id="condition-1"))


def test_terminal_cannot_be_condition():
    """Test terminal nodes only take success/fail types."""
    with pytest.raises(ValueError, match="cannot be of type 'condition'"):
        TerminalNode(node_id="x", type=NodeType.CONDITION)


def test_condition_edge_requires_branch():
    """Test edges out of a condition must name a branch, edges out of terminals must not."""
    a = ConditionStep(node_id="a")
    b = ConditionStep(node_id="b")
    t = TerminalNode(node_id="t", type=NodeType.SUCCESS)
    graph = _graph_with(a, b, t)

    with pytest.raises(GraphInvariantError, match="must name a branch"):
        graph.add_edge(Edge("e1", "a", "b"))
    with pytest.raises(GraphInvariantError, match="cannot name a branch"):
        graph.add_edge(Edge("e2", "t", "b", Branch.TRUE))


def test_second_outgoing_edge_on_branch_rejected():
    """Test a branch holds at most one outgoing edge."""
    graph = _graph_with(ConditionStep(node_id="a"), ConditionStep(node_id="b"), ConditionStep(node_id="c"))
    graph.add_edge(Edge("e1", "a", "b", Branch.TRUE))

    with pytest.raises(GraphInvariantError, match="already has an outgoing true edge"):
        graph.add_edge(Edge("e2", "a", "c", Branch.TRUE))

    # the other branch is free
    graph.add_edge(Edge("e3", "a", "c", Branch.FALSE))
    assert len(graph.edges) == 2


def test_second_incoming_edge_rejected():
    """Test a node holds at most one incoming edge."""
    graph = _graph_with(ConditionStep(node_id="a"), ConditionStep(node_id="b"), ConditionStep(node_id="c"))
    graph.add_edge(Edge("e1", "a", "c", Branch.TRUE))

    with pytest.raises(GraphInvariantError, match="already has an incoming edge"):
        graph.add_edge(Edge("e2", "b", "c", Branch.FALSE))


def test_remove_node_with_edges_refused():
    """Test a node cannot be removed while edges still touch it."""
    graph = _graph_with(ConditionStep(node_id="a"), ConditionStep(node_id="b"))
    graph.add_edge(Edge("e1", "a", "b", Branch.TRUE))

    with pytest.raises(GraphInvariantError, match="still has edges"):
        graph.remove_node("b")

    graph.remove_edge("e1")
    graph.remove_node("b")
    assert not graph.has_node("b")


def test_unknown_lookups_raise_key_error():
    """Test lookups of missing nodes and edges."""
    graph = GraphModel()

    with pytest.raises(KeyError):
        graph.get_node("nope")
    with pytest.raises(KeyError):
        graph.remove_edge("nope")


def test_next_step_looks_through_pass_through_terminal():
    """Test a terminal chained on to a condition leads to that condition."""
    a = ConditionStep(node_id="a")
    b = ConditionStep(node_id="b")
    t = TerminalNode(node_id="t", type=NodeType.SUCCESS, text="go on")
    done = TerminalNode(node_id="done", type=NodeType.FAIL)
    graph = _graph_with(a, b, t, done)
    graph.add_edge(Edge("e1", "a", "t", Branch.TRUE))
    graph.add_edge(Edge("e2", "t", "b"))
    graph.add_edge(Edge("e3", "a", "done", Branch.FALSE))

    assert graph.next_step("a", Branch.TRUE) is b
    assert graph.next_step("a", Branch.FALSE) is None
    assert graph.next_step("b", Branch.TRUE) is None


def test_check_invariants_clean_graph():
    """Test a sound graph reports no problems."""
    graph = _graph_with(ConditionStep(node_id="a"), ConditionStep(node_id="b"))
    graph.add_edge(Edge("e1", "a", "b", Branch.TRUE))

    assert graph.check_invariants() == []


def test_node_id_conventions():
    """Test identifier helpers agree with each other."""
    assert step_id_from_node_id("condition-42") == 42
    assert step_id_from_node_id("condition-new-1") is None
    assert "success-42-true" in conventional_terminal_ids(42)
    assert "fail-42-false" in conventional_terminal_ids(42)
    assert edge_id("condition-1", Branch.FALSE, "fail-1-false") == "edge-condition-1-false-fail-1-false"
    assert edge_id("t", None, "condition-2") == "edge-t-next-condition-2"


def test_factory_numbers_new_nodes_per_graph():
    """Test session-created nodes get deterministic ids."""
    graph = GraphModel()
    first = graph.factory.make_node(NodeType.CONDITION, Position(0, 0), name="A")
    second = graph.factory.make_node("success", text="ok")

    assert first.node_id == "condition-new-1"
    assert first.name == "A"
    assert second.node_id == "success-new-2"
    assert GraphModel().factory.make_node(NodeType.FAIL).node_id == "fail-new-1"


def test_action_helpers():
    """Test action constructors and the legacy action spelling."""
    assert ActionType.parse("proceed_to_step") is ActionType.PROCEED_TO_STEP_BY_ID
    assert ActionType.parse("teleport") is None
    assert Action.default_for(Branch.TRUE) == Action(ActionType.COMPLETE_SUCCESS, {"message": ""})
    assert Action.default_for(Branch.FALSE) == Action(ActionType.COMPLETE_FAILURE, {"error": ""})
    assert Action.proceed(5, "next").next_step_id == 5
    assert Action.success("ok").next_step_id is None


def test_set_operators():
    """Test which operators take a list on the right-hand side."""
    assert Operator.IN.is_set_membership
    assert Operator.NOT_IN_STARTS_WITH.is_set_membership
    assert not Operator.CONTAINS.is_set_membership
    assert not Operator.EQ.is_set_membership


def test_position_rounding():
    """Test positions round to two decimals."""
    assert Position(10.456, -3.001).rounded() == Position(10.46, -3.0)


def test_held_branch_lifecycle():
    """Test a held branch is released by a new edge on it and forgotten with its node."""
    graph = _graph_with(
        ConditionStep(node_id="condition-1", step_id=1),
        ConditionStep(node_id="condition-2", step_id=2),
    )

    graph.hold_branch("condition-1", Branch.TRUE)
    graph.hold_branch("condition-1", Branch.FALSE)
    assert graph.held_branches() == [("condition-1", Branch.FALSE), ("condition-1", Branch.TRUE)]

    graph.add_edge(Edge(edge_id("condition-1", Branch.TRUE, "condition-2"), "condition-1", "condition-2", Branch.TRUE))
    assert not graph.is_held("condition-1", Branch.TRUE)
    assert graph.is_held("condition-1", Branch.FALSE)

    with pytest.raises(GraphInvariantError):
        graph.hold_branch("condition-1", Branch.TRUE)

    graph.remove_edge(edge_id("condition-1", Branch.TRUE, "condition-2"))
    graph.remove_node("condition-1")
    assert graph.held_branches() == []
