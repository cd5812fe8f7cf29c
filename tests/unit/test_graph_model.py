"""
Unit tests for graph model mutations: nodes, groups, edges, selection
and viewport.
"""

import pydantic
import pytest
from services.editor.engine.graph_model import GraphModel, bounding_box, snap_to_grid
from shared.exceptions import InvalidEdgeError
from shared.types import Edge, Endpoint, GroupConfig, Padding, Point


def ports(node_id, kind="control"):
    return [
        {"id": f"{node_id}:in", "name": "in", "direction": "in", "kind": kind},
        {"id": f"{node_id}:out", "name": "out", "direction": "out", "kind": kind},
    ]


def build_model(*node_ids):
    model = GraphModel()
    for index, node_id in enumerate(node_ids):
        model.add_node({
            "id": node_id,
            "label": node_id,
            "position": {"x": index * 200, "y": 0},
            "ports": ports(node_id),
        })
    return model


def connect(model, source, target, **extra):
    return model.add_edge({
        "from": {"nodeId": source, "portId": f"{source}:out"},
        "to": {"nodeId": target, "portId": f"{target}:in"},
        **extra,
    })


def test_snap_to_grid():
    assert snap_to_grid(13, 8) == 16
    assert snap_to_grid(11, 8) == 8
    assert snap_to_grid(12, 8) == 16  # halves round up
    assert snap_to_grid(-12, 8) == -8
    assert snap_to_grid(13, None) == 13


def test_bounding_box_includes_padding():
    model = build_model("a", "b")
    position, size = bounding_box(model.workflow.nodes, Padding(top=10, right=10, bottom=10, left=10))

    assert position == Point(x=-10, y=-10)
    assert size.width == 200 + 140 + 20
    assert size.height == 32 + 20


# ── Nodes ──

def test_add_node_applies_defaults():
    model = GraphModel()

    node_id = model.add_node()
    node = model.get_node(node_id)

    assert node.kind.value == "action"
    assert node.label == "Node"
    assert node.size.width == 140
    assert node.config == {}


def test_add_node_notifies_and_touches():
    model = GraphModel()
    model.workflow.updated_at = "2000-01-01T00:00:00+00:00"
    actions = []
    model.subscribe(actions.append)

    model.add_node({"id": "n1"})

    assert actions == ["add_node"]
    assert model.workflow.updated_at != "2000-01-01T00:00:00+00:00"


def test_unsubscribe_stops_notifications():
    model = GraphModel()
    actions = []
    unsubscribe = model.subscribe(actions.append)
    unsubscribe()

    model.add_node()

    assert actions == []


def test_update_node_merges_patch():
    model = build_model("a")

    assert model.update_node("a", {"label": "Renamed", "config": {"nodeType": "http", "url": "https://x"}})
    node = model.get_node("a")

    assert node.label == "Renamed"
    assert node.node_type == "http"
    assert node.config.url == "https://x"
    assert node.position.x == 0


def test_update_missing_node_is_noop():
    model = build_model("a")
    actions = []
    model.subscribe(actions.append)

    assert model.update_node("ghost", {"label": "x"}) is False
    assert actions == []


def test_move_nodes_snaps_to_grid():
    model = build_model("a", "b")

    moved = model.move_nodes(["a"], 13, 3)

    assert moved == 1
    assert model.get_node("a").position == Point(x=16, y=0)
    assert model.get_node("b").position == Point(x=200, y=0)


def test_move_unknown_nodes_is_noop():
    model = build_model("a")
    actions = []
    model.subscribe(actions.append)

    assert model.move_nodes(["ghost"], 10, 10) == 0
    assert actions == []


def test_remove_nodes_drops_incident_edges():
    model = build_model("a", "b", "c")
    connect(model, "a", "b")
    keep = connect(model, "b", "c")
    gone = connect(model, "a", "c")
    model.select_edges([gone])

    removed = model.remove_nodes(["a"])

    assert removed == {"a"}
    assert [e.id for e in model.workflow.edges] == [keep]
    assert model.selection.edges == set()


def test_remove_missing_nodes_is_noop():
    model = build_model("a")

    assert model.remove_nodes(["ghost"]) == set()
    assert len(model.workflow.nodes) == 1


# ── Groups ──

def test_group_nodes_frames_members():
    model = build_model("a", "b")

    group_id = model.group_nodes(["a", "b"], label="Pair")
    group = model.get_node(group_id)

    assert group.is_group
    assert group.config.child_ids == ["a", "b"]
    assert group.config.child_count == 2
    position, size = bounding_box([model.get_node("a"), model.get_node("b")], Padding())
    assert group.position == position
    assert group.size == size


def test_group_needs_two_members():
    model = build_model("a")

    assert model.group_nodes(["a"]) is None
    assert model.group_nodes(["a", "ghost"]) is None
    assert len(model.workflow.nodes) == 1


def test_groups_do_not_nest():
    model = build_model("a", "b", "c")
    group_id = model.group_nodes(["a", "b"])

    assert model.group_nodes([group_id, "c"]) is None


def test_removing_child_dissolves_group_with_one_left():
    model = build_model("a", "b")
    group_id = model.group_nodes(["a", "b"])

    removed = model.remove_nodes(["a"])

    assert removed == {"a", group_id}
    assert [n.id for n in model.workflow.nodes] == ["b"]


def test_removing_child_refits_group_with_two_left():
    model = build_model("a", "b", "c")
    group_id = model.group_nodes(["a", "b", "c"])

    model.remove_nodes(["c"])
    group = model.get_node(group_id)

    assert group.config.child_ids == ["a", "b"]
    assert group.config.child_count == 2
    position, size = bounding_box([model.get_node("a"), model.get_node("b")], group.config.padding)
    assert group.position == position
    assert group.size == size


def test_moving_group_moves_children():
    model = build_model("a", "b")
    group_id = model.group_nodes(["a", "b"])

    model.move_nodes([group_id], 16, 8)

    assert model.get_node("a").position == Point(x=16, y=8)
    assert model.get_node("b").position == Point(x=216, y=8)
    position, _ = bounding_box([model.get_node("a"), model.get_node("b")], Padding())
    assert model.get_node(group_id).position == position


def test_moving_child_refits_group():
    model = build_model("a", "b")
    group_id = model.group_nodes(["a", "b"])

    model.move_nodes(["b"], 0, 80)
    group = model.get_node(group_id)

    assert group.size.height == 80 + 32 + 40 + 32


def test_ungroup_keeps_children():
    model = build_model("a", "b")
    group_id = model.group_nodes(["a", "b"])

    assert model.ungroup_nodes(group_id)
    assert [n.id for n in model.workflow.nodes] == ["a", "b"]
    assert model.ungroup_nodes("a") is False


def test_group_config_requires_children():
    with pytest.raises(pydantic.ValidationError):
        GroupConfig(child_ids=["only-one"])


# ── Edges ──

def test_add_edge_takes_kind_from_source_port():
    model = build_model("a", "b")

    edge_id = connect(model, "a", "b")

    assert model.workflow.get_edge(edge_id).kind.value == "control"


def test_model_edge_without_kind_takes_source_port_kind():
    model = GraphModel()
    for node_id in ("a", "b"):
        model.add_node({"id": node_id, "ports": ports(node_id, kind="data")})
    edge = Edge(source=Endpoint(node_id="a", port_id="a:out"), target=Endpoint(node_id="b", port_id="b:in"))

    edge_id = model.add_edge(edge)

    assert model.workflow.get_edge(edge_id).kind.value == "data"


def test_model_edge_with_explicit_kind_is_checked():
    model = GraphModel()
    for node_id in ("a", "b"):
        model.add_node({"id": node_id, "ports": ports(node_id, kind="data")})
    edge = Edge(source=Endpoint(node_id="a", port_id="a:out"), target=Endpoint(node_id="b", port_id="b:in"),
                kind="control")

    with pytest.raises(InvalidEdgeError):
        model.add_edge(edge)


def test_add_edge_is_idempotent_on_id():
    model = build_model("a", "b")

    first = connect(model, "a", "b", id="e1")
    second = connect(model, "a", "b", id="e1")

    assert first == second == "e1"
    assert len(model.workflow.edges) == 1


def test_add_edge_rejects_missing_node():
    model = build_model("a")

    with pytest.raises(InvalidEdgeError, match="missing node"):
        connect(model, "a", "ghost")


def test_add_edge_rejects_wrong_direction():
    model = build_model("a", "b")

    with pytest.raises(InvalidEdgeError, match="not an 'out' port"):
        model.add_edge({
            "from": {"nodeId": "a", "portId": "a:in"},
            "to": {"nodeId": "b", "portId": "b:in"},
        })


def test_add_edge_rejects_kind_mismatch_unless_loose():
    model = build_model("a")
    model.add_node({"id": "d", "ports": ports("d", kind="data")})

    with pytest.raises(InvalidEdgeError, match="kinds do not match"):
        connect(model, "a", "d")

    edge_id = model.add_edge({
        "from": {"nodeId": "a", "portId": "a:out"},
        "to": {"nodeId": "d", "portId": "d:in"},
    }, loose=True)
    assert model.workflow.get_edge(edge_id) is not None


def test_can_connect():
    model = build_model("a", "b")
    model.add_node({"id": "d", "ports": ports("d", kind="data")})
    out_a = Endpoint(node_id="a", port_id="a:out")

    assert model.can_connect(out_a, Endpoint(node_id="b", port_id="b:in"))
    assert not model.can_connect(out_a, Endpoint(node_id="d", port_id="d:in"))
    assert model.can_connect(out_a, Endpoint(node_id="d", port_id="d:in"), loose=True)
    assert not model.can_connect(out_a, Endpoint(node_id="ghost", port_id="x"))


def test_remove_edges():
    model = build_model("a", "b")
    edge_id = connect(model, "a", "b")

    assert model.remove_edges([edge_id, "ghost"]) == 1
    assert model.remove_edges([edge_id]) == 0
    assert model.workflow.edges == []


# ── Selection and viewport ──

def test_selection_keeps_flags_and_sets_in_step():
    model = build_model("a", "b")

    model.select_nodes(["a", "ghost"])
    assert model.selection.nodes == {"a"}
    assert model.get_node("a").selected

    model.select_nodes(["b"], additive=True)
    assert model.selection.nodes == {"a", "b"}

    model.select_nodes(["b"])
    assert model.selection.nodes == {"b"}
    assert not model.get_node("a").selected

    model.clear_selection()
    assert model.selection.nodes == set()
    assert not model.get_node("b").selected


def test_selection_does_not_notify():
    model = build_model("a")
    actions = []
    model.subscribe(actions.append)

    model.select_nodes(["a"])
    model.pan_by(10, 10)

    assert actions == []


def test_zoom_is_clamped():
    model = GraphModel()

    model.zoom_by(1000)
    assert model.viewport.zoom == 5.0

    model.set_viewport(zoom=0.001)
    assert model.viewport.zoom == 0.1


def test_zoom_keeps_center_fixed():
    model = GraphModel()
    model.set_viewport(zoom=1.0, offset=Point(x=0, y=0))

    model.zoom_by(2.0, center=Point(x=100, y=50))

    assert model.viewport.zoom == 2.0
    assert model.viewport.offset == Point(x=-100, y=-50)


def test_pan_by():
    model = GraphModel()

    model.pan_by(5, -5)

    assert model.viewport.offset == Point(x=5, y=-5)


# ── Snapshots ──

def test_snapshot_round_trip():
    model = build_model("a", "b")
    connect(model, "a", "b")
    model.select_nodes(["a"])
    snapshot = model.snapshot()

    other = GraphModel()
    other.load_snapshot(snapshot)

    assert other.snapshot() == snapshot
    assert other.selection.nodes == {"a"}


def test_replace_workflow_clears_selection():
    model = build_model("a")
    model.select_nodes(["a"])
    replacement = build_model("x").workflow
    replacement.nodes[0].selected = True

    model.replace_workflow(replacement)

    assert model.selection.nodes == set()
    assert not model.get_node("x").selected
