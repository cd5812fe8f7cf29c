"""
Unit tests for the structural diff and change score.
"""

import copy
import json
import random
import pytest
from shared.diff import NO_CHANGES, diff, is_condition_node


def node(node_id, kind="action", label=None, config=None, x=0):
    return {
        "id": node_id,
        "kind": kind,
        "label": label or node_id,
        "position": {"x": x, "y": 0},
        "ports": [
            {"id": f"{node_id}:in", "name": "in", "direction": "in", "kind": "control"},
            {"id": f"{node_id}:out", "name": "out", "direction": "out", "kind": "control"},
        ],
        "config": config or {},
    }


def edge(edge_id, source, target):
    return {
        "id": edge_id,
        "from": {"nodeId": source, "portId": f"{source}:out"},
        "to": {"nodeId": target, "portId": f"{target}:in"},
        "kind": "control",
    }


def base_graph():
    return {
        "nodes": [node("A", kind="trigger"), node("B")],
        "edges": [edge("e1", "A", "B")],
    }


def test_identical_graphs_have_no_changes():
    result = diff(base_graph(), base_graph())

    assert result.summary == NO_CHANGES
    assert result.score == 0
    assert not result.has_changes


def test_layout_only_change_is_not_a_change():
    after = base_graph()
    after["nodes"][1]["position"] = {"x": 500, "y": 500}

    assert diff(base_graph(), after).score == 0


def test_duplicated_node_scores_five():
    """Copy-pasting B as B' is one added node"""
    after = base_graph()
    after["nodes"].append(node("B-copy", x=200))

    result = diff(base_graph(), after)

    assert result.summary == "+1 nodes"
    assert result.score == 5
    assert [n["id"] for n in result.details.added_nodes] == ["B-copy"]


def test_label_rename_scores_one():
    after = base_graph()
    after["nodes"][1]["label"] = "Renamed"

    result = diff(base_graph(), after)

    assert result.summary == "modified 1 nodes"
    assert result.score == 1
    assert result.details.changed_nodes[0].id == "B"
    assert result.details.changed_nodes[0].after["label"] == "Renamed"


def test_edge_removal_scores_two():
    after = base_graph()
    after["edges"] = []

    result = diff(base_graph(), after)

    assert result.summary == "-1 edges"
    assert result.score == 2


def test_edges_compare_by_endpoints_not_id():
    """Re-creating the same connection under a new id is not a change"""
    after = base_graph()
    after["edges"][0]["id"] = "e-new"

    assert diff(base_graph(), after).score == 0


def test_condition_change_scores_eight():
    before = {"nodes": [node("C", kind="condition", config={"expression": "x > 1"})]}
    after = copy.deepcopy(before)
    after["nodes"][0]["config"]["expression"] = "x > 2"

    assert diff(before, after).score == 8


def test_split_node_type_counts_as_condition():
    before = {"nodes": [node("S", config={"nodeType": "split", "expression": "a"})]}
    del before["nodes"][0]["kind"]
    after = copy.deepcopy(before)
    after["nodes"][0]["label"] = "Split on a"

    assert diff(before, after).score == 8


def test_config_key_change_scores_four():
    before = {"nodes": [node("H", config={"url": "https://a"})]}
    after = copy.deepcopy(before)
    after["nodes"][0]["config"]["method"] = "GET"

    assert diff(before, after).score == 4


def test_config_value_change_scores_one():
    before = {"nodes": [node("H", config={"url": "https://a"})]}
    after = copy.deepcopy(before)
    after["nodes"][0]["config"]["url"] = "https://b"

    assert diff(before, after).score == 1


def test_mixed_changes_summary_order():
    after = base_graph()
    after["nodes"] = [after["nodes"][0], node("C")]
    after["edges"] = [edge("e2", "A", "C")]

    result = diff(base_graph(), after)

    assert result.summary == "+1 nodes, -1 nodes, +1 edges, -1 edges"
    assert result.score == 5 + 5 + 2 + 2


def test_diff_handles_empty_inputs():
    assert diff(None, None).summary == NO_CHANGES
    assert diff({}, base_graph()).summary == "+2 nodes, +1 edges"


def test_is_condition_node():
    assert is_condition_node({"kind": "condition"})
    assert is_condition_node({"kind": None, "config": {"nodeType": "split"}})
    assert not is_condition_node({"kind": "action"})
    assert not is_condition_node(None)


def test_diff_result_serializes_with_camel_case():
    after = base_graph()
    after["nodes"][1]["label"] = "x"

    data = diff(base_graph(), after).model_dump(by_alias=True)

    assert set(data["details"]) == {
        "addedNodes", "removedNodes", "addedEdges", "removedEdges", "changedNodes"
    }
    assert set(data["details"]["changedNodes"][0]) == {"id", "from", "to"}


def random_graph(rng):
    node_ids = rng.sample([f"N{i}" for i in range(10)], rng.randint(0, 8))
    nodes = [node(node_id, label=f"{node_id}-{rng.randint(0, 2)}") for node_id in node_ids]
    edges = []
    if len(node_ids) >= 2:
        for index in range(rng.randint(0, 10)):
            source, target = rng.sample(node_ids, 2)
            edges.append(edge(f"e{index}", source, target))
    return {"nodes": nodes, "edges": edges}


def as_keys(items):
    return sorted(json.dumps(item, sort_keys=True) for item in items)


@pytest.mark.parametrize("seed", range(10))
def test_diff_counts_are_symmetric(seed):
    rng = random.Random(seed)
    a, b = random_graph(rng), random_graph(rng)

    forward, backward = diff(a, b), diff(b, a)

    assert [n["id"] for n in forward.details.added_nodes] == [n["id"] for n in backward.details.removed_nodes]
    assert [n["id"] for n in forward.details.removed_nodes] == [n["id"] for n in backward.details.added_nodes]
    assert as_keys(forward.details.added_edges) == as_keys(backward.details.removed_edges)
    assert as_keys(forward.details.removed_edges) == as_keys(backward.details.added_edges)
    assert len(forward.details.changed_nodes) == len(backward.details.changed_nodes)
