"""Structural diff and change-magnitude score between two graph snapshots."""

from typing import Any, Dict, List, Mapping, Optional
from pydantic import BaseModel, ConfigDict, Field
from shared.canonical import GraphLike, edge_key, normalize
from shared.constants import (
    CONDITION_KINDS,
    SCORE_CONDITION_CHANGED,
    SCORE_CONFIG_STRUCTURE_CHANGED,
    SCORE_EDGE_ADDED,
    SCORE_EDGE_REMOVED,
    SCORE_MINOR_CHANGE,
    SCORE_NODE_ADDED,
    SCORE_NODE_REMOVED,
)

NO_CHANGES = "no changes"


class NodeChange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    before: Dict[str, Any] = Field(alias="from")
    after: Dict[str, Any] = Field(alias="to")


class DiffDetails(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    added_nodes: List[Dict[str, Any]] = Field(default_factory=list, alias="addedNodes")
    removed_nodes: List[Dict[str, Any]] = Field(default_factory=list, alias="removedNodes")
    added_edges: List[Dict[str, Any]] = Field(default_factory=list, alias="addedEdges")
    removed_edges: List[Dict[str, Any]] = Field(default_factory=list, alias="removedEdges")
    changed_nodes: List[NodeChange] = Field(default_factory=list, alias="changedNodes")


class DiffResult(BaseModel):
    summary: str
    score: int
    details: DiffDetails

    @property
    def has_changes(self) -> bool:
        return self.summary != NO_CHANGES


def _node_id(node: Mapping[str, Any]) -> str:
    node_id = node.get("id")
    return "" if node_id is None else str(node_id)


def is_condition_node(node: Optional[Mapping[str, Any]]) -> bool:
    if not node:
        return False
    config = node.get("config") or {}
    kind = node.get("kind") or config.get("nodeType")
    return kind in CONDITION_KINDS


def is_config_structural_change(before: Mapping[str, Any], after: Mapping[str, Any]) -> bool:
    """True when the set of config keys differs, not just their values"""
    return set((before.get("config") or {}).keys()) != set((after.get("config") or {}).keys())


def score_node_change(change: NodeChange) -> int:
    if is_condition_node(change.after):
        return SCORE_CONDITION_CHANGED
    if is_config_structural_change(change.before, change.after):
        return SCORE_CONFIG_STRUCTURE_CHANGED
    return SCORE_MINOR_CHANGE


def summarize(details: DiffDetails) -> str:
    parts = []
    if details.added_nodes:
        parts.append(f"+{len(details.added_nodes)} nodes")
    if details.removed_nodes:
        parts.append(f"-{len(details.removed_nodes)} nodes")
    if details.added_edges:
        parts.append(f"+{len(details.added_edges)} edges")
    if details.removed_edges:
        parts.append(f"-{len(details.removed_edges)} edges")
    if details.changed_nodes:
        parts.append(f"modified {len(details.changed_nodes)} nodes")
    return ", ".join(parts) or NO_CHANGES


def diff(a: GraphLike, b: GraphLike) -> DiffResult:
    """Compares snapshot ``a`` (before) with ``b`` (after) on their canonical forms"""
    before = normalize(a)
    after = normalize(b)
    nodes_a = before.get("nodes") or []
    nodes_b = after.get("nodes") or []
    edges_a = before.get("edges") or []
    edges_b = after.get("edges") or []

    ids_a = {_node_id(n) for n in nodes_a}
    ids_b = {_node_id(n) for n in nodes_b}
    by_id_a: Dict[str, Dict[str, Any]] = {}
    for node in nodes_a:
        by_id_a.setdefault(_node_id(node), node)

    details = DiffDetails(
        added_nodes=[n for n in nodes_b if _node_id(n) not in ids_a],
        removed_nodes=[n for n in nodes_a if _node_id(n) not in ids_b],
    )

    seen = set()
    for node in nodes_b:
        node_id = _node_id(node)
        if node_id not in ids_a or node_id in seen:
            continue
        seen.add(node_id)
        previous = by_id_a[node_id]
        if previous != node:
            details.changed_nodes.append(NodeChange(id=node_id, before=previous, after=node))

    keys_a = {edge_key(e) for e in edges_a}
    keys_b = {edge_key(e) for e in edges_b}
    details.added_edges = [e for e in edges_b if edge_key(e) not in keys_a]
    details.removed_edges = [e for e in edges_a if edge_key(e) not in keys_b]

    score = (
        len(details.added_nodes) * SCORE_NODE_ADDED
        + len(details.removed_nodes) * SCORE_NODE_REMOVED
        + len(details.added_edges) * SCORE_EDGE_ADDED
        + len(details.removed_edges) * SCORE_EDGE_REMOVED
        + sum(score_node_change(change) for change in details.changed_nodes)
    )

    return DiffResult(summary=summarize(details), score=score, details=details)
