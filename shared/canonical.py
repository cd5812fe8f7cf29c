"""
Canonical form and semantic fingerprint of a graph snapshot.

A snapshot is canonicalized before hashing or diffing: layout and
presentation fields are stripped, every object is key-sorted, and nodes
and edges are put in a fixed order. Two snapshots that differ only in
position, size, selection, array order or key order share one
canonical form and therefore one fingerprint.
"""

import copy
import hashlib
import json
from typing import Any, Dict, Mapping, Tuple, Union
from pydantic import BaseModel

VOLATILE_NODE_FIELDS = ("position", "size", "selected")
VOLATILE_EDGE_FIELDS = ("selected",)
VOLATILE_GRAPH_FIELDS = ("viewport", "selection", "layout", "createdAt", "updatedAt", "version")

GraphLike = Union[Mapping[str, Any], BaseModel, None]


def sort_keys_deep(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: sort_keys_deep(value[key]) for key in sorted(value)}
    if isinstance(value, (list, tuple)):
        return [sort_keys_deep(item) for item in value]
    return value


def edge_key(edge: Mapping[str, Any]) -> str:
    source = edge.get("from")
    target = edge.get("to")
    source = source if isinstance(source, Mapping) else {}
    target = target if isinstance(target, Mapping) else {}
    return (
        f"{source.get('nodeId')}:{source.get('portId')}"
        f"->{target.get('nodeId')}:{target.get('portId')}"
        f":{edge.get('kind') or 'control'}"
    )


def node_sort_key(node: Mapping[str, Any]) -> Tuple[str, str]:
    return str(node.get("id") or ""), str(node.get("kind") or "")


def _tiebreak(item: Mapping[str, Any]) -> str:
    return json.dumps(item, sort_keys=True, default=str)


def _as_plain(graph: GraphLike) -> Dict[str, Any]:
    if graph is None:
        return {}
    if isinstance(graph, BaseModel):
        return graph.model_dump(mode="json", by_alias=True, exclude_none=True)
    return copy.deepcopy(dict(graph))


def _strip(item: Any, fields: Tuple[str, ...]) -> Dict[str, Any]:
    if not isinstance(item, Mapping):
        return {}
    return {key: value for key, value in item.items() if key not in fields}


def normalize(graph: GraphLike) -> Dict[str, Any]:
    """Returns the canonical form of a graph snapshot without touching the input"""
    clone = _as_plain(graph)
    for field in VOLATILE_GRAPH_FIELDS:
        clone.pop(field, None)

    if isinstance(clone.get("nodes"), list):
        nodes = [sort_keys_deep(_strip(node, VOLATILE_NODE_FIELDS)) for node in clone["nodes"]]
        clone["nodes"] = sorted(nodes, key=lambda node: (node_sort_key(node), _tiebreak(node)))

    if isinstance(clone.get("edges"), list):
        edges = [sort_keys_deep(_strip(edge, VOLATILE_EDGE_FIELDS)) for edge in clone["edges"]]
        clone["edges"] = sorted(edges, key=lambda edge: (edge_key(edge), _tiebreak(edge)))

    return sort_keys_deep(clone)


def canonical_json(graph: GraphLike) -> str:
    return json.dumps(
        normalize(graph),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def fingerprint(graph: GraphLike) -> str:
    """SHA-256 of the canonical form; a change detector, not an integrity proof"""
    return hashlib.sha256(canonical_json(graph).encode("utf-8")).hexdigest()
