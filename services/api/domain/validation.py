"""Graph payload validation and structural lint."""

import json
from typing import Any, Dict, List, Mapping, Optional
from shared.constants import (
    MAX_CONFIG_SIZE_BYTES,
    MAX_EDGES_PER_WORKFLOW,
    MAX_NODES_PER_WORKFLOW,
)
from shared.exceptions import GraphValidationError
from shared.serialization import workflow_from_document
from shared.types import NodeKind, Severity, ValidationIssue


def validate_graph_payload(graph: Any) -> None:
    """Rejects graph documents that cannot be stored.

    Checks shape, size limits, node ids and config size. Every node and edge
    must also load into the workflow model, so anything accepted here can be
    opened in an editing session and exported. Connectivity is not checked
    here; that is what ``lint_graph`` reports on.
    """
    if not isinstance(graph, dict):
        raise GraphValidationError("Graph must be a JSON object")

    nodes = graph.get("nodes", [])
    edges = graph.get("edges", graph.get("flow", []))
    if not isinstance(nodes, list):
        raise GraphValidationError("Graph 'nodes' must be a list")
    if not isinstance(edges, list):
        raise GraphValidationError("Graph 'edges' must be a list")

    if len(nodes) > MAX_NODES_PER_WORKFLOW:
        raise GraphValidationError(f"Workflow exceeds maximum node limit: {len(nodes)} > {MAX_NODES_PER_WORKFLOW}")
    if len(edges) > MAX_EDGES_PER_WORKFLOW:
        raise GraphValidationError(f"Workflow exceeds maximum edge limit: {len(edges)} > {MAX_EDGES_PER_WORKFLOW}")

    node_ids = set()
    for node in nodes:
        validate_node_payload(node)
        if node["id"] in node_ids:
            raise GraphValidationError(f"Duplicate node ID: {node['id']}")
        node_ids.add(node["id"])

    for edge in edges:
        if not isinstance(edge, dict):
            raise GraphValidationError("Every edge must be a JSON object")

    workflow_from_document(graph, "")


def validate_node_payload(node: Any) -> None:
    if not isinstance(node, dict):
        raise GraphValidationError("Every node must be a JSON object")
    if not node.get("id"):
        raise GraphValidationError("All nodes must have an 'id' field")

    node_id = node["id"]
    config = node.get("config")
    if config is None:
        return
    if not isinstance(config, dict):
        raise GraphValidationError(f"Node '{node_id}' config must be an object")

    config_size = len(json.dumps(config).encode('utf-8'))
    if config_size > MAX_CONFIG_SIZE_BYTES:
        raise GraphValidationError(
            f"Node '{node_id}' config exceeds size limit: {config_size} > {MAX_CONFIG_SIZE_BYTES} bytes"
        )


def _endpoint_node(endpoint: Any) -> Optional[str]:
    if isinstance(endpoint, Mapping):
        return endpoint.get("nodeId")
    return endpoint


def _is_trigger(node: Mapping[str, Any]) -> bool:
    return node.get("kind") == NodeKind.TRIGGER.value or node.get("type") == NodeKind.TRIGGER.value


def lint_graph(graph: Optional[Dict[str, Any]]) -> List[ValidationIssue]:
    """Structural lint: exactly one trigger node and no edge pointing at a missing node"""
    graph = graph or {}
    nodes = graph.get("nodes") if isinstance(graph.get("nodes"), list) else []
    edges = graph.get("edges", graph.get("flow"))
    edges = edges if isinstance(edges, list) else []
    issues: List[ValidationIssue] = []

    triggers = [n for n in nodes if isinstance(n, dict) and _is_trigger(n)]
    if not triggers:
        issues.append(ValidationIssue(
            code="no-trigger", message="No trigger node present", severity=Severity.ERROR
        ))
    elif len(triggers) > 1:
        issues.append(ValidationIssue(
            code="multiple-triggers", message="Multiple trigger nodes present", severity=Severity.ERROR
        ))

    node_ids = {n.get("id") for n in nodes if isinstance(n, dict)}
    for edge in edges:
        if not isinstance(edge, dict):
            continue
        if _endpoint_node(edge.get("from")) not in node_ids or _endpoint_node(edge.get("to")) not in node_ids:
            issues.append(ValidationIssue(
                code="dangling-edge",
                message=f"Edge {edge.get('id')} references missing node",
                severity=Severity.ERROR,
            ))

    return issues
