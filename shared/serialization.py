"""
Conversions between the live workflow and its persisted forms.

The graph document ({nodes, edges, meta}) is what the working copy and
version records store. The execution spec is a flatter export used by
runners and by older records whose graph was saved in that shape.
"""

from typing import Any, Dict, Mapping, Optional
import pydantic
from shared.exceptions import GraphValidationError
from shared.types import Edge, Node, NodeKind, Workflow
from shared.utils import generate_id

DEFAULT_SPEC_POSITION = {"x": 100, "y": 100}
DEFAULT_SPEC_SIZE = {"width": 200, "height": 60}


def graph_document(workflow: Workflow) -> Dict[str, Any]:
    """Serializes the document part of a workflow; selection is not persisted"""
    meta: Dict[str, Any] = {"name": workflow.name}
    if workflow.description:
        meta["description"] = workflow.description
    return {
        "nodes": [
            n.model_dump(mode="json", by_alias=True, exclude_none=True, exclude={"selected"})
            for n in workflow.nodes
        ],
        "edges": [
            e.model_dump(mode="json", by_alias=True, exclude_none=True, exclude={"selected"})
            for e in workflow.edges
        ],
        "meta": meta,
    }


def is_execution_spec(graph: Mapping[str, Any]) -> bool:
    return "flow" in graph and "edges" not in graph


def workflow_from_document(
    graph: Optional[Mapping[str, Any]],
    workflow_id: str,
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> Workflow:
    """Loads a stored graph document or execution spec.

    Raises GraphValidationError when the document does not fit the
    workflow model.
    """
    graph = graph or {}
    try:
        if is_execution_spec(graph):
            workflow = from_execution_spec(graph)
            workflow.id = workflow_id
        else:
            meta = graph.get("meta") or {}
            workflow = Workflow(
                id=workflow_id,
                name=meta.get("name") or "Untitled Workflow",
                description=meta.get("description"),
                nodes=[Node.model_validate(n) for n in graph.get("nodes") or []],
                edges=[Edge.model_validate(e) for e in graph.get("edges") or []],
            )
    except pydantic.ValidationError as e:
        raise GraphValidationError(
            f"Graph does not match the workflow model: {e.errors()[0]['msg']}",
            workflow_id,
            error_count=e.error_count(),
        )
    except (AttributeError, KeyError, TypeError) as e:
        raise GraphValidationError(f"Malformed graph document: {e!r}", workflow_id)
    if name:
        workflow.name = name
    if description is not None:
        workflow.description = description
    return workflow


def to_execution_spec(workflow: Workflow) -> Dict[str, Any]:
    nodes = []
    for node in workflow.nodes:
        config = node.model_dump(mode="json", by_alias=True, exclude_none=True)["config"]
        node_type = config.get("nodeType") or config.get("type") or node.kind.value
        nodes.append({"id": node.id, "type": str(node_type), "label": node.label, "config": config})

    flow = []
    for edge in workflow.edges:
        step = {"from": edge.source.node_id, "to": edge.target.node_id, "kind": edge.kind.value}
        if edge.label:
            step["label"] = edge.label
        flow.append(step)

    return {
        "id": workflow.id,
        "name": workflow.name,
        "nodes": nodes,
        "flow": flow,
        "layout": {
            "positions": {n.id: {"x": n.position.x, "y": n.position.y} for n in workflow.nodes},
        },
        "version": 1,
    }


def from_execution_spec(spec: Mapping[str, Any]) -> Workflow:
    """Rebuilds an editable workflow; each node gets one control in/out port pair"""
    positions = (spec.get("layout") or {}).get("positions") or {}
    nodes = []
    for item in spec.get("nodes") or []:
        node_id = item["id"]
        node_type = item.get("type") or NodeKind.ACTION.value
        nodes.append(Node.model_validate({
            "id": node_id,
            "kind": NodeKind.CUSTOM,
            "label": item.get("label") or node_type,
            "position": positions.get(node_id, DEFAULT_SPEC_POSITION),
            "size": DEFAULT_SPEC_SIZE,
            "ports": [
                {"id": f"{node_id}:in", "name": "in", "direction": "in", "kind": "control"},
                {"id": f"{node_id}:out", "name": "out", "direction": "out", "kind": "control"},
            ],
            "config": {**(item.get("config") or {}), "nodeType": node_type},
        }))

    edges = []
    for index, step in enumerate(spec.get("flow") or []):
        edges.append(Edge.model_validate({
            "id": f"{step['from']}->{step['to']}#{index}",
            "from": {"nodeId": step["from"], "portId": f"{step['from']}:out"},
            "to": {"nodeId": step["to"], "portId": f"{step['to']}:in"},
            "kind": step.get("kind") or "control",
            "label": step.get("label"),
        }))

    return Workflow(
        id=spec.get("id") or generate_id(),
        name=spec.get("name") or "Untitled Workflow",
        nodes=nodes,
        edges=edges,
    )
