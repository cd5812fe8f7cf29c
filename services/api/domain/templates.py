"""Static catalog of starter workflows."""

from typing import Any, Dict, List
from shared.serialization import graph_document
from shared.types import Edge, Node, NodeKind, Port, PortDirection, Workflow

TEMPLATE_NODE_SPACING = 220
TEMPLATE_ROW_Y = 120

TEMPLATES: List[Dict[str, Any]] = [
    {
        "id": "customer-support-automation",
        "name": "Customer Support Automation",
        "description": "Automatically route and respond to customer inquiries with AI",
        "category": "Customer Service",
        "complexity": "Beginner",
        "trigger": "Ticket created",
        "actions": ["Helpdesk: Fetch Ticket", "KB: Search", "Email: Draft"],
    },
    {
        "id": "data-pipeline-analytics",
        "name": "Data Pipeline & Analytics",
        "description": "Extract, transform, and load data from multiple sources",
        "category": "Data Processing",
        "complexity": "Advanced",
        "trigger": "Schedule: Nightly",
        "actions": ["Source: Extract", "Transform: Clean", "Warehouse: Load", "Report: Publish"],
    },
    {
        "id": "document-processing",
        "name": "Document Processing",
        "description": "Extract and process information from documents using AI",
        "category": "Document Management",
        "complexity": "Intermediate",
        "trigger": "Document uploaded",
        "actions": ["OCR: Extract Text", "AI: Extract Fields", "Validation: Check"],
    },
    {
        "id": "lead-enrichment-agent",
        "name": "Lead Enrichment Agent",
        "description": "Enrich lead data automatically",
        "category": "Sales",
        "complexity": "Beginner",
        "trigger": "Lead created",
        "actions": ["Enrichment: Lookup", "CRM: Update Lead"],
    },
]

_BY_ID = {template["id"]: template for template in TEMPLATES}


def list_templates() -> List[Dict[str, Any]]:
    return [
        {key: value for key, value in template.items() if key not in ("trigger", "actions")}
        for template in TEMPLATES
    ]


def get_template(template_id: str) -> Dict[str, Any]:
    if template_id not in _BY_ID:
        raise KeyError(template_id)
    return _BY_ID[template_id]


def _step(node_id: str, kind: NodeKind, label: str, index: int) -> Node:
    ports = [Port(id=f"{node_id}:out", name="out", direction=PortDirection.OUT)]
    if kind != NodeKind.TRIGGER:
        ports.insert(0, Port(id=f"{node_id}:in", name="in", direction=PortDirection.IN))
    return Node(
        id=node_id,
        kind=kind,
        label=label,
        position={"x": 80 + index * TEMPLATE_NODE_SPACING, "y": TEMPLATE_ROW_Y},
        ports=ports,
    )


def build_template_graph(template_id: str) -> Dict[str, Any]:
    """Expands a template into a trigger followed by a chain of actions"""
    template = get_template(template_id)
    nodes = [_step("trigger", NodeKind.TRIGGER, template["trigger"], 0)]
    for index, action in enumerate(template["actions"], start=1):
        nodes.append(_step(f"action-{index}", NodeKind.ACTION, action, index))

    edges = [
        Edge(
            id=f"{previous.id}->{current.id}",
            source={"nodeId": previous.id, "portId": f"{previous.id}:out"},
            target={"nodeId": current.id, "portId": f"{current.id}:in"},
        )
        for previous, current in zip(nodes, nodes[1:])
    ]
    workflow = Workflow(name=template["name"], description=template["description"], nodes=nodes, edges=edges)
    return graph_document(workflow)
