"""Workflow CRUD on top of the record store."""

import copy
import logging
from typing import Any, Dict, List, Optional
from services.api.domain.templates import build_template_graph
from services.api.domain.validation import lint_graph, validate_graph_payload
from shared.constants import TEMP_ID_PREFIX
from shared.exceptions import GraphValidationError, ValidationError, WorkflowNotFoundError
from shared.serialization import (
    graph_document,
    is_execution_spec,
    to_execution_spec,
    workflow_from_document,
)
from shared.types import ValidationIssue, WorkflowRecord, WorkflowStatus, empty_graph
from shared.utils import generate_id, utc_timestamp


class WorkflowService:

    def __init__(self, store):
        self.store = store

    def create(
        self,
        name: str,
        description: Optional[str] = None,
        graph: Optional[Dict[str, Any]] = None,
        node_overrides: Optional[Dict[str, Any]] = None,
        status: Optional[WorkflowStatus] = None,
        template_id: Optional[str] = None,
    ) -> WorkflowRecord:
        if graph is None and template_id:
            try:
                graph = build_template_graph(template_id)
            except KeyError:
                raise ValidationError(f"Unknown template: {template_id}", template_id=template_id)
        graph = graph if graph is not None else empty_graph()
        validate_graph_payload(graph)

        record = WorkflowRecord(
            name=name,
            description=description,
            graph=graph,
            node_overrides=node_overrides or {},
            status=status or WorkflowStatus.DRAFT,
        )
        self.store.save_workflow(record)
        logging.info(
            "Workflow created",
            extra={"workflow_id": record.id, "template_id": template_id}
        )
        return record

    def get(self, workflow_id: str) -> WorkflowRecord:
        record = self.store.get_workflow(workflow_id)
        if record is None:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found", workflow_id)
        return record

    def list(self) -> List[WorkflowRecord]:
        return self.store.list_workflows()

    def update(
        self,
        workflow_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        graph: Optional[Dict[str, Any]] = None,
        node_overrides: Optional[Dict[str, Any]] = None,
        status: Optional[WorkflowStatus] = None,
    ) -> WorkflowRecord:
        """Applies a partial update; content changes bump the record version"""
        record = self.get(workflow_id)
        if graph is not None:
            validate_graph_payload(graph)

        content_changed = False
        if name is not None:
            record.name = name
            content_changed = True
        if description is not None:
            record.description = description
            content_changed = True
        if graph is not None:
            record.graph = graph
            content_changed = True
        if node_overrides is not None:
            record.node_overrides = node_overrides
            content_changed = True
        if status is not None:
            record.status = status

        if content_changed:
            record.version += 1
        record.updated_at = utc_timestamp()
        self.store.save_workflow(record)
        logging.info(
            "Workflow updated",
            extra={"workflow_id": workflow_id, "record_version": record.version}
        )
        return record

    def update_status(self, workflow_id: str, status: WorkflowStatus) -> WorkflowRecord:
        return self.update(workflow_id, status=status)

    def add_node(self, workflow_id: str, node: Dict[str, Any]) -> str:
        """Appends one node to the stored graph and returns its id.

        Temporary client ids are swapped for server ids. A node whose id is
        already in the graph is left as it is.
        """
        record = self.get(workflow_id)
        graph = self._editable_graph(record)
        node = self._with_server_id(node)
        if any(n.get("id") == node["id"] for n in graph["nodes"]):
            return node["id"]

        graph["nodes"].append(node)
        self.update(workflow_id, graph=graph)
        return node["id"]

    def add_edge(self, workflow_id: str, edge: Dict[str, Any]) -> str:
        """Appends one edge to the stored graph; both endpoints must already exist"""
        record = self.get(workflow_id)
        graph = self._editable_graph(record)
        edge = self._with_server_id(edge)
        node_ids = {n.get("id") for n in graph["nodes"]}
        if _endpoint_node(edge.get("from")) not in node_ids or _endpoint_node(edge.get("to")) not in node_ids:
            raise GraphValidationError("Edge references missing node", workflow_id, edge_id=edge["id"])
        if any(e.get("id") == edge["id"] for e in graph["edges"]):
            return edge["id"]

        graph["edges"].append(edge)
        self.update(workflow_id, graph=graph)
        return edge["id"]

    @staticmethod
    def _with_server_id(item: Dict[str, Any]) -> Dict[str, Any]:
        item = dict(item)
        if not item.get("id") or str(item["id"]).startswith(TEMP_ID_PREFIX):
            item["id"] = generate_id()
        return item

    @staticmethod
    def _editable_graph(record: WorkflowRecord) -> Dict[str, Any]:
        graph = copy.deepcopy(record.graph) or empty_graph()
        if is_execution_spec(graph):
            graph = graph_document(workflow_from_document(graph, record.id, name=record.name))
        graph["nodes"] = [n for n in graph.get("nodes") or [] if isinstance(n, dict)]
        graph["edges"] = [e for e in graph.get("edges") or [] if isinstance(e, dict)]
        return graph

    def duplicate(self, workflow_id: str) -> WorkflowRecord:
        source = self.get(workflow_id)
        record = WorkflowRecord(
            name=f"{source.name} Copy",
            description=source.description,
            graph=copy.deepcopy(source.graph),
            node_overrides=copy.deepcopy(source.node_overrides),
            status=WorkflowStatus.DRAFT,
        )
        self.store.save_workflow(record)
        logging.info(
            "Workflow duplicated",
            extra={"workflow_id": record.id, "source_workflow_id": workflow_id}
        )
        return record

    def delete(self, workflow_id: str) -> None:
        """Removes the workflow along with its versions and working copy"""
        self.get(workflow_id)
        self.store.delete_workflow(workflow_id)
        logging.info("Workflow deleted", extra={"workflow_id": workflow_id})

    def validate(self, workflow_id: str) -> List[ValidationIssue]:
        return lint_graph(self.get(workflow_id).graph)

    def export(self, workflow_id: str) -> Dict[str, Any]:
        record = self.get(workflow_id)
        workflow = workflow_from_document(
            record.graph, record.id, name=record.name, description=record.description
        )
        return to_execution_spec(workflow)


def _endpoint_node(endpoint: Any) -> Optional[str]:
    if isinstance(endpoint, dict):
        return endpoint.get("nodeId")
    return None
