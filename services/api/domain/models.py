"""API request/response models."""

from pydantic import Field
from typing import Optional, List, Dict, Any
from shared.types import ValidationIssue, VersionRecord, WireModel, WorkflowStatus


class CreateWorkflowRequest(WireModel):
    """Request body for creating a new workflow"""
    name: str = Field(min_length=1)
    description: Optional[str] = None
    graph: Optional[Dict[str, Any]] = None
    node_overrides: Optional[Dict[str, Any]] = Field(default=None, alias="nodeOverrides")
    status: Optional[WorkflowStatus] = None
    template_id: Optional[str] = Field(default=None, alias="templateId")


class UpdateWorkflowRequest(WireModel):
    """Partial update; omitted fields are left untouched"""
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    graph: Optional[Dict[str, Any]] = None
    node_overrides: Optional[Dict[str, Any]] = Field(default=None, alias="nodeOverrides")
    status: Optional[WorkflowStatus] = None


class StatusRequest(WireModel):
    status: WorkflowStatus


class NodeUpsertRequest(WireModel):
    node: Dict[str, Any]


class EdgeUpsertRequest(WireModel):
    edge: Dict[str, Any]


class GraphItemResponse(WireModel):
    id: str


class CreateVersionRequest(WireModel):
    label: Optional[str] = None


class WorkingCopyRequest(WireModel):
    graph: Dict[str, Any]


class MaybeCommitRequest(WireModel):
    min_interval_sec: Optional[float] = Field(default=None, ge=0, alias="minIntervalSec")
    threshold: Optional[int] = Field(default=None, ge=0)


class CommitRequest(WireModel):
    message: Optional[str] = None
    description: Optional[str] = None


class SemanticHashResponse(WireModel):
    semantic_hash: str = Field(alias="semanticHash")


class ValidateResponse(WireModel):
    issues: List[ValidationIssue]


class VersionSummary(WireModel):
    """Version listing entry; the graph is fetched separately"""
    id: str
    label: Optional[str] = None
    name: str
    description: Optional[str] = None
    created_at: str = Field(alias="createdAt")
    version_number: int = Field(alias="versionNumber")
    semantic_hash: str = Field(alias="semanticHash")
    diff_summary: Optional[str] = Field(default=None, alias="diffSummary")

    @classmethod
    def from_record(cls, record: VersionRecord) -> "VersionSummary":
        return cls.model_validate(record.model_dump(exclude={"graph", "workflow_id"}))


class DeleteResponse(WireModel):
    deleted: bool
    id: str
