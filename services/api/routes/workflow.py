"""Workflow API routes."""

import logging
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from services.api.domain.models import (
    CommitRequest,
    CreateVersionRequest,
    CreateWorkflowRequest,
    DeleteResponse,
    EdgeUpsertRequest,
    GraphItemResponse,
    MaybeCommitRequest,
    NodeUpsertRequest,
    SemanticHashResponse,
    StatusRequest,
    UpdateWorkflowRequest,
    ValidateResponse,
    VersionSummary,
    WorkingCopyRequest,
)
from services.api.domain.templates import list_templates
from services.api.domain.validation import validate_graph_payload
from services.api.domain.versioning import VersioningController
from services.api.domain.workflow_service import WorkflowService
from services.api.infra.redis_store import RedisStore
from shared.constants import DEFAULT_COMMIT_MIN_INTERVAL_SECONDS, DEFAULT_COMMIT_THRESHOLD
from shared.diff import DiffResult
from shared.exceptions import (
    PersistenceError,
    ValidationError,
    VersionNotFoundError,
    WorkflowError,
    WorkflowNotFoundError,
)
from shared.logging_config import set_workflow_id
from shared.types import (
    CommitResult,
    RestoreResult,
    VersionRecord,
    WorkflowRecord,
    WorkingCopy,
)


router = APIRouter()
_store: Optional[RedisStore] = None


def get_store() -> RedisStore:
    global _store
    if _store is None:
        _store = RedisStore()
    return _store


def get_workflow_service(store: RedisStore = Depends(get_store)) -> WorkflowService:
    return WorkflowService(store)


def get_versioning_controller(store: RedisStore = Depends(get_store)) -> VersioningController:
    return VersioningController(store)


def to_http_error(e: WorkflowError) -> HTTPException:
    """Maps domain errors onto status codes"""
    if isinstance(e, (WorkflowNotFoundError, VersionNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    if isinstance(e, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    if isinstance(e, PersistenceError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)
    logging.error("Unhandled workflow error", extra=e.to_dict())
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)


# ── Workflows ──

@router.get("/workflows", response_model=List[WorkflowRecord])
async def list_workflows(service: WorkflowService = Depends(get_workflow_service)):
    try:
        return service.list()
    except WorkflowError as e:
        raise to_http_error(e)


@router.get("/workflows/templates")
async def get_templates() -> List[Dict[str, Any]]:
    return list_templates()


@router.post("/workflows", response_model=WorkflowRecord, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    request: CreateWorkflowRequest,
    service: WorkflowService = Depends(get_workflow_service),
):
    try:
        return service.create(
            name=request.name,
            description=request.description,
            graph=request.graph,
            node_overrides=request.node_overrides,
            status=request.status,
            template_id=request.template_id,
        )
    except WorkflowError as e:
        raise to_http_error(e)


@router.get("/workflows/{workflow_id}", response_model=WorkflowRecord)
async def get_workflow(workflow_id: str, service: WorkflowService = Depends(get_workflow_service)):
    set_workflow_id(workflow_id)
    try:
        return service.get(workflow_id)
    except WorkflowError as e:
        raise to_http_error(e)


@router.put("/workflows/{workflow_id}", response_model=WorkflowRecord)
async def update_workflow(
    workflow_id: str,
    request: UpdateWorkflowRequest,
    service: WorkflowService = Depends(get_workflow_service),
):
    set_workflow_id(workflow_id)
    try:
        return service.update(
            workflow_id,
            name=request.name,
            description=request.description,
            graph=request.graph,
            node_overrides=request.node_overrides,
            status=request.status,
        )
    except WorkflowError as e:
        raise to_http_error(e)


@router.delete("/workflows/{workflow_id}", response_model=DeleteResponse)
async def delete_workflow(workflow_id: str, service: WorkflowService = Depends(get_workflow_service)):
    set_workflow_id(workflow_id)
    try:
        service.delete(workflow_id)
    except WorkflowError as e:
        raise to_http_error(e)
    return DeleteResponse(deleted=True, id=workflow_id)


@router.post("/workflows/{workflow_id}/duplicate", response_model=WorkflowRecord, status_code=status.HTTP_201_CREATED)
async def duplicate_workflow(workflow_id: str, service: WorkflowService = Depends(get_workflow_service)):
    set_workflow_id(workflow_id)
    try:
        return service.duplicate(workflow_id)
    except WorkflowError as e:
        raise to_http_error(e)


@router.post("/workflows/{workflow_id}/status", response_model=WorkflowRecord)
async def update_status(
    workflow_id: str,
    request: StatusRequest,
    service: WorkflowService = Depends(get_workflow_service),
):
    set_workflow_id(workflow_id)
    try:
        return service.update_status(workflow_id, request.status)
    except WorkflowError as e:
        raise to_http_error(e)


@router.post("/workflows/{workflow_id}/nodes", response_model=GraphItemResponse, status_code=status.HTTP_201_CREATED)
async def add_node(
    workflow_id: str,
    request: NodeUpsertRequest,
    service: WorkflowService = Depends(get_workflow_service),
):
    set_workflow_id(workflow_id)
    try:
        return GraphItemResponse(id=service.add_node(workflow_id, request.node))
    except WorkflowError as e:
        raise to_http_error(e)


@router.post("/workflows/{workflow_id}/edges", response_model=GraphItemResponse, status_code=status.HTTP_201_CREATED)
async def add_edge(
    workflow_id: str,
    request: EdgeUpsertRequest,
    service: WorkflowService = Depends(get_workflow_service),
):
    set_workflow_id(workflow_id)
    try:
        return GraphItemResponse(id=service.add_edge(workflow_id, request.edge))
    except WorkflowError as e:
        raise to_http_error(e)


@router.post("/workflows/{workflow_id}/validate", response_model=ValidateResponse)
async def validate_workflow(workflow_id: str, service: WorkflowService = Depends(get_workflow_service)):
    set_workflow_id(workflow_id)
    try:
        return ValidateResponse(issues=service.validate(workflow_id))
    except WorkflowError as e:
        raise to_http_error(e)


@router.get("/workflows/{workflow_id}/export")
async def export_workflow(
    workflow_id: str,
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    set_workflow_id(workflow_id)
    try:
        return service.export(workflow_id)
    except WorkflowError as e:
        raise to_http_error(e)


# ── Versions ──

@router.get("/workflows/{workflow_id}/versions", response_model=List[VersionSummary])
async def list_versions(
    workflow_id: str,
    include_auto: bool = Query(default=False, alias="includeAuto"),
    versioning: VersioningController = Depends(get_versioning_controller),
):
    set_workflow_id(workflow_id)
    try:
        return [VersionSummary.from_record(v) for v in versioning.list_versions(workflow_id, include_auto)]
    except WorkflowError as e:
        raise to_http_error(e)


@router.post("/workflows/{workflow_id}/versions", response_model=VersionRecord, status_code=status.HTTP_201_CREATED)
async def create_version(
    workflow_id: str,
    request: Optional[CreateVersionRequest] = None,
    versioning: VersioningController = Depends(get_versioning_controller),
):
    set_workflow_id(workflow_id)
    try:
        return versioning.create_version(workflow_id, request.label if request else None)
    except WorkflowError as e:
        raise to_http_error(e)


@router.get("/workflows/{workflow_id}/versions/{version_id}", response_model=VersionRecord)
async def get_version(
    workflow_id: str,
    version_id: str,
    versioning: VersioningController = Depends(get_versioning_controller),
):
    set_workflow_id(workflow_id)
    try:
        return versioning.get_version(workflow_id, version_id)
    except WorkflowError as e:
        raise to_http_error(e)


@router.post("/workflows/{workflow_id}/versions/{version_id}/restore", response_model=RestoreResult)
async def restore_version(
    workflow_id: str,
    version_id: str,
    versioning: VersioningController = Depends(get_versioning_controller),
):
    set_workflow_id(workflow_id)
    try:
        return versioning.restore_version(workflow_id, version_id)
    except WorkflowError as e:
        raise to_http_error(e)


@router.get("/workflows/{workflow_id}/diff", response_model=DiffResult)
async def diff_versions(
    workflow_id: str,
    from_version: str = Query(alias="from"),
    to_version: Optional[str] = Query(default=None, alias="to"),
    versioning: VersioningController = Depends(get_versioning_controller),
):
    set_workflow_id(workflow_id)
    try:
        return versioning.diff_versions(workflow_id, from_version, to_version)
    except WorkflowError as e:
        raise to_http_error(e)


# ── Working copy and semantic commits ──

@router.get("/workflows/{workflow_id}/working-copy", response_model=WorkingCopy)
async def get_working_copy(
    workflow_id: str,
    versioning: VersioningController = Depends(get_versioning_controller),
):
    set_workflow_id(workflow_id)
    try:
        working_copy = versioning.get_working_copy(workflow_id)
    except WorkflowError as e:
        raise to_http_error(e)
    if working_copy is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND,
                            detail=f"Workflow {workflow_id} not found")
    return working_copy


@router.post("/workflows/{workflow_id}/working-copy", response_model=SemanticHashResponse)
async def save_working_copy(
    workflow_id: str,
    request: WorkingCopyRequest,
    versioning: VersioningController = Depends(get_versioning_controller),
):
    set_workflow_id(workflow_id)
    try:
        validate_graph_payload(request.graph)
        return SemanticHashResponse(semantic_hash=versioning.save_working_copy(workflow_id, request.graph))
    except WorkflowError as e:
        raise to_http_error(e)


@router.post("/workflows/{workflow_id}/maybe-commit", response_model=CommitResult)
async def maybe_commit(
    workflow_id: str,
    request: Optional[MaybeCommitRequest] = None,
    versioning: VersioningController = Depends(get_versioning_controller),
):
    set_workflow_id(workflow_id)
    request = request or MaybeCommitRequest()
    try:
        return versioning.maybe_commit(
            workflow_id,
            min_interval_sec=(
                request.min_interval_sec
                if request.min_interval_sec is not None
                else DEFAULT_COMMIT_MIN_INTERVAL_SECONDS
            ),
            threshold=request.threshold if request.threshold is not None else DEFAULT_COMMIT_THRESHOLD,
        )
    except WorkflowError as e:
        raise to_http_error(e)


@router.post("/workflows/{workflow_id}/commit", response_model=VersionRecord, status_code=status.HTTP_201_CREATED)
async def commit(
    workflow_id: str,
    request: Optional[CommitRequest] = None,
    versioning: VersioningController = Depends(get_versioning_controller),
):
    set_workflow_id(workflow_id)
    request = request or CommitRequest()
    try:
        return versioning.commit_explicit(workflow_id, request.message, request.description)
    except WorkflowError as e:
        raise to_http_error(e)
