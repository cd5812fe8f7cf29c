"""
Versioning controller: working copy, semantic auto-commit, explicit commit
and restore for persisted workflows.

Version records are append-only. Every version that is created becomes
the workflow's active version and its graph becomes the workflow graph.
"""

import logging
import os
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from shared.canonical import fingerprint
from shared.constants import (
    AUTO_VERSION_MARKERS,
    DEFAULT_COMMIT_MIN_INTERVAL_SECONDS,
    DEFAULT_COMMIT_THRESHOLD,
    REVERT_VERSION_PREFIX,
)
from shared.diff import DiffResult, diff
from shared.exceptions import (
    CrossWorkflowRestoreError,
    VersionNotFoundError,
    WorkflowNotFoundError,
)
from shared.types import (
    CommitResult,
    RestoreResult,
    VersionRecord,
    WorkflowRecord,
    WorkingCopy,
)
from shared.utils import parse_timestamp, utc_now


def autocommit_enabled_from_env() -> bool:
    return os.getenv("WORKFLOW_AUTOCOMMIT_ENABLED", "true").strip().lower() in ("1", "true", "yes")


def is_auto_version(version: VersionRecord) -> bool:
    label = (version.label or "").lower()
    return any(marker in label for marker in AUTO_VERSION_MARKERS) or label.startswith(REVERT_VERSION_PREFIX)


class VersioningController:

    def __init__(
        self,
        store,
        autocommit_enabled: Optional[bool] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.autocommit_enabled = (
            autocommit_enabled_from_env() if autocommit_enabled is None else autocommit_enabled
        )
        self._clock = clock

    # ── Working copy ──

    def get_working_copy(self, workflow_id: str) -> Optional[WorkingCopy]:
        """Returns the working copy, seeding it from the workflow graph on first read"""
        working_copy = self.store.get_working_copy(workflow_id)
        if working_copy is not None:
            return working_copy

        workflow = self.store.get_workflow(workflow_id)
        if workflow is None:
            return None
        working_copy = WorkingCopy(
            workflow_id=workflow_id, graph=workflow.graph, updated_at=self._now()
        )
        self.store.put_working_copy(working_copy)
        return working_copy

    def save_working_copy(self, workflow_id: str, graph: Dict[str, Any]) -> str:
        self._require_workflow(workflow_id)
        self.store.put_working_copy(
            WorkingCopy(workflow_id=workflow_id, graph=graph, updated_at=self._now())
        )
        semantic_hash = fingerprint(graph)
        logging.debug(
            "Working copy saved",
            extra={"workflow_id": workflow_id, "semantic_hash": semantic_hash}
        )
        return semantic_hash

    # ── Versions ──

    def list_versions(self, workflow_id: str, include_auto: bool = False) -> List[VersionRecord]:
        """Newest first; autosave and revert entries are hidden unless requested"""
        versions = self.store.list_versions(workflow_id)
        if not include_auto:
            versions = [v for v in versions if not is_auto_version(v)]
        return list(reversed(versions))

    def get_version(self, workflow_id: str, version_id: str) -> VersionRecord:
        version = self.store.get_version(version_id)
        if version is None or version.workflow_id != workflow_id:
            raise VersionNotFoundError(
                f"Version {version_id} not found", workflow_id, version_id=version_id
            )
        return version

    def create_version(self, workflow_id: str, label: Optional[str] = None) -> VersionRecord:
        """Snapshots the working copy, or the workflow graph when there is none"""
        workflow = self._require_workflow(workflow_id)
        working_copy = self.store.get_working_copy(workflow_id)
        graph = working_copy.graph if working_copy is not None else workflow.graph
        return self._append_version(
            workflow,
            graph,
            label=label,
            name=workflow.name,
            description=workflow.description,
            diff_summary=label,
        )

    def maybe_commit(
        self,
        workflow_id: str,
        min_interval_sec: float = DEFAULT_COMMIT_MIN_INTERVAL_SECONDS,
        threshold: int = DEFAULT_COMMIT_THRESHOLD,
    ) -> CommitResult:
        """Commits the working copy only when the change is large enough and old enough.

        Skips when autocommit is disabled, the workflow or working copy is
        missing, the score is below ``threshold``, less than
        ``min_interval_sec`` passed since the head version, or the working
        copy hashes the same as the head.
        """
        if not self.autocommit_enabled:
            return CommitResult(committed=False)
        workflow = self.store.get_workflow(workflow_id)
        if workflow is None:
            return CommitResult(committed=False)
        working_copy = self.store.get_working_copy(workflow_id)
        if working_copy is None:
            return CommitResult(committed=False)

        head = self.store.latest_version(workflow_id)
        head_graph = head.graph if head is not None else workflow.graph
        result = diff(head_graph, working_copy.graph)
        if result.score < threshold:
            return CommitResult(committed=False, summary=result.summary, score=result.score)

        if head is not None:
            elapsed = (self._clock() - parse_timestamp(head.created_at)).total_seconds()
            if elapsed < min_interval_sec:
                return CommitResult(committed=False, summary=result.summary, score=result.score)

        semantic_hash = fingerprint(working_copy.graph)
        if head is not None and semantic_hash == head.semantic_hash:
            return CommitResult(committed=False, summary=result.summary, score=result.score)

        version = self._append_version(
            workflow,
            working_copy.graph,
            label=None,
            name=workflow.name,
            description=workflow.description,
            diff_summary=result.summary,
            semantic_hash=semantic_hash,
        )
        logging.info(
            "Auto-commit created version",
            extra={
                "workflow_id": workflow_id,
                "version_number": version.version_number,
                "score": result.score,
                "summary": result.summary,
            }
        )
        return CommitResult(
            committed=True,
            version_id=version.id,
            version_number=version.version_number,
            summary=result.summary,
            score=result.score,
        )

    def commit_explicit(
        self,
        workflow_id: str,
        message: Optional[str] = None,
        description: Optional[str] = None,
    ) -> VersionRecord:
        """Commits unconditionally; used for user milestones"""
        workflow = self._require_workflow(workflow_id)
        working_copy = self.store.get_working_copy(workflow_id)
        graph = working_copy.graph if working_copy is not None else workflow.graph
        return self._append_version(
            workflow,
            graph,
            label=message,
            name=message or workflow.name,
            description=description if description is not None else workflow.description,
            diff_summary=description,
        )

    def restore_version(self, workflow_id: str, version_id: str) -> RestoreResult:
        """Reverts the workflow to an earlier version by appending a copy of it"""
        version = self.store.get_version(version_id)
        if version is None:
            raise VersionNotFoundError(
                f"Version {version_id} not found", workflow_id, version_id=version_id
            )
        if version.workflow_id != workflow_id:
            raise CrossWorkflowRestoreError(
                f"Version {version_id} belongs to another workflow",
                workflow_id,
                version_id=version_id,
            )
        workflow = self._require_workflow(workflow_id)

        workflow.name = version.name
        workflow.description = version.description
        revert = self._append_version(
            workflow,
            version.graph,
            label=f"Revert to {version.version_number}",
            name=version.name,
            description=version.description,
            diff_summary=f"Reverted to v{version.version_number}",
            semantic_hash=version.semantic_hash,
        )
        self.store.put_working_copy(
            WorkingCopy(workflow_id=workflow_id, graph=version.graph, updated_at=self._now())
        )
        logging.info(
            "Workflow restored",
            extra={
                "workflow_id": workflow_id,
                "restored_version": version.version_number,
                "revert_version": revert.version_number,
            }
        )
        return RestoreResult(
            restored=revert.id,
            workflow=workflow,
            version=version,
        )

    def diff_versions(
        self,
        workflow_id: str,
        from_version_id: str,
        to_version_id: Optional[str] = None,
    ) -> DiffResult:
        """Diffs two versions, or a version against the working copy"""
        before = self.get_version(workflow_id, from_version_id)
        if to_version_id:
            after_graph = self.get_version(workflow_id, to_version_id).graph
        else:
            working_copy = self.get_working_copy(workflow_id)
            if working_copy is None:
                raise WorkflowNotFoundError(f"Workflow {workflow_id} not found", workflow_id)
            after_graph = working_copy.graph
        return diff(before.graph, after_graph)

    # ── Internals ──

    def _now(self) -> str:
        return self._clock().isoformat()

    def _require_workflow(self, workflow_id: str) -> WorkflowRecord:
        workflow = self.store.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found", workflow_id)
        return workflow

    def _append_version(
        self,
        workflow: WorkflowRecord,
        graph: Dict[str, Any],
        label: Optional[str],
        name: str,
        description: Optional[str],
        diff_summary: Optional[str],
        semantic_hash: Optional[str] = None,
    ) -> VersionRecord:
        head = self.store.latest_version(workflow.id)
        version = VersionRecord(
            workflow_id=workflow.id,
            label=label,
            name=name,
            description=description,
            graph=graph,
            created_at=self._now(),
            version_number=(head.version_number if head is not None else 0) + 1,
            semantic_hash=semantic_hash or fingerprint(graph),
            diff_summary=diff_summary,
        )
        self.store.add_version(version)

        workflow.graph = graph
        workflow.active_version_id = version.id
        workflow.updated_at = version.created_at
        self.store.save_workflow(workflow)
        logging.info(
            "Version created",
            extra={
                "workflow_id": workflow.id,
                "version_id": version.id,
                "version_number": version.version_number,
                "label": label,
            }
        )
        return version
