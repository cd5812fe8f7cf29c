"""
Editing session: owns the live graph, its undo history and the autosave
loop for one open workflow.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, TypeVar
from services.editor.engine.autosave import AutosaveController
from services.editor.engine.graph_model import GraphModel
from services.editor.engine.history import HistoryStack
from shared.constants import AUTOSAVE_INTERVAL_SECONDS, MAX_HISTORY_ENTRIES
from shared.exceptions import SessionClosedError, WorkflowError
from shared.logging_config import set_workflow_id
from shared.serialization import graph_document, workflow_from_document
from shared.types import RestoreResult, Viewport, Workflow, WorkflowRecord

T = TypeVar("T")


class EditingSession:
    """Explicit container for one editor; create with ``open``, dispose with ``close``.

    Usable as an async context manager, which also runs the autosave timer
    when a versioning controller is attached.
    """

    def __init__(
        self,
        workflow: Optional[Workflow] = None,
        versioning=None,
        autosave: bool = True,
        autosave_interval: float = AUTOSAVE_INTERVAL_SECONDS,
        history_limit: int = MAX_HISTORY_ENTRIES,
    ):
        self.versioning = versioning
        self._initial_workflow = workflow
        self._autosave_enabled = autosave and versioning is not None
        self._autosave_interval = autosave_interval
        self._history_limit = history_limit
        self.graph: Optional[GraphModel] = None
        self.history: Optional[HistoryStack] = None
        self.autosave: Optional[AutosaveController] = None
        self.closed = False

    @classmethod
    def from_record(cls, record: WorkflowRecord, versioning=None, **kwargs) -> "EditingSession":
        session = cls(versioning=versioning, **kwargs).open()
        session.load_record(record)
        return session

    # ── Lifecycle ──

    def open(self) -> "EditingSession":
        if self.closed:
            raise SessionClosedError("Session already closed")
        if self.graph is not None:
            return self
        self.graph = GraphModel(self._initial_workflow, Viewport())
        self.history = HistoryStack(self._history_limit)
        if self._autosave_enabled:
            self.autosave = AutosaveController(self.graph, self.versioning, self._autosave_interval)
        set_workflow_id(self.workflow_id)
        logging.info("Editing session opened", extra={"workflow_id": self.workflow_id})
        return self

    async def start(self) -> "EditingSession":
        self.open()
        if self.autosave is not None:
            self.autosave.start()
        return self

    async def close(self) -> None:
        """Stops the timer and drops the graph; a closed session cannot be reused"""
        if self.closed:
            return
        workflow_id = self.workflow_id if self.graph is not None else ""
        try:
            if self.autosave is not None:
                await self.autosave.stop()
        finally:
            if self.autosave is not None:
                self.autosave.dispose()
                self.autosave = None
            self.graph = None
            self.history = None
            self.closed = True
        logging.info("Editing session closed", extra={"workflow_id": workflow_id})

    async def __aenter__(self) -> "EditingSession":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _require_open(self) -> GraphModel:
        if self.closed or self.graph is None:
            raise SessionClosedError("Editing session is not open")
        return self.graph

    @property
    def workflow_id(self) -> str:
        return self._require_open().workflow.id

    # ── History ──

    def push_history(self, action: str) -> None:
        graph = self._require_open()
        self.history.push(action, graph.snapshot())

    def edit(self, action: str, operation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Records an undo point named ``action`` and runs a graph operation"""
        self.push_history(action)
        return operation(*args, **kwargs)

    def undo(self) -> bool:
        graph = self._require_open()
        snapshot = self.history.undo(graph.snapshot())
        if snapshot is None:
            return False
        graph.load_snapshot(snapshot)
        self._mark_dirty()
        return True

    def redo(self) -> bool:
        graph = self._require_open()
        snapshot = self.history.redo(graph.snapshot())
        if snapshot is None:
            return False
        graph.load_snapshot(snapshot)
        self._mark_dirty()
        return True

    def _mark_dirty(self) -> None:
        if self.autosave is not None:
            self.autosave.mark_dirty()

    # ── Documents ──

    def load_record(self, record: WorkflowRecord) -> None:
        """Replaces the live graph with a persisted workflow and forgets history"""
        workflow = workflow_from_document(
            record.graph, record.id, name=record.name, description=record.description
        )
        workflow.created_at = record.created_at
        workflow.updated_at = record.updated_at
        self.replace_workflow(workflow)

    def replace_workflow(self, workflow: Workflow) -> None:
        graph = self._require_open()
        graph.replace_workflow(workflow)
        self.history.clear()
        if self.autosave is not None:
            self.autosave.mark_clean()
        set_workflow_id(workflow.id)

    def graph_document(self) -> Dict[str, Any]:
        return graph_document(self._require_open().workflow)

    async def restore_version(self, version_id: str) -> RestoreResult:
        """Restores a stored version into the live graph.

        History is cleared, so undo cannot reach edits made before the
        restore.
        """
        graph = self._require_open()
        if self.versioning is None:
            raise WorkflowError("Editing session has no versioning controller", graph.workflow.id)

        workflow_id = graph.workflow.id
        result = await asyncio.to_thread(self.versioning.restore_version, workflow_id, version_id)
        workflow = workflow_from_document(
            result.version.graph,
            workflow_id,
            name=result.version.name,
            description=result.version.description,
        )
        workflow.created_at = graph.workflow.created_at
        workflow.touch()
        self.replace_workflow(workflow)
        logging.info(
            "Version restored into session",
            extra={"workflow_id": workflow_id, "version_number": result.version.version_number}
        )
        return result
