"""
Client-side save loop for an editing session.

Tracks whether the live graph has unsaved edits and periodically pushes it
to the versioning controller. Store calls run in a worker thread so graph
mutation never waits on I/O.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional
from shared.constants import (
    AUTOSAVE_INTERVAL_SECONDS,
    AUTOSAVE_LABEL,
    DEFAULT_COMMIT_MIN_INTERVAL_SECONDS,
    DEFAULT_COMMIT_THRESHOLD,
    MANUAL_SAVE_LABEL,
)
from shared.exceptions import WorkflowError
from shared.serialization import graph_document
from shared.types import CommitResult, VersionRecord


class SaveState(str, Enum):
    CLEAN = "clean"
    DIRTY = "dirty"
    SAVING = "saving"


class AutosaveController:
    """Clean/Dirty/Saving state machine driven by graph changes and a timer.

    Every graph change bumps a generation counter. A save remembers the
    generation it captured and only returns to CLEAN if nothing changed
    while it was in flight.
    """

    def __init__(self, graph, versioning, interval: float = AUTOSAVE_INTERVAL_SECONDS):
        self.graph = graph
        self.versioning = versioning
        self.interval = interval
        self.state = SaveState.CLEAN
        self.last_error: Optional[WorkflowError] = None
        self.last_version: Optional[VersionRecord] = None
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._unsubscribe = graph.subscribe(self._on_graph_change)

    @property
    def is_dirty(self) -> bool:
        return self.state == SaveState.DIRTY

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _on_graph_change(self, action: str) -> None:
        self.mark_dirty()

    def mark_dirty(self) -> None:
        self._generation += 1
        if self.state != SaveState.SAVING:
            self.state = SaveState.DIRTY

    def mark_clean(self) -> None:
        """Used after the graph was replaced by a persisted state"""
        self._generation += 1
        if self.state != SaveState.SAVING:
            self.state = SaveState.CLEAN

    # ── Timer ──

    def start(self) -> None:
        """Starts the timer on the running event loop"""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            logging.exception(
                "Autosave timer ended with an error",
                extra={"workflow_id": self.graph.workflow.id}
            )

    def dispose(self) -> None:
        self._unsubscribe()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except Exception:
                self.state = SaveState.DIRTY
                logging.exception(
                    "Autosave tick failed",
                    extra={"workflow_id": self.graph.workflow.id}
                )

    # ── Saves ──

    async def tick(self) -> bool:
        """One timer cycle; failures are logged and retried on the next cycle"""
        if self.state != SaveState.DIRTY:
            return False
        return await self._flush(AUTOSAVE_LABEL, explicit=False) is not None

    async def save(self) -> VersionRecord:
        """Manual save: same path as the timer, but failures propagate"""
        return await self._flush(MANUAL_SAVE_LABEL, explicit=True)

    async def commit(self, message: Optional[str] = None, description: Optional[str] = None) -> VersionRecord:
        """Pushes the working copy and cuts an explicit version"""
        workflow_id = self.graph.workflow.id
        generation = self._begin_save()
        try:
            await asyncio.to_thread(
                self.versioning.save_working_copy, workflow_id, graph_document(self.graph.workflow)
            )
            version = await asyncio.to_thread(
                self.versioning.commit_explicit, workflow_id, message, description
            )
        except BaseException:
            self.state = SaveState.DIRTY
            raise
        self._finish_save(generation, version)
        return version

    async def maybe_commit(
        self,
        min_interval_sec: float = DEFAULT_COMMIT_MIN_INTERVAL_SECONDS,
        threshold: int = DEFAULT_COMMIT_THRESHOLD,
    ) -> CommitResult:
        return await asyncio.to_thread(
            self.versioning.maybe_commit, self.graph.workflow.id, min_interval_sec, threshold
        )

    async def _flush(self, label: str, explicit: bool) -> Optional[VersionRecord]:
        workflow_id = self.graph.workflow.id
        document = graph_document(self.graph.workflow)
        generation = self._begin_save()
        try:
            await asyncio.to_thread(self.versioning.save_working_copy, workflow_id, document)
            version = await asyncio.to_thread(self.versioning.create_version, workflow_id, label)
        except WorkflowError as e:
            self.state = SaveState.DIRTY
            self.last_error = e
            logging.warning(
                "Save failed",
                extra={"workflow_id": workflow_id, "label": label, "error": e.message}
            )
            if explicit:
                raise
            return None
        except BaseException:
            self.state = SaveState.DIRTY
            raise
        self._finish_save(generation, version)
        return version

    def _begin_save(self) -> int:
        self.state = SaveState.SAVING
        return self._generation

    def _finish_save(self, generation: int, version: VersionRecord) -> None:
        self.last_error = None
        self.last_version = version
        self.state = SaveState.CLEAN if self._generation == generation else SaveState.DIRTY
        logging.info(
            "Workflow saved",
            extra={
                "workflow_id": version.workflow_id,
                "version_number": version.version_number,
                "label": version.label,
                "save_state": self.state.value,
            }
        )
