"""Bounded undo/redo history of full editor snapshots."""

import copy
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Optional
from shared.constants import MAX_HISTORY_ENTRIES
from shared.utils import utc_timestamp

Snapshot = Dict[str, Any]


@dataclass
class HistoryEntry:
    action: str
    snapshot: Snapshot
    timestamp: str = field(default_factory=utc_timestamp)


class HistoryStack:
    """Undo and redo stacks, each capped at ``limit`` entries.

    Pushing a new entry invalidates the redo stack. When a stack is full
    the oldest entry is dropped.
    """

    def __init__(self, limit: int = MAX_HISTORY_ENTRIES):
        self.limit = limit
        self._undo: Deque[HistoryEntry] = deque(maxlen=limit)
        self._redo: Deque[HistoryEntry] = deque(maxlen=limit)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    @property
    def redo_depth(self) -> int:
        return len(self._redo)

    def peek_undo(self) -> Optional[HistoryEntry]:
        return self._undo[-1] if self._undo else None

    def push(self, action: str, snapshot: Snapshot) -> HistoryEntry:
        entry = HistoryEntry(action=action, snapshot=copy.deepcopy(snapshot))
        self._undo.append(entry)
        self._redo.clear()
        return entry

    def undo(self, current: Snapshot) -> Optional[Snapshot]:
        """Returns the state to restore, parking ``current`` on the redo stack"""
        if not self._undo:
            return None
        entry = self._undo.pop()
        self._redo.append(HistoryEntry(action=entry.action, snapshot=copy.deepcopy(current)))
        return copy.deepcopy(entry.snapshot)

    def redo(self, current: Snapshot) -> Optional[Snapshot]:
        if not self._redo:
            return None
        entry = self._redo.pop()
        self._undo.append(HistoryEntry(action=entry.action, snapshot=copy.deepcopy(current)))
        return copy.deepcopy(entry.snapshot)

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()
