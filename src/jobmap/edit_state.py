"""
Edit-state tracking for annotations.

Each annotation is in one of three states:

    clean ──begin_edit──> editing ──mark_dirty──> dirty
      ^                     │                       │
      └────cancel_edit──────┘                       │
      └──────────────resolve (save or revert)───────┘

There is no edge from clean to dirty: `mark_dirty` on a clean annotation is a
caller bug (a geometry listener left attached after editing ended) and is
logged and ignored. Clean is represented by absence from the table.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional

logger = logging.getLogger(__name__)


class EditState(str, Enum):
    CLEAN = "clean"
    EDITING = "editing"
    DIRTY = "dirty"


class EditStateTracker:
    def __init__(self) -> None:
        self._states: Dict[int, EditState] = {}

    def state(self, annotation_id: int) -> EditState:
        return self._states.get(annotation_id, EditState.CLEAN)

    def begin_edit(self, annotation_id: int) -> None:
        if annotation_id not in self._states:
            self._states[annotation_id] = EditState.EDITING
            logger.debug("Annotation %s: clean -> editing", annotation_id)

    def mark_dirty(self, annotation_id: int) -> bool:
        """Returns True if the annotation is dirty afterwards."""
        current = self.state(annotation_id)
        if current is EditState.CLEAN:
            logger.warning("mark_dirty(%s) ignored: annotation is not being edited", annotation_id)
            return False
        if current is EditState.EDITING:
            self._states[annotation_id] = EditState.DIRTY
            logger.debug("Annotation %s: editing -> dirty", annotation_id)
        return True

    def cancel_edit(self, annotation_id: int) -> None:
        """Leave editing without a change. Dirty annotations need resolve()."""
        if self._states.get(annotation_id) is EditState.EDITING:
            del self._states[annotation_id]
            logger.debug("Annotation %s: editing -> clean (cancelled)", annotation_id)

    def is_editing(self, annotation_id: int) -> bool:
        return annotation_id in self._states

    def is_dirty(self, annotation_id: int) -> bool:
        return self._states.get(annotation_id) is EditState.DIRTY

    def dirty_ids(self) -> FrozenSet[int]:
        return frozenset(i for i, s in self._states.items() if s is EditState.DIRTY)

    def resolve(self, annotation_id: int) -> None:
        previous = self._states.pop(annotation_id, None)
        if previous is not None:
            logger.debug("Annotation %s: %s -> clean", annotation_id, previous.value)

    def resolve_all(self, annotation_ids: Optional[Iterable[int]] = None) -> None:
        if annotation_ids is None:
            self._states.clear()
            return
        for i in annotation_ids:
            self._states.pop(i, None)
