"""Job markers on the map, plus the positions they started at."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from jobmap.io.map_surface import MapSurface, MarkerHandle
from jobmap.models import Job, Position

logger = logging.getLogger(__name__)


@dataclass
class MarkerEntry:
    job: Job
    marker: MarkerHandle


class MarkerRegistry:
    def __init__(self, surface: MapSurface):
        self._surface = surface
        self._entries: Dict[int, MarkerEntry] = {}
        # filled once when a marker is first created; used by reset()
        self._original: Dict[int, Position] = {}

    def add(self, job: Job) -> MarkerHandle:
        existing = self._entries.get(job.id)
        if existing is not None:
            return existing.marker
        marker = self._surface.create_marker(
            job.position, job.color, job.glyph, title=f"{job.job_number}: {job.title}".strip(": ")
        )
        self._entries[job.id] = MarkerEntry(job=job, marker=marker)
        self._original.setdefault(job.id, job.position)
        return marker

    def get(self, job_id: int) -> Optional[MarkerEntry]:
        return self._entries.get(job_id)

    def job(self, job_id: int) -> Optional[Job]:
        entry = self._entries.get(job_id)
        return entry.job if entry else None

    def jobs(self) -> List[Job]:
        return [e.job for e in self._entries.values()]

    def position(self, job_id: int) -> Optional[Position]:
        """Where the marker is drawn right now (may differ from job.position mid-drag)."""
        entry = self._entries.get(job_id)
        return entry.marker.position if entry else None

    def original_position(self, job_id: int) -> Optional[Position]:
        return self._original.get(job_id)

    def set_draggable(self, job_id: int, draggable: bool) -> None:
        entry = self._entries.get(job_id)
        if entry is not None:
            entry.marker.set_draggable(draggable)

    def move(self, job_id: int, position: Position, commit: bool = False) -> None:
        entry = self._entries.get(job_id)
        if entry is None:
            return
        entry.marker.set_position(position)
        if commit:
            entry.job.position = position

    def remove(self, job_id: int) -> None:
        entry = self._entries.pop(job_id, None)
        self._original.pop(job_id, None)
        if entry is not None:
            entry.marker.set_map(None)
