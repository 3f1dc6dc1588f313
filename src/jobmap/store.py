"""
In-memory table of annotations per job, each bound to its live overlay.

The store is the only owner of overlay handles for annotations: it creates
them when hydrating from the server and disposes them on remove/clear/reload.
An overlay is always disposed before its replacement is drawn, so a logical
annotation never has two visuals on the map.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from jobmap.bridge import PersistenceBridge
from jobmap.errors import JobMapError
from jobmap.guard import FetchGuard
from jobmap.io.map_surface import MapSurface
from jobmap.models import Annotation

logger = logging.getLogger(__name__)


def dispose_overlay(overlay: Any) -> None:
    try:
        overlay.set_map(None)
    except Exception as e:  # a handle the renderer already dropped
        logger.warning("Could not remove overlay from map: %s", e)


class AnnotationStore:
    def __init__(self, bridge: PersistenceBridge, surface: MapSurface):
        self._bridge = bridge
        self._surface = surface
        self._by_job: Dict[int, List[Annotation]] = {}
        self._loads: FetchGuard[List[Annotation]] = FetchGuard("annotation load")
        # bumped by forget(); a load that started under an older epoch is stale
        self._epochs: Dict[int, int] = {}

    # ---- reads ----

    def annotations(self, job_id: int) -> List[Annotation]:
        return list(self._by_job.get(job_id, []))

    def job_ids(self) -> List[int]:
        return list(self._by_job)

    def find_by_id(self, annotation_id: int) -> Optional[Annotation]:
        for anns in self._by_job.values():
            for a in anns:
                if a.id == annotation_id:
                    return a
        return None

    def overlay_count(self, job_id: int) -> int:
        return sum(1 for a in self._by_job.get(job_id, []) if a.overlay is not None)

    # ---- loading ----

    async def load(self, job_id: int) -> List[Annotation]:
        """
        Replace the job's annotations with the server's.

        Concurrent calls for the same job share one fetch-and-draw and get the
        same list back. Raises Unauthorized/ServerError from the bridge.
        """
        return await self._loads.run(job_id, lambda: self._load(job_id))

    async def _load(self, job_id: int) -> List[Annotation]:
        epoch = self._epochs.get(job_id, 0)
        fetched = await self._bridge.fetch_annotations(job_id)

        if fetched is None:
            # aborted: leave whatever is on the map
            return self.annotations(job_id)
        if self._epochs.get(job_id, 0) != epoch:
            logger.debug("Discarding annotations for job %s: job was removed mid-load", job_id)
            return []

        self.clear(job_id)
        hydrated: List[Annotation] = []
        for ann in fetched:
            try:
                ann.overlay = self.draw(ann)
            except (JobMapError, TypeError, ValueError) as e:
                logger.warning("Could not draw annotation %s: %s", ann.id, e)
                continue
            hydrated.append(ann)
        self._by_job[job_id] = hydrated
        logger.debug("Loaded %d annotation(s) for job %s", len(hydrated), job_id)
        return list(hydrated)

    async def reload_one(self, annotation_id: int) -> Optional[Annotation]:
        """
        Re-fetch the owning job and rebind just this annotation to the server copy.

        Returns the refreshed annotation, or None if it no longer exists on the
        server (it is then removed locally) or was not in the store.
        """
        current = self.find_by_id(annotation_id)
        if current is None:
            return None
        job_id = current.job_id
        fetched = await self._bridge.fetch_annotations(job_id)
        if fetched is None:
            return current

        fresh = next((a for a in fetched if a.id == annotation_id), None)
        if fresh is None:
            logger.info("Annotation %s is gone on the server; dropping it", annotation_id)
            self.remove(job_id, annotation_id)
            return None

        self.bind_overlay(current, None)
        current.name = fresh.name
        current.description = fresh.description
        current.coordinates = fresh.coordinates
        current.style = fresh.style
        current.updated_at = fresh.updated_at
        self.bind_overlay(current, self.draw(current))
        return current

    # ---- mutation ----

    def add(self, job_id: int, annotation: Annotation, overlay: Any) -> Annotation:
        annotation.job_id = job_id
        self.bind_overlay(annotation, overlay)
        self._by_job.setdefault(job_id, []).append(annotation)
        return annotation

    def remove(self, job_id: int, annotation_id: int) -> Optional[Annotation]:
        anns = self._by_job.get(job_id, [])
        for i, a in enumerate(anns):
            if a.id == annotation_id:
                self.bind_overlay(a, None)
                return anns.pop(i)
        return None

    def reconcile(self, annotation: Annotation, saved: Annotation) -> Annotation:
        """Copy the server-confirmed record onto the live entry; the overlay stays."""
        annotation.name = saved.name
        annotation.description = saved.description
        annotation.coordinates = saved.coordinates
        annotation.style = saved.style
        annotation.updated_at = saved.updated_at or annotation.updated_at
        return annotation

    def bind_overlay(self, annotation: Annotation, overlay: Any) -> None:
        """Attach `overlay` (or None), disposing whatever was bound before."""
        if annotation.overlay is not None and annotation.overlay is not overlay:
            dispose_overlay(annotation.overlay)
        annotation.overlay = overlay

    def clear(self, job_id: int) -> None:
        for a in self._by_job.get(job_id, []):
            self.bind_overlay(a, None)
        self._by_job[job_id] = []

    def clear_all(self) -> None:
        for job_id in list(self._by_job):
            self.clear(job_id)

    def forget(self, job_id: int) -> None:
        """Clear the job and invalidate any load of it still in flight."""
        self._epochs[job_id] = self._epochs.get(job_id, 0) + 1
        self._bridge.cancel_fetch(job_id)
        self.clear(job_id)
        self._by_job.pop(job_id, None)

    def draw(self, annotation: Annotation) -> Any:
        """Create an overlay for `annotation` without registering it."""
        return self._surface.create_overlay(annotation.kind, annotation.coordinates, annotation.style)
