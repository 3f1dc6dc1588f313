"""
Overlay sync: keeps what is drawn in line with edit state and the store.

Three jobs:
- push color changes onto live overlays (preview before a save commits),
- switch line/polygon geometry handles on and off, wiring the
  geometry-changed listener that marks an annotation dirty,
- redraw the dashed connection lines from a job marker to its annotations.

Visual failures (a disposed or stale handle) are logged and swallowed here;
they never abort a batch and never reach the user.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from jobmap.edit_state import EditStateTracker
from jobmap.errors import StaleOverlayError
from jobmap.io.map_surface import ListenerHandle, MapSurface
from jobmap.markers import MarkerRegistry
from jobmap.models import CONNECTION_LINE_STYLE, Annotation, AnnotationKind, Position, StyleOptions
from jobmap.store import AnnotationStore

logger = logging.getLogger(__name__)

# what a renderer may raise for a handle it no longer knows about
_OVERLAY_ERRORS = (StaleOverlayError, TypeError, ValueError, AttributeError, RuntimeError)


def _ring(points: List[Position]) -> List[Position]:
    if len(points) > 1 and points[0] == points[-1]:
        return points[:-1]
    return points


def representative_position(overlay: Any) -> Optional[Position]:
    """
    Where a connection line to this overlay should end.

    pin -> its point; line -> its middle vertex; polygon -> centroid of the
    ring's distinct vertices. None for an unknown kind or an empty path.
    """
    kind = getattr(overlay, "kind", None)
    if not isinstance(kind, AnnotationKind):
        return None
    points = list(overlay.path())
    if not points:
        return None

    if kind is AnnotationKind.PIN:
        return points[0]
    if kind is AnnotationKind.LINE:
        return points[len(points) // 2]

    ring = _ring(points)
    return Position(
        lat=sum(p.lat for p in ring) / len(ring),
        lng=sum(p.lng for p in ring) / len(ring),
    )


def colors_for(kind: AnnotationKind, color: str) -> StyleOptions:
    """Style keys a recolor touches: polygons fill+stroke, lines stroke, pins fill."""
    if kind is AnnotationKind.POLYGON:
        return {"fillColor": color, "strokeColor": color}
    if kind is AnnotationKind.LINE:
        return {"strokeColor": color}
    return {"fillColor": color}


class OverlaySync:
    def __init__(
        self,
        store: AnnotationStore,
        tracker: EditStateTracker,
        markers: MarkerRegistry,
        surface: MapSurface,
    ):
        self._store = store
        self._tracker = tracker
        self._markers = markers
        self._surface = surface
        self._lines: Dict[int, List[Any]] = {}
        # annotation id -> (overlay the listener is on, listener handle)
        self._geometry_listeners: Dict[int, Tuple[Any, ListenerHandle]] = {}

    # ---- style ----

    def apply_style(self, annotation: Annotation, color_overrides: Mapping[str, Any]) -> bool:
        """Push colors onto the live overlay. Returns False if nothing could be applied."""
        overlay = annotation.overlay
        if overlay is None:
            return False
        try:
            if annotation.kind is AnnotationKind.POLYGON:
                overlay.set_options({k: color_overrides[k] for k in ("fillColor", "strokeColor") if k in color_overrides})
            elif annotation.kind is AnnotationKind.LINE:
                if "strokeColor" in color_overrides:
                    overlay.set_options({"strokeColor": color_overrides["strokeColor"]})
            else:
                # pin glyphs are re-rendered whole, not recolored in place
                overlay.set_content({**annotation.style, **color_overrides})
        except _OVERLAY_ERRORS as e:
            logger.error("Error updating annotation %s color: %s", annotation.id, e)
            return False
        return True

    # ---- geometry editing ----

    def set_editable(self, annotation: Annotation, editable: bool, open_edit: bool = True) -> None:
        """
        Switch geometry handles on or off.

        With `open_edit=False` the listener is attached but the annotation is
        left clean until the user actually drags a handle (used after a revert).
        """
        if annotation.kind is AnnotationKind.PIN:
            logger.debug("Pin %s is not geometry-editable; skipping", annotation.id)
            return
        if annotation.id is None or annotation.overlay is None:
            return

        self._detach_listener(annotation.id)
        try:
            annotation.overlay.set_editable(editable)
        except _OVERLAY_ERRORS as e:
            logger.warning("Could not set editable=%s on annotation %s: %s", editable, annotation.id, e)
            return

        if not editable:
            self._tracker.cancel_edit(annotation.id)
            return

        if open_edit:
            self._tracker.begin_edit(annotation.id)
        overlay = annotation.overlay
        ann_id, job_id = annotation.id, annotation.job_id

        def on_geometry_changed() -> None:
            # inert once detached or rebound to a newer overlay
            current = self._geometry_listeners.get(ann_id)
            if current is None or current[0] is not overlay:
                logger.debug("Ignoring geometry change from a stale listener (annotation %s)", ann_id)
                return
            # a handle drag after a save re-opens editing before dirtying
            self._tracker.begin_edit(ann_id)
            self._tracker.mark_dirty(ann_id)
            self.rebuild_connection_lines(job_id)

        handle = overlay.add_listener(annotation.kind.geometry_event, on_geometry_changed)
        self._geometry_listeners[ann_id] = (overlay, handle)

    def is_listening(self, annotation_id: int) -> bool:
        return annotation_id in self._geometry_listeners

    def release(self, annotation_id: int) -> None:
        """Drop the geometry listener of an annotation that is going away."""
        self._detach_listener(annotation_id)

    def _detach_listener(self, annotation_id: int) -> None:
        entry = self._geometry_listeners.pop(annotation_id, None)
        if entry is not None:
            entry[1].remove()

    def current_geometry(self, annotation: Annotation) -> List[Position]:
        """The overlay's path if it can be read, else the last confirmed coordinates."""
        if annotation.overlay is not None:
            try:
                path = list(annotation.overlay.path())
                if path:
                    return path
            except _OVERLAY_ERRORS as e:
                logger.warning("Could not read geometry of annotation %s: %s", annotation.id, e)
        return list(annotation.coordinates)

    # ---- connection lines ----

    def rebuild_connection_lines(self, job_id: int) -> int:
        """Clear and redraw every line for the job. Returns how many were drawn."""
        self.clear_connection_lines(job_id)
        origin = self._markers.position(job_id)
        if origin is None:
            return 0

        drawn: List[Any] = []
        for ann in self._store.annotations(job_id):
            if ann.overlay is None:
                continue
            try:
                target = representative_position(ann.overlay)
                if target is None:
                    continue
                drawn.append(self._surface.create_connection_line(origin, target, CONNECTION_LINE_STYLE))
            except _OVERLAY_ERRORS as e:
                logger.warning("Skipping connection line to annotation %s: %s", ann.id, e)
        self._lines[job_id] = drawn
        return len(drawn)

    def clear_connection_lines(self, job_id: int) -> None:
        for line in self._lines.pop(job_id, []):
            try:
                line.set_map(None)
            except _OVERLAY_ERRORS as e:
                logger.warning("Could not remove connection line for job %s: %s", job_id, e)

    def clear_all_connection_lines(self) -> None:
        for job_id in list(self._lines):
            self.clear_connection_lines(job_id)

    def connection_line_count(self, job_id: int) -> int:
        return len(self._lines.get(job_id, []))
