# src/jobmap/io/map_surface.py
"""
The map rendering contract, and an in-memory map that honours it.

The engine never draws anything itself. It asks a `MapSurface` for handles
(annotation overlays, job markers, connection lines) and drives them through
the small set of methods below. A browser bridge or a GUI would implement the
same protocol; `MemoryMap` implements it headlessly for the CLI and tests,
and keeps enough bookkeeping to count creations and disposals.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from jobmap.errors import StaleOverlayError
from jobmap.models import AnnotationKind, Position

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


# ---- Protocols ----------------------------------------------------------------

class ListenerHandle(Protocol):
    def remove(self) -> None: ...


class OverlayHandle(Protocol):
    """A drawn pin, line or polygon. `kind` says which geometry accessor applies."""

    kind: AnnotationKind

    def set_map(self, surface: Optional["MapSurface"]) -> None: ...
    def set_options(self, style: Mapping[str, Any]) -> None: ...
    def set_content(self, style: Mapping[str, Any]) -> None: ...
    def set_editable(self, editable: bool) -> None: ...
    def add_listener(self, event: str, callback: Callback) -> ListenerHandle: ...
    def path(self) -> List[Position]: ...


class MarkerHandle(Protocol):
    position: Position

    def set_map(self, surface: Optional["MapSurface"]) -> None: ...
    def set_position(self, position: Position) -> None: ...
    def set_draggable(self, draggable: bool) -> None: ...
    def add_listener(self, event: str, callback: Callback) -> ListenerHandle: ...


class MapSurface(Protocol):
    def create_overlay(
        self, kind: AnnotationKind, path: Sequence[Position], style: Mapping[str, Any]
    ) -> OverlayHandle: ...

    def create_marker(self, position: Position, color: str, glyph: str, title: str = "") -> MarkerHandle: ...

    def create_connection_line(
        self, start: Position, end: Position, style: Mapping[str, Any]
    ) -> OverlayHandle: ...


# ---- In-memory implementation ---------------------------------------------------

class _Listener:
    def __init__(self, bucket: List[Callback], callback: Callback):
        self._bucket = bucket
        self._callback = callback

    def remove(self) -> None:
        if self._callback in self._bucket:
            self._bucket.remove(self._callback)


class _Evented:
    def __init__(self) -> None:
        self._listeners: Dict[str, List[Callback]] = {}

    def add_listener(self, event: str, callback: Callback) -> ListenerHandle:
        bucket = self._listeners.setdefault(event, [])
        bucket.append(callback)
        return _Listener(bucket, callback)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def fire(self, event: str) -> None:
        for cb in list(self._listeners.get(event, [])):
            cb()


class MemoryOverlay(_Evented):
    def __init__(
        self,
        surface: "MemoryMap",
        kind: AnnotationKind,
        path: Sequence[Position],
        style: Mapping[str, Any],
        connection: bool = False,
    ):
        super().__init__()
        self.kind = kind
        self.connection = connection
        self.style: Dict[str, Any] = dict(style)
        # pins render a glyph; its style is the whole content
        self.content: Optional[Dict[str, Any]] = dict(style) if kind is AnnotationKind.PIN else None
        self.editable = False
        self.map: Optional[MemoryMap] = surface
        self._path: List[Position] = list(path)

    @property
    def disposed(self) -> bool:
        return self.map is None

    def _check(self) -> None:
        if self.map is None:
            raise StaleOverlayError(f"{self.kind.value} overlay has been removed from the map")

    def set_map(self, surface: Optional["MemoryMap"]) -> None:
        if surface is None:
            if self.map is not None:
                self.map._detach(self)
            self.map = None
            return
        self.map = surface
        surface._attach(self)

    def set_options(self, style: Mapping[str, Any]) -> None:
        self._check()
        self.style.update(style)

    def set_content(self, style: Mapping[str, Any]) -> None:
        self._check()
        if self.kind is not AnnotationKind.PIN:
            raise TypeError(f"{self.kind.value} overlays have no glyph content")
        self.content = dict(style)

    def set_editable(self, editable: bool) -> None:
        self._check()
        if self.kind is AnnotationKind.PIN:
            raise TypeError("pins are not geometry-editable")
        self.editable = editable

    def path(self) -> List[Position]:
        self._check()
        return list(self._path)

    # -- simulation helpers (what a user dragging a vertex handle would do) --

    def set_path(self, path: Sequence[Position]) -> None:
        self._check()
        self._path = list(path)
        if self.kind.geometry_event:
            self.fire(self.kind.geometry_event)

    def move_vertex(self, index: int, position: Position) -> None:
        self._check()
        if not self.editable:
            raise RuntimeError("overlay is not editable")
        path = list(self._path)
        path[index] = position
        self.set_path(path)


class MemoryMarker(_Evented):
    def __init__(self, surface: "MemoryMap", position: Position, color: str, glyph: str, title: str):
        super().__init__()
        self.position = position
        self.color = color
        self.glyph = glyph
        self.title = title
        self.draggable = False
        self.map: Optional[MemoryMap] = surface

    def set_map(self, surface: Optional["MemoryMap"]) -> None:
        self.map = surface

    def set_position(self, position: Position) -> None:
        self.position = position

    def set_draggable(self, draggable: bool) -> None:
        self.draggable = draggable

    def drag_to(self, *waypoints: Position) -> None:
        """Replay a drag gesture: dragstart, one drag per waypoint, dragend."""
        if not self.draggable:
            raise RuntimeError("marker is not draggable")
        self.fire("dragstart")
        for p in waypoints:
            self.position = p
            self.fire("drag")
        self.fire("dragend")


class MemoryMap:
    """
    Headless MapSurface.

    Counters (`created`, `disposed`) cover annotation overlays only; connection
    lines are tracked separately so tests can reason about each set.
    """

    def __init__(self) -> None:
        self.created = 0
        self.disposed = 0
        self._overlays: List[MemoryOverlay] = []
        self._lines: List[MemoryOverlay] = []
        self.markers: List[MemoryMarker] = []

    def create_overlay(self, kind, path, style) -> MemoryOverlay:
        overlay = MemoryOverlay(self, kind, path, style)
        self._overlays.append(overlay)
        self.created += 1
        return overlay

    def create_marker(self, position, color, glyph, title="") -> MemoryMarker:
        marker = MemoryMarker(self, position, color, glyph, title)
        self.markers.append(marker)
        return marker

    def create_connection_line(self, start, end, style) -> MemoryOverlay:
        line = MemoryOverlay(self, AnnotationKind.LINE, [start, end], style, connection=True)
        self._lines.append(line)
        return line

    def _attach(self, overlay: MemoryOverlay) -> None:
        bucket = self._lines if overlay.connection else self._overlays
        if overlay not in bucket:
            bucket.append(overlay)
            if not overlay.connection:
                self.created += 1

    def _detach(self, overlay: MemoryOverlay) -> None:
        bucket = self._lines if overlay.connection else self._overlays
        if overlay in bucket:
            bucket.remove(overlay)
            if not overlay.connection:
                self.disposed += 1

    def live_overlays(self) -> List[MemoryOverlay]:
        return list(self._overlays)

    def connection_lines(self) -> List[MemoryOverlay]:
        return list(self._lines)
