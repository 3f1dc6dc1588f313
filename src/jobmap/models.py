"""
Data model for jobs and their map annotations.

Two layers live here:
- Wire shapes (`TypedDict`): what the annotation API sends and receives. At
  runtime these are plain dicts, exactly as they come off the JSON decoder.
- Domain objects (dataclasses): what the rest of the package passes around
  once a record has been normalized (see `jobmap.pipeline.normalize`).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, TypedDict


# ---- Wire shapes ---------------------------------------------------------------

class LatLng(TypedDict):
    lat: float
    lng: float


class StyleOptions(TypedDict, total=False):
    """Map-provider style keys. These stay camelCase end to end."""

    fillColor: str
    fillOpacity: float
    strokeColor: str
    strokeOpacity: float
    strokeWeight: float
    scale: float


class AnnotationRecord(TypedDict, total=False):
    """
    One annotation row as the server returns it (snake_case).

    Notes:
    - `coordinates` and `style_options` are JSON columns, already decoded.
    - Timestamps are ISO strings and may be missing on older rows.
    """

    id: int
    job_id: int
    annotation_type: str
    name: Optional[str]
    description: Optional[str]
    coordinates: List[LatLng]
    style_options: Optional[StyleOptions]
    created_at: Optional[str]
    updated_at: Optional[str]


class AnnotationPayload(TypedDict):
    """Request body for create (POST) and full-replace update (PUT)."""

    annotationType: str
    name: str
    description: str
    coordinates: List[LatLng]
    styleOptions: StyleOptions


# ---- Domain objects ------------------------------------------------------------

class AnnotationKind(str, Enum):
    PIN = "pin"
    LINE = "line"
    POLYGON = "polygon"

    @property
    def min_points(self) -> int:
        return {"pin": 1, "line": 2, "polygon": 3}[self.value]

    @property
    def geometry_event(self) -> Optional[str]:
        """Event a drag-handle edit fires on this kind of overlay (pins have none)."""
        return {"line": "path_changed", "polygon": "paths_changed"}.get(self.value)


@dataclass(frozen=True)
class Position:
    lat: float
    lng: float

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Position":
        return cls(lat=float(d["lat"]), lng=float(d["lng"]))

    def to_dict(self) -> LatLng:
        return {"lat": self.lat, "lng": self.lng}


@dataclass
class Job:
    """A job marker on the map. Only its position is mutated here (by dragging)."""

    id: int
    position: Position
    title: str = ""
    job_type: str = "General"
    job_number: str = ""
    assigned_worker_id: Optional[int] = None
    marker_color: Optional[str] = None

    @property
    def color(self) -> str:
        return self.marker_color or marker_color_for(self.job_type)

    @property
    def glyph(self) -> str:
        return MARKER_GLYPHS.get(self.job_type, "J")


@dataclass
class Annotation:
    """
    A pin, line or polygon attached to a job.

    `id` is None only for a draft that has not been created on the server yet.
    `overlay` is the live map handle; the store owns it and is the only place
    that binds or disposes it.
    """

    job_id: int
    kind: AnnotationKind
    name: str
    coordinates: List[Position]
    description: str = ""
    style: StyleOptions = field(default_factory=dict)
    id: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    overlay: Any = field(default=None, repr=False, compare=False)

    @property
    def color(self) -> str:
        """The color the edit dialog shows for this annotation."""
        return self.style.get("fillColor") or self.style.get("strokeColor") or DEFAULT_COLOR


# ---- Styling tables ------------------------------------------------------------

DEFAULT_COLOR = "#FF0000"

DEFAULT_STYLES: Dict[AnnotationKind, StyleOptions] = {
    AnnotationKind.POLYGON: {
        "fillColor": DEFAULT_COLOR,
        "fillOpacity": 0.35,
        "strokeColor": DEFAULT_COLOR,
        "strokeWeight": 2,
    },
    AnnotationKind.LINE: {
        "strokeColor": DEFAULT_COLOR,
        "strokeOpacity": 1.0,
        "strokeWeight": 2,
    },
    # pins are drawn as a circle glyph, white outline
    AnnotationKind.PIN: {
        "fillColor": DEFAULT_COLOR,
        "fillOpacity": 1,
        "strokeColor": "#FFFFFF",
        "strokeWeight": 2,
        "scale": 8,
    },
}

CONNECTION_LINE_STYLE: Dict[str, Any] = {
    "strokeColor": "#333333",
    "strokeOpacity": 0.7,
    "strokeWeight": 2,
    "dashed": True,
    "geodesic": True,
    "zIndex": 1,
}

MARKER_COLORS: Dict[str, str] = {
    "CleanUps": "#007bff",
    "Crew Work": "#dc3545",
    "General": "#ffc107",
    "Plumbing": "#dc3545",
    "Electrical": "#fd7e14",
    "HVAC": "#6f42c1",
    "Landscaping": "#20c997",
    "Roofing": "#6c757d",
    "Painting": "#e83e8c",
    "Flooring": "#795548",
}

MARKER_GLYPHS: Dict[str, str] = {
    "CleanUps": "C",
    "Crew Work": "W",
    "General": "G",
    "Plumbing": "P",
    "Electrical": "E",
    "HVAC": "H",
    "Landscaping": "L",
    "Roofing": "R",
    "Painting": "T",
    "Flooring": "F",
}


def marker_color_for(job_type: str) -> str:
    return MARKER_COLORS.get(job_type, "#6c757d")


def default_style(kind: AnnotationKind, color: Optional[str] = None) -> StyleOptions:
    """
    Copy of the default style for `kind`, optionally recolored.

    Pins keep their white outline; only the fill takes the color.
    """
    style: StyleOptions = dict(DEFAULT_STYLES[kind])  # type: ignore[assignment]
    if color:
        if kind is AnnotationKind.LINE:
            style["strokeColor"] = color
        elif kind is AnnotationKind.POLYGON:
            style["fillColor"] = color
            style["strokeColor"] = color
        else:
            style["fillColor"] = color
    return style
