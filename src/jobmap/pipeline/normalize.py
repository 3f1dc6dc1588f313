# src/jobmap/pipeline/normalize.py
"""
Convert the annotation API's raw rows into `Annotation` objects, and back.

The server speaks snake_case (`annotation_type`, `style_options`, `job_id`)
and stores coordinates/style as JSON columns; requests go out camelCase
(`annotationType`, `styleOptions`). Both directions are handled here so no
other module ever touches a wire key.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from jobmap.errors import ServerError, ValidationError
from jobmap.models import (
    Annotation,
    AnnotationKind,
    AnnotationPayload,
    AnnotationRecord,
    Position,
    StyleOptions,
    default_style,
)

logger = logging.getLogger(__name__)


def _kind(raw: Optional[str]) -> AnnotationKind:
    try:
        return AnnotationKind((raw or "").strip().lower())
    except ValueError:
        raise ServerError(f"Unknown annotation type from server: {raw!r}")


def normalize_annotation(record: AnnotationRecord, job_id: Optional[int] = None) -> Annotation:
    """
    Transform one server row into an Annotation.

    - Missing style keys are filled from the per-kind defaults, the same
      fallbacks the map uses when drawing.
    - `job_id` overrides the row's own (rows fetched per job may omit it).
    """
    kind = _kind(record.get("annotation_type"))

    # Some older rows come back with camelCase style, keep whichever is present
    raw_style = record.get("style_options") or record.get("styleOptions") or {}  # type: ignore[misc]
    style: StyleOptions = {**default_style(kind), **raw_style}

    coords = [Position.from_dict(p) for p in (record.get("coordinates") or [])]

    return Annotation(
        id=record.get("id"),
        job_id=job_id if job_id is not None else record.get("job_id"),
        kind=kind,
        name=(record.get("name") or "").strip(),
        description=record.get("description") or "",
        coordinates=coords,
        style=style,
        created_at=record.get("created_at"),
        updated_at=record.get("updated_at"),
    )


def normalize_annotations(records: Iterable[AnnotationRecord], job_id: Optional[int] = None) -> List[Annotation]:
    out: List[Annotation] = []
    for r in records:
        try:
            out.append(normalize_annotation(r, job_id))
        except (ServerError, KeyError, TypeError, ValueError) as e:
            # one broken row should not hide the rest of the job's annotations
            logger.warning("Skipping malformed annotation row %r: %s", r.get("id"), e)
    return out


def validate_geometry(kind: AnnotationKind, coordinates: List[Position]) -> None:
    if len(coordinates) < kind.min_points:
        raise ValidationError(
            f"A {kind.value} needs at least {kind.min_points} point(s), got {len(coordinates)}"
        )
    if kind is AnnotationKind.PIN and len(coordinates) != 1:
        raise ValidationError(f"A pin has exactly one point, got {len(coordinates)}")


def to_payload(annotation: Annotation, coordinates: Optional[List[Position]] = None) -> AnnotationPayload:
    """
    Build the full request body for create/update.

    `coordinates` overrides the annotation's stored geometry; callers pass the
    overlay's live path when the user has dragged vertices.
    """
    name = (annotation.name or "").strip()
    if not name:
        raise ValidationError("Name is required")
    coords = list(coordinates if coordinates is not None else annotation.coordinates)
    validate_geometry(annotation.kind, coords)

    return {
        "annotationType": annotation.kind.value,
        "name": name,
        "description": annotation.description or "",
        "coordinates": [p.to_dict() for p in coords],
        "styleOptions": dict(annotation.style),  # type: ignore[typeddict-item]
    }
