import pytest

from jobmap.errors import ServerError, ValidationError
from jobmap.models import DEFAULT_STYLES, Annotation, AnnotationKind, Position, default_style
from jobmap.pipeline.filter import ids_in_job
from jobmap.pipeline.normalize import normalize_annotation, normalize_annotations, to_payload


def _row(**over):
    row = {
        "id": 42,
        "job_id": 7,
        "annotation_type": "polygon",
        "name": "  Staging area ",
        "description": None,
        "coordinates": [{"lat": 1, "lng": 2}, {"lat": 3, "lng": 4}, {"lat": 5, "lng": 6}],
        "style_options": {"fillColor": "#00FF00"},
        "created_at": "2025-09-26T07:20:13Z",
        "updated_at": None,
    }
    row.update(over)
    return row


def test_normalize_fills_style_defaults_and_cleans_fields():
    ann = normalize_annotation(_row())
    assert ann.id == 42
    assert ann.job_id == 7
    assert ann.kind is AnnotationKind.POLYGON
    assert ann.name == "Staging area"
    assert ann.description == ""
    assert ann.coordinates[0] == Position(1.0, 2.0)
    assert ann.style["fillColor"] == "#00FF00"
    assert ann.style["fillOpacity"] == DEFAULT_STYLES[AnnotationKind.POLYGON]["fillOpacity"]
    assert ann.overlay is None


def test_normalize_accepts_camel_case_style_and_job_override():
    row = _row(annotation_type="LINE", style_options=None, styleOptions={"strokeColor": "#123456"})
    ann = normalize_annotation(row, job_id=9)
    assert ann.kind is AnnotationKind.LINE
    assert ann.job_id == 9
    assert ann.style["strokeColor"] == "#123456"


def test_unknown_type_is_a_server_error():
    with pytest.raises(ServerError):
        normalize_annotation(_row(annotation_type="circle"))


def test_malformed_rows_are_skipped():
    rows = [_row(id=1), _row(id=2, annotation_type="circle"), _row(id=3, coordinates=[{"lat": 1}])]
    anns = normalize_annotations(rows, job_id=7)
    assert [a.id for a in anns] == [1]


def test_payload_is_the_full_camel_case_state():
    ann = Annotation(
        job_id=7,
        kind=AnnotationKind.LINE,
        name=" Fence ",
        coordinates=[Position(0, 0), Position(1, 1)],
        style=default_style(AnnotationKind.LINE, "#0000FF"),
        id=3,
    )
    moved = [Position(0, 0), Position(2, 2)]
    payload = to_payload(ann, moved)
    assert payload == {
        "annotationType": "line",
        "name": "Fence",
        "description": "",
        "coordinates": [{"lat": 0, "lng": 0}, {"lat": 2, "lng": 2}],
        "styleOptions": {"strokeColor": "#0000FF", "strokeOpacity": 1.0, "strokeWeight": 2},
    }


@pytest.mark.parametrize(
    "kind,points",
    [
        (AnnotationKind.PIN, []),
        (AnnotationKind.PIN, [Position(0, 0), Position(1, 1)]),
        (AnnotationKind.LINE, [Position(0, 0)]),
        (AnnotationKind.POLYGON, [Position(0, 0), Position(1, 1)]),
    ],
)
def test_payload_rejects_degenerate_geometry(kind, points):
    ann = Annotation(job_id=1, kind=kind, name="x", coordinates=points)
    with pytest.raises(ValidationError):
        to_payload(ann)


def test_payload_requires_a_name():
    ann = Annotation(job_id=1, kind=AnnotationKind.PIN, name="   ", coordinates=[Position(0, 0)])
    with pytest.raises(ValidationError, match="Name is required"):
        to_payload(ann)


def test_default_style_recolors_the_right_keys():
    assert default_style(AnnotationKind.PIN, "#111111")["strokeColor"] == "#FFFFFF"
    assert default_style(AnnotationKind.PIN, "#111111")["fillColor"] == "#111111"
    assert "fillColor" not in default_style(AnnotationKind.LINE, "#111111")
    poly = default_style(AnnotationKind.POLYGON, "#111111")
    assert poly["fillColor"] == poly["strokeColor"] == "#111111"
    # the shared table is never mutated
    assert DEFAULT_STYLES[AnnotationKind.POLYGON]["fillColor"] == "#FF0000"


def test_ids_in_job_keeps_annotation_order():
    anns = [
        Annotation(job_id=1, kind=AnnotationKind.PIN, name="a", coordinates=[], id=5),
        Annotation(job_id=1, kind=AnnotationKind.PIN, name="draft", coordinates=[]),
        Annotation(job_id=1, kind=AnnotationKind.PIN, name="b", coordinates=[], id=2),
    ]
    assert ids_in_job(anns, {2, 5, 99}) == [5, 2]
