import logging

import pytest

from conftest import JOB_ID, make_job
from jobmap.edit_state import EditState
from jobmap.io.map_surface import MemoryMap
from jobmap.models import Annotation, AnnotationKind, Position
from jobmap.sync import colors_for, representative_position


def _overlay(kind, points):
    return MemoryMap().create_overlay(kind, [Position(*p) for p in points], {})


def test_representative_position_per_kind():
    assert representative_position(_overlay(AnnotationKind.PIN, [(1, 2)])) == Position(1, 2)
    line = _overlay(AnnotationKind.LINE, [(0, 0), (1, 1), (2, 2), (3, 3)])
    assert representative_position(line) == Position(2, 2)
    square = _overlay(AnnotationKind.POLYGON, [(0, 0), (0, 2), (2, 2), (2, 0), (0, 0)])
    assert representative_position(square) == Position(1.0, 1.0)


def test_representative_position_of_nothing_is_none():
    assert representative_position(_overlay(AnnotationKind.POLYGON, [])) is None
    assert representative_position(object()) is None


def test_representative_position_of_disposed_overlay_raises():
    from jobmap.errors import StaleOverlayError

    overlay = _overlay(AnnotationKind.PIN, [(1, 2)])
    overlay.set_map(None)
    with pytest.raises(StaleOverlayError):
        representative_position(overlay)


def test_colors_for_each_kind():
    assert colors_for(AnnotationKind.POLYGON, "#00FF00") == {"fillColor": "#00FF00", "strokeColor": "#00FF00"}
    assert colors_for(AnnotationKind.LINE, "#00FF00") == {"strokeColor": "#00FF00"}
    assert colors_for(AnnotationKind.PIN, "#00FF00") == {"fillColor": "#00FF00"}


def _seed(api):
    api.seed(JOB_ID, "pin", [(1.0, 1.0)], name="Hydrant")
    api.seed(JOB_ID, "line", [(0.0, 0.0), (1.0, 1.0)], name="Fence")
    api.seed(JOB_ID, "polygon", [(0.0, 0.0), (0.0, 2.0), (2.0, 2.0)], name="Yard")


def test_apply_style_by_kind(harness, api):
    _seed(api)

    async def scenario(s):
        pin, line, poly = await s.controller.register_job(make_job())
        assert s.sync.apply_style(poly, colors_for(poly.kind, "#00FF00"))
        assert poly.overlay.style["fillColor"] == poly.overlay.style["strokeColor"] == "#00FF00"
        assert s.sync.apply_style(line, {"strokeColor": "#0000FF", "fillColor": "#0000FF"})
        assert line.overlay.style["strokeColor"] == "#0000FF"
        assert "fillColor" not in line.overlay.style
        assert s.sync.apply_style(pin, {"fillColor": "#ABCDEF"})
        assert pin.overlay.content["fillColor"] == "#ABCDEF"
        assert pin.overlay.content["strokeColor"] == "#FFFFFF"

        pin.overlay.set_map(None)
        assert s.sync.apply_style(pin, {"fillColor": "#000000"}) is False

    harness.run(scenario)


def test_connection_lines_skip_stale_and_empty_overlays(harness, api):
    _seed(api)

    async def scenario(s):
        pin, line, poly = await s.controller.register_job(make_job())
        assert s.sync.connection_line_count(JOB_ID) == 3

        # disposed behind the store's back, plus an empty polygon
        line.overlay.set_map(None)
        empty = Annotation(job_id=JOB_ID, kind=AnnotationKind.POLYGON, name="empty", coordinates=[], id=77)
        s.store.add(JOB_ID, empty, s.store.draw(empty))

        assert s.sync.rebuild_connection_lines(JOB_ID) == 2
        ends = sorted((l.path()[1].lat, l.path()[1].lng) for l in harness.surface.connection_lines())
        return ends

    ends = harness.run(scenario)
    assert ends == [(2.0 / 3, 4.0 / 3), (1.0, 1.0)]
    assert len(harness.surface.connection_lines()) == 2


def test_lines_start_at_marker_and_use_the_dashed_style(harness, api):
    _seed(api)
    job = make_job()

    async def scenario(s):
        await s.controller.register_job(job)
        return harness.surface.connection_lines()

    lines = harness.run(scenario)
    assert all(l.path()[0] == job.position for l in lines)
    assert all(l.style["dashed"] and l.style["strokeColor"] == "#333333" for l in lines)


def test_clear_connection_lines(harness, api):
    _seed(api)

    async def scenario(s):
        await s.controller.register_job(make_job())
        s.sync.clear_all_connection_lines()
        return s.sync.connection_line_count(JOB_ID)

    assert harness.run(scenario) == 0
    assert harness.surface.connection_lines() == []


def test_geometry_edit_marks_dirty_and_redraws_lines(harness, api):
    _seed(api)

    async def scenario(s):
        pin, line, poly = await s.controller.register_job(make_job())
        s.sync.set_editable(line, True)
        assert line.overlay.editable
        assert s.tracker.state(line.id) is EditState.EDITING

        line.overlay.move_vertex(1, Position(4.0, 4.0))
        assert s.tracker.state(line.id) is EditState.DIRTY
        ends = [l.path()[1] for l in harness.surface.connection_lines()]
        assert Position(4.0, 4.0) in ends
        assert s.sync.current_geometry(line)[1] == Position(4.0, 4.0)

    harness.run(scenario)


def test_listener_is_inert_after_editing_is_switched_off(harness, api, caplog):
    _seed(api)

    async def scenario(s):
        pin, line, poly = await s.controller.register_job(make_job())
        s.sync.set_editable(poly, True)
        overlay = poly.overlay
        s.sync.set_editable(poly, False)
        assert not overlay.editable
        assert not s.sync.is_listening(poly.id)
        assert overlay.listener_count("paths_changed") == 0
        assert s.tracker.state(poly.id) is EditState.CLEAN
        overlay.set_path([Position(9, 9), Position(9, 8), Position(8, 8)])
        assert s.tracker.state(poly.id) is EditState.CLEAN

    with caplog.at_level(logging.WARNING):
        harness.run(scenario)
    assert "mark_dirty" not in caplog.text


def test_pins_are_never_geometry_editable(harness, api):
    _seed(api)

    async def scenario(s):
        pin, line, poly = await s.controller.register_job(make_job())
        s.sync.set_editable(pin, True)
        assert not pin.overlay.editable
        assert not s.sync.is_listening(pin.id)
        assert s.tracker.state(pin.id) is EditState.CLEAN

    harness.run(scenario)
