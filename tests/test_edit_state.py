import logging

from jobmap.edit_state import EditState, EditStateTracker


def test_unknown_annotation_is_clean():
    t = EditStateTracker()
    assert t.state(1) is EditState.CLEAN
    assert not t.is_editing(1)
    assert not t.is_dirty(1)


def test_begin_then_dirty_then_resolve():
    t = EditStateTracker()
    t.begin_edit(1)
    assert t.state(1) is EditState.EDITING
    assert t.mark_dirty(1) is True
    assert t.state(1) is EditState.DIRTY
    assert t.dirty_ids() == frozenset({1})
    t.resolve(1)
    assert t.state(1) is EditState.CLEAN
    assert t.dirty_ids() == frozenset()


def test_clean_never_jumps_to_dirty(caplog):
    t = EditStateTracker()
    with caplog.at_level(logging.WARNING, logger="jobmap.edit_state"):
        assert t.mark_dirty(5) is False
    assert t.state(5) is EditState.CLEAN
    assert "not being edited" in caplog.text


def test_begin_edit_does_not_downgrade_dirty():
    t = EditStateTracker()
    t.begin_edit(1)
    t.mark_dirty(1)
    t.begin_edit(1)
    assert t.state(1) is EditState.DIRTY


def test_cancel_only_leaves_editing():
    t = EditStateTracker()
    t.begin_edit(1)
    t.begin_edit(2)
    t.mark_dirty(2)
    t.cancel_edit(1)
    t.cancel_edit(2)
    assert t.state(1) is EditState.CLEAN
    assert t.state(2) is EditState.DIRTY


def test_resolve_all_subset_and_everything():
    t = EditStateTracker()
    for i in (1, 2, 3):
        t.begin_edit(i)
        t.mark_dirty(i)
    t.resolve_all([1, 3])
    assert t.dirty_ids() == frozenset({2})
    t.resolve_all()
    assert t.dirty_ids() == frozenset()
    assert not t.is_editing(2)
