"""
Job edit-mode controller.

Everything a user does to a job's annotations goes through here: entering and
leaving edit mode, editing/saving/reverting/deleting a single annotation,
creating new ones, batch save/revert for a job, and dragging the job marker.

Conventions:
- Network and validation errors are caught here and turned into exactly one
  notification per user action; nothing is re-raised to the caller.
- Leaving edit mode never drops unsaved changes silently: the user picks
  save-all or revert-all first.
- After a 401 the controller goes read-only until a new session is built.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set

from jobmap.bridge import PersistenceBridge
from jobmap.edit_state import EditState, EditStateTracker
from jobmap.errors import JobMapError, Unauthorized, ValidationError
from jobmap.io.console import Notifier, Prompter
from jobmap.markers import MarkerRegistry
from jobmap.models import DEFAULT_COLOR, Annotation, AnnotationKind, Job, Position, default_style
from jobmap.pipeline.filter import ids_in_job
from jobmap.pipeline.normalize import to_payload
from jobmap.store import AnnotationStore, dispose_overlay
from jobmap.sync import OverlaySync, colors_for

logger = logging.getLogger(__name__)

LOGIN_REQUIRED = "Login required: your session has expired, annotations are read-only."


class JobMode(str, Enum):
    VIEWING = "viewing"
    EDITING = "editing"


@dataclass
class SaveReport:
    saved: List[int] = field(default_factory=list)
    failed: Dict[int, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class JobEditModeController:
    def __init__(
        self,
        store: AnnotationStore,
        tracker: EditStateTracker,
        sync: OverlaySync,
        bridge: PersistenceBridge,
        markers: MarkerRegistry,
        notifier: Notifier,
        prompter: Prompter,
    ):
        self.store = store
        self.tracker = tracker
        self.sync = sync
        self.bridge = bridge
        self.markers = markers
        self.notifier = notifier
        self.prompter = prompter
        self.read_only = False
        self.selected_job: Optional[int] = None
        self._editing: Set[int] = set()
        self._dragging_job: Optional[int] = None

    # ---- helpers -----------------------------------------------------------

    def mode(self, job_id: int) -> JobMode:
        return JobMode.EDITING if job_id in self._editing else JobMode.VIEWING

    def _annotation_ids(self, job_id: int) -> List[int]:
        return [a.id for a in self.store.annotations(job_id) if a.id is not None]

    def _dirty_ids(self, job_id: int) -> List[int]:
        return ids_in_job(self.store.annotations(job_id), self.tracker.dirty_ids())

    def _report(self, exc: JobMapError, action: str) -> None:
        if isinstance(exc, Unauthorized):
            self.read_only = True
            logger.warning("%s: unauthorized; switching to read-only", action)
            self.notifier.notify(LOGIN_REQUIRED, "error")
        elif isinstance(exc, ValidationError):
            self.notifier.notify(str(exc), "error")
        else:
            logger.error("%s: %s", action, exc)
            self.notifier.notify(f"Error {action}. Please try again.", "error")

    def _writable(self) -> bool:
        if self.read_only:
            self.notifier.notify(LOGIN_REQUIRED, "error")
            return False
        return True

    def _find(self, annotation_id: int) -> Optional[Annotation]:
        ann = self.store.find_by_id(annotation_id)
        if ann is None:
            self.notifier.notify("Annotation not found", "error")
        return ann

    def _make_editable(
        self, annotations: Sequence[Annotation], editable: bool, open_edit: bool = True
    ) -> None:
        for a in annotations:
            if a.kind is not AnnotationKind.PIN:
                self.sync.set_editable(a, editable, open_edit=open_edit)

    # ---- jobs --------------------------------------------------------------

    async def register_job(self, job: Job) -> List[Annotation]:
        """Put the job's marker on the map, wire its drag events, load its annotations."""
        if self.markers.get(job.id) is None:
            marker = self.markers.add(job)
            marker.add_listener("dragstart", lambda: self.on_drag_start(job.id))
            marker.add_listener("drag", lambda: self.on_drag(job.id))
            marker.add_listener("dragend", lambda: self.on_drag_end(job.id))
        return await self.load_job_annotations(job.id)

    async def load_job_annotations(self, job_id: int) -> List[Annotation]:
        """(Re)load a job from the server. Refused while it has unsaved changes."""
        dirty = self._dirty_ids(job_id)
        if dirty:
            self.notifier.notify(
                f"Job has {len(dirty)} unsaved annotation change(s). Save or revert them before reloading.",
                "info",
            )
            return self.store.annotations(job_id)
        try:
            annotations = await self.store.load(job_id)
        except JobMapError as e:
            self._report(e, "loading annotations")
            return self.store.annotations(job_id)
        if job_id in self._editing:
            self._make_editable(annotations, True)
        self.sync.rebuild_connection_lines(job_id)
        return annotations

    def remove_job(self, job_id: int) -> None:
        """Drop a job from the map: lines, annotations, edit entries, marker."""
        ids = self._annotation_ids(job_id)
        for i in ids:
            self.sync.release(i)
        self.tracker.resolve_all(ids)
        self._editing.discard(job_id)
        self.sync.clear_connection_lines(job_id)
        self.store.forget(job_id)
        self.markers.remove(job_id)
        if self._dragging_job == job_id:
            self._dragging_job = None
        if self.selected_job == job_id:
            self.selected_job = None

    def select_job(self, job_id: int) -> None:
        """A click on a job marker. Another job's un-saved drag snaps back."""
        if self._dragging_job is not None and self._dragging_job != job_id:
            self.reset_job_position(self._dragging_job)
        self._dragging_job = job_id
        self.selected_job = job_id

    def job_status(self, job_id: int) -> Dict[str, Any]:
        dirty = self._dirty_ids(job_id)
        return {
            "annotations": len(self.store.annotations(job_id)),
            "edit_mode": job_id in self._editing,
            "unsaved_changes": bool(dirty),
            "dirty": dirty,
        }

    def annotation_action(self, annotation_id: int) -> str:
        """What the annotation's info window offers: edit, finish or save."""
        state = self.tracker.state(annotation_id)
        if state is EditState.DIRTY:
            return "save"
        if state is EditState.EDITING:
            return "finish"
        return "edit"

    # ---- edit mode ---------------------------------------------------------

    async def enter_edit_mode(self, job_id: int) -> bool:
        if not self._writable():
            return False
        for other in list(self._editing - {job_id}):
            if not await self.exit_edit_mode(other):
                return False
        if job_id in self._editing:
            return True

        self.markers.set_draggable(job_id, True)
        # stale dialog sessions; dirty entries stay until saved or reverted
        for i in self._annotation_ids(job_id):
            self.tracker.cancel_edit(i)
        self._make_editable(self.store.annotations(job_id), True)
        self._editing.add(job_id)
        self.sync.rebuild_connection_lines(job_id)
        logger.info("Job %s: viewing -> editing", job_id)
        return True

    async def exit_edit_mode(self, job_id: int) -> bool:
        """
        Leave edit mode. Returns False if the job stays in edit mode because a
        save failed (the failures have been reported).
        """
        if job_id not in self._editing:
            return True

        dirty = self._dirty_ids(job_id)
        if dirty:
            save = await self.prompter.confirm(
                f"You have {len(dirty)} unsaved annotation change(s). "
                "Save them before exiting edit mode? (No reverts them.)"
            )
            if save:
                report = await self._save_ids(dirty)
                self._notify_save_report(report)
                if not report.ok:
                    self.sync.rebuild_connection_lines(job_id)
                    return False
            else:
                if not await self._revert_job(job_id):
                    return False
                self.notifier.notify(f"Reverted {len(dirty)} unsaved annotation change(s)", "success")

        self.markers.set_draggable(job_id, False)
        self._make_editable(self.store.annotations(job_id), False)
        self.tracker.resolve_all(self._annotation_ids(job_id))
        self._editing.discard(job_id)
        self.sync.rebuild_connection_lines(job_id)
        logger.info("Job %s: editing -> viewing", job_id)
        return True

    async def save_all_job_changes(self, job_id: int) -> SaveReport:
        if not self._writable():
            return SaveReport()
        dirty = self._dirty_ids(job_id)
        if not dirty:
            self.notifier.notify("No changes to save for this job", "info")
            return SaveReport()
        report = await self._save_ids(dirty)
        self._notify_save_report(report)
        self.sync.rebuild_connection_lines(job_id)
        return report

    async def revert_all_job_changes(self, job_id: int, confirm: bool = True) -> bool:
        dirty = self._dirty_ids(job_id)
        if not dirty:
            self.notifier.notify("No changes to revert for this job", "info")
            return False
        if confirm and not await self.prompter.confirm(
            f"Are you sure you want to revert all {len(dirty)} unsaved changes for this job? "
            "This cannot be undone."
        ):
            self.notifier.notify("Revert cancelled", "info")
            return False
        if not await self._revert_job(job_id):
            return False
        self.notifier.notify(f"Reverted {len(dirty)} annotation change(s) for this job", "success")
        return True

    async def _save_ids(self, ids: Sequence[int]) -> SaveReport:
        # one at a time so each failure is attributed to its annotation
        report = SaveReport()
        for annotation_id in ids:
            ann = self.store.find_by_id(annotation_id)
            if ann is None:
                report.failed[annotation_id] = "not found"
                continue
            try:
                await self._persist(ann)
            except JobMapError as e:
                logger.error("Error saving annotation %s: %s", annotation_id, e)
                if isinstance(e, Unauthorized):
                    self.read_only = True
                report.failed[annotation_id] = str(e)
                continue
            report.saved.append(annotation_id)
        return report

    def _notify_save_report(self, report: SaveReport) -> None:
        total = len(report.saved) + len(report.failed)
        if report.ok:
            self.notifier.notify(f"Successfully saved {total} annotation change(s)", "success")
            return
        if self.read_only:
            self.notifier.notify(LOGIN_REQUIRED, "error")
            return
        failed = ", ".join(f"#{i} ({msg})" for i, msg in report.failed.items())
        self.notifier.notify(
            f"Saved {len(report.saved)} of {total} annotation changes. Failed: {failed}", "error"
        )

    async def _persist(self, ann: Annotation) -> Annotation:
        """PUT the annotation's complete local state and confirm it."""
        payload = to_payload(ann, self.sync.current_geometry(ann))
        saved = await self.bridge.update_annotation(ann.id, payload)
        self.store.reconcile(ann, saved)
        self.tracker.resolve(ann.id)
        return ann

    async def _revert_job(self, job_id: int) -> bool:
        ids = self._annotation_ids(job_id)
        try:
            annotations = await self.store.load(job_id)
        except JobMapError as e:
            self._report(e, "reverting changes")
            return False
        self.tracker.resolve_all(ids)
        if job_id in self._editing:
            # reverted shapes stay clean until the next handle drag
            self._make_editable(annotations, True, open_edit=False)
        self.sync.rebuild_connection_lines(job_id)
        return True

    # ---- single annotations ------------------------------------------------

    async def edit_annotation(self, annotation_id: int) -> bool:
        """Open the edit dialog; a confirmed change is applied locally and marked dirty."""
        if not self._writable():
            return False
        ann = self._find(annotation_id)
        if ann is None:
            return False

        job = self.markers.job(ann.job_id)
        default_color = job.color if job else DEFAULT_COLOR
        current_color = ann.color

        self.tracker.begin_edit(annotation_id)
        result = await self.prompter.edit_annotation(ann, current_color, default_color)
        if self.store.find_by_id(annotation_id) is not ann:
            # reloaded, reverted or deleted while the dialog was open
            self.tracker.cancel_edit(annotation_id)
            self.notifier.notify("Annotation was reloaded while editing; edit discarded", "info")
            return False
        if result is None:
            self.tracker.cancel_edit(annotation_id)
            self.notifier.notify("Edit cancelled", "info")
            return False

        name = (result.get("name") or "").strip()
        description = (result.get("description") or "").strip()
        color = result.get("color") or current_color
        if not name:
            self.tracker.cancel_edit(annotation_id)
            self._report(ValidationError("Name is required"), "editing annotation")
            return False

        if name == ann.name and description == (ann.description or "") and color == current_color:
            self.tracker.cancel_edit(annotation_id)
            self.notifier.notify("No changes made", "info")
            return False

        overrides = colors_for(ann.kind, color)
        ann.name = name
        ann.description = description
        ann.style = {**ann.style, **overrides}
        self.sync.apply_style(ann, overrides)
        self.tracker.mark_dirty(annotation_id)
        self.notifier.notify(f'"{name}" changed. Save to keep the changes.', "info")
        return True

    async def save_annotation(self, annotation_id: int) -> bool:
        if not self._writable():
            return False
        ann = self._find(annotation_id)
        if ann is None:
            return False
        try:
            await self._persist(ann)
        except JobMapError as e:
            self._report(e, "saving annotation")
            return False
        self.sync.rebuild_connection_lines(ann.job_id)
        self.notifier.notify("Annotation saved successfully!", "success")
        return True

    async def finish_editing(self, annotation_id: int) -> bool:
        ann = self._find(annotation_id)
        if ann is None:
            return False
        if self.tracker.is_dirty(annotation_id):
            if await self.prompter.confirm(f'Save your changes to "{ann.name}"? (No reverts them.)'):
                return await self.save_annotation(annotation_id)
            return await self.revert_annotation(annotation_id)
        self.tracker.cancel_edit(annotation_id)
        self.notifier.notify("Finished editing", "info")
        return True

    async def revert_annotation(self, annotation_id: int) -> bool:
        """Throw away local changes to one annotation by re-reading it from the server."""
        ann = self._find(annotation_id)
        if ann is None:
            return False
        job_id = ann.job_id
        try:
            refreshed = await self.store.reload_one(annotation_id)
        except JobMapError as e:
            self._report(e, "reverting annotation")
            return False
        self.tracker.resolve(annotation_id)
        self.sync.release(annotation_id)
        if refreshed is not None and job_id in self._editing:
            self._make_editable([refreshed], True, open_edit=False)
        self.sync.rebuild_connection_lines(job_id)
        self.notifier.notify("Annotation changes reverted", "success")
        return True

    async def delete_annotation(self, annotation_id: int) -> bool:
        if not self._writable():
            return False
        ann = self._find(annotation_id)
        if ann is None:
            return False
        if not await self.prompter.confirm(
            f'Are you sure you want to delete the annotation "{ann.name}"?\n\nThis action cannot be undone.'
        ):
            self.notifier.notify("Delete cancelled", "info")
            return False
        try:
            await self.bridge.delete_annotation(annotation_id)
        except JobMapError as e:
            self._report(e, "deleting annotation")
            return False

        # only now that the server confirmed
        self.sync.release(annotation_id)
        self.store.remove(ann.job_id, annotation_id)
        self.tracker.resolve(annotation_id)
        self.sync.rebuild_connection_lines(ann.job_id)
        self.notifier.notify("Annotation deleted successfully!", "success")
        return True

    async def create_annotation(
        self,
        job_id: int,
        kind: AnnotationKind | str,
        coordinates: Sequence[Position],
        overlay: Any = None,
    ) -> Optional[Annotation]:
        """
        Persist a freshly drawn shape.

        `overlay` is the provisional shape the user just drew (one is drawn
        here if not given). It is disposed if the user backs out or the
        server rejects the annotation.
        """
        kind = AnnotationKind(kind)
        job = self.markers.job(job_id)
        draft = Annotation(
            job_id=job_id,
            kind=kind,
            name="",
            coordinates=list(coordinates),
            style=default_style(kind, job.color if job else None),
        )
        if overlay is None:
            overlay = self.store.draw(draft)

        if job is None:
            dispose_overlay(overlay)
            self.notifier.notify("Error: No job selected for annotation", "error")
            return None
        if not self._writable():
            dispose_overlay(overlay)
            return None

        label = kind.value.capitalize()
        name = await self.prompter.prompt_text(f"New {kind.value}", f"Enter a name for this {kind.value}:")
        if not name or not name.strip():
            dispose_overlay(overlay)
            self._report(ValidationError(f"{label} not created: a name is required"), "creating annotation")
            return None
        description = await self.prompter.prompt_text(
            f"New {kind.value}", f"Enter a description for this {kind.value} (optional):"
        )
        draft.name = name.strip()
        draft.description = (description or "").strip()

        try:
            saved = await self.bridge.create_annotation(job_id, to_payload(draft))
        except JobMapError as e:
            dispose_overlay(overlay)
            self._report(e, f"saving {kind.value}")
            return None

        self.store.add(job_id, saved, overlay)
        # new shapes start locked, even while the job is in edit mode
        self.sync.set_editable(saved, False)
        self.sync.rebuild_connection_lines(job_id)
        self.notifier.notify(f'{label} "{saved.name}" created successfully!', "success")
        return saved

    async def add_pin(self, job_id: int, position: Position) -> Optional[Annotation]:
        return await self.create_annotation(job_id, AnnotationKind.PIN, [position])

    # ---- marker dragging ---------------------------------------------------

    def on_drag_start(self, job_id: int) -> None:
        self._dragging_job = job_id
        self.sync.clear_connection_lines(job_id)

    def on_drag(self, job_id: int, position: Optional[Position] = None) -> None:
        if position is not None:
            self.markers.move(job_id, position)
        self.sync.rebuild_connection_lines(job_id)

    def on_drag_end(self, job_id: int, position: Optional[Position] = None) -> None:
        final = position or self.markers.position(job_id)
        if final is not None:
            self.markers.move(job_id, final, commit=True)
        self.sync.rebuild_connection_lines(job_id)
        logger.debug("Job %s dropped at %s", job_id, final)

    def reset_job_position(self, job_id: int) -> bool:
        original = self.markers.original_position(job_id)
        if original is None:
            return False
        self.markers.move(job_id, original, commit=True)
        self.sync.rebuild_connection_lines(job_id)
        if self._dragging_job == job_id:
            self._dragging_job = None
        return True
