"""
Builder controller - owns the form being edited in one editor session.

All edits go through ``_commit`` which swaps in the new form, marks the
session dirty and restarts the auto-save debounce timer. Saving happens
outside the lock so a slow or failing save never blocks editing.
"""
import logging
import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from . import editing
from . import form_builder as fb
from .config import get_settings
from .exceptions import PersistenceError
from .form_builder import Form
from .questions import QuestionType
from .storage import FormStorage

logger = logging.getLogger(__name__)


class FormBuilderController:
    def __init__(
        self,
        form: Optional[Form] = None,
        storage: Optional[FormStorage] = None,
        autosave_delay: Optional[float] = None,
        on_save_error: Optional[Callable[[PersistenceError], None]] = None,
        timer_factory: Callable[..., Any] = threading.Timer,
    ):
        self.form = form if form is not None else fb.create_form()
        self.storage = storage
        self.autosave_delay = (
            get_settings().AUTOSAVE_DELAY_SECONDS if autosave_delay is None else autosave_delay
        )
        self.on_save_error = on_save_error
        self.selected_question_id: Optional[str] = None
        self.dirty = False
        self.saving = False
        self.closed = False
        self.last_saved_at: Optional[datetime] = None
        self.last_save_error: Optional[str] = None
        self.created_at = time.time()
        self.last_activity = time.time()
        self._version = 0
        self._timer = None
        self._timer_factory = timer_factory
        self._lock = threading.RLock()

    @classmethod
    def open(cls, storage: FormStorage, form_id: str, **kwargs) -> "FormBuilderController":
        """Start a session on a stored form (raises FormNotFoundError / CorruptFormError)"""
        return cls(form=storage.load(form_id), storage=storage, **kwargs)

    @property
    def form_id(self) -> str:
        return self.form.id

    @property
    def has_unsaved_changes(self) -> bool:
        return self.dirty

    # ---- commit point ----

    def _commit(self, new_form: Form) -> bool:
        if new_form is self.form:
            return False
        self.form = new_form
        self._version += 1
        self.dirty = True
        self.last_activity = time.time()
        if self.selected_question_id and new_form.get_question(self.selected_question_id) is None:
            self.selected_question_id = None
        self._schedule_autosave()
        return True

    def _apply(self, operation: Callable[..., Form], *args: Any, **kwargs: Any) -> bool:
        with self._lock:
            return self._commit(operation(self.form, *args, **kwargs))

    # ---- auto-save ----

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_autosave(self):
        """Restart the inactivity window; called with the lock held"""
        self._cancel_timer()
        if self.closed or self.storage is None or not self.autosave_delay or self.autosave_delay <= 0:
            return
        timer = self._timer_factory(self.autosave_delay, self._autosave)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _autosave(self):
        with self._lock:
            self._timer = None
            if self.closed or not self.dirty:
                return
        logger.info(f"Auto-saving form {self.form_id}")
        try:
            self.save()
        except PersistenceError as e:
            logger.warning(f"Auto-save failed for form {self.form_id}: {e}")
            if self.on_save_error:
                self.on_save_error(e)

    def save(self) -> datetime:
        """Save a snapshot of the form.

        The dirty flag is cleared only if no edit arrived while the save was
        in flight; those edits belong to the next save. On failure the form
        stays as it is and PersistenceError is raised.
        """
        if self.storage is None:
            raise PersistenceError("No storage configured for this editor session")

        with self._lock:
            snapshot = self.form
            version = self._version
            self.saving = True
            self._cancel_timer()

        try:
            saved_at = self.storage.save(snapshot)
        except PersistenceError as e:
            self._save_failed(e)
            raise
        except Exception as e:
            error = PersistenceError(f"Saving form {snapshot.id} failed: {e}")
            self._save_failed(error)
            raise error from e

        with self._lock:
            self.saving = False
            self.last_saved_at = saved_at
            self.last_save_error = None
            if self._version == version:
                self.dirty = False
            else:
                # edits made during the save still need saving
                self._schedule_autosave()
        logger.info(f"Saved form {snapshot.id} at {saved_at}")
        return saved_at

    def _save_failed(self, error: PersistenceError):
        with self._lock:
            self.saving = False
            self.last_save_error = str(error)
        logger.error(f"Save failed for form {self.form_id}: {error}")

    def close(self):
        """Leave the editor: drop any pending auto-save without saving"""
        with self._lock:
            self._cancel_timer()
            self.closed = True
        if self.dirty:
            logger.info(f"Closed form {self.form_id} with unsaved changes")

    # ---- selection ----

    def select_question(self, question_id: Optional[str]) -> bool:
        with self._lock:
            if question_id is not None and self.form.get_question(question_id) is None:
                return False
            self.selected_question_id = question_id
            return True

    # ---- form operations ----

    def add_question(self, question_type: QuestionType) -> str:
        with self._lock:
            form, question_id = fb.add_question(self.form, question_type)
            self._commit(form)
            self.selected_question_id = question_id
        logger.info(f"Added {QuestionType(question_type).value} question {question_id} to form {self.form_id}")
        return question_id

    def update_question(self, question_id: str, update: Dict[str, Any]) -> bool:
        return self._apply(fb.update_question, question_id, update)

    def edit_question(self, question_id: str, edit: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
        return self._apply(fb.edit_question, question_id, edit, *args, **kwargs)

    def delete_question(self, question_id: str) -> bool:
        changed = self._apply(fb.delete_question, question_id)
        if changed:
            logger.info(f"Deleted question {question_id} from form {self.form_id}")
        return changed

    def duplicate_question(self, question_id: str) -> Optional[str]:
        with self._lock:
            if not self._commit(fb.duplicate_question(self.form, question_id)):
                return None
            return self.form.questions[-1].id

    def move_question(self, from_index: int, to_index: int) -> bool:
        return self._apply(fb.move_question, from_index, to_index)

    def update_details(self, title: Optional[str] = None, description: Optional[str] = None) -> bool:
        return self._apply(fb.update_form_details, title, description)

    def update_settings(self, update: Dict[str, Any]) -> bool:
        return self._apply(fb.update_form_settings, update)

    # ---- single-question shortcuts ----

    def retype(self, question_id: str, question_type: QuestionType) -> bool:
        return self.edit_question(question_id, editing.retype, question_type)

    def set_title(self, question_id: str, title: str) -> bool:
        return self.edit_question(question_id, editing.set_title, title)

    def set_description(self, question_id: str, description: str) -> bool:
        return self.edit_question(question_id, editing.set_description, description)

    def set_required(self, question_id: str, required: bool) -> bool:
        return self.edit_question(question_id, editing.set_required, required)

    def add_option(self, question_id: str, text: str) -> bool:
        return self.edit_question(question_id, editing.add_option, text)

    def remove_option(self, question_id: str, option_id: str) -> bool:
        return self.edit_question(question_id, editing.remove_option, option_id)

    def rename_option(self, question_id: str, option_id: str, text: str) -> bool:
        return self.edit_question(question_id, editing.rename_option, option_id, text)

    def add_grid_row(self, question_id: str, text: Optional[str] = None) -> bool:
        return self.edit_question(question_id, editing.add_grid_row, text)

    def remove_grid_row(self, question_id: str, row_id: str) -> bool:
        return self.edit_question(question_id, editing.remove_grid_row, row_id)

    def rename_grid_row(self, question_id: str, row_id: str, text: str) -> bool:
        return self.edit_question(question_id, editing.rename_grid_row, row_id, text)

    def add_grid_column(self, question_id: str, text: Optional[str] = None) -> bool:
        return self.edit_question(question_id, editing.add_grid_column, text)

    def remove_grid_column(self, question_id: str, column_id: str) -> bool:
        return self.edit_question(question_id, editing.remove_grid_column, column_id)

    def rename_grid_column(self, question_id: str, column_id: str, text: str) -> bool:
        return self.edit_question(question_id, editing.rename_grid_column, column_id, text)

    def set_scale_bounds(self, question_id: str, minimum: Optional[int] = None,
                         maximum: Optional[int] = None) -> bool:
        return self.edit_question(question_id, editing.set_scale_bounds, minimum, maximum)

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "form_id": self.form_id,
                "title": self.form.title,
                "question_count": len(self.form.questions),
                "selected_question_id": self.selected_question_id,
                "dirty": self.dirty,
                "saving": self.saving,
                "last_saved_at": self.last_saved_at.isoformat() if self.last_saved_at else None,
                "last_save_error": self.last_save_error,
                "updated_at": self.form.updated_at.isoformat(),
            }


class BuilderSessionStore:
    """Open editor sessions, one per form id"""

    def __init__(self, storage: FormStorage, session_timeout_hours: Optional[int] = None,
                 autosave_delay: Optional[float] = None):
        settings = get_settings()
        self.storage = storage
        hours = settings.SESSION_TIMEOUT_HOURS if session_timeout_hours is None else session_timeout_hours
        self.session_timeout = hours * 3600
        self.autosave_delay = autosave_delay
        self.sessions: Dict[str, FormBuilderController] = {}
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._cleanup_thread: Optional[threading.Thread] = None

    def create(self, title: str = "Untitled Form", description: str = "") -> FormBuilderController:
        controller = FormBuilderController(
            form=fb.create_form(title, description),
            storage=self.storage,
            autosave_delay=self.autosave_delay,
        )
        with self._lock:
            self.sessions[controller.form_id] = controller
        return controller

    def get(self, form_id: str) -> Optional[FormBuilderController]:
        with self._lock:
            controller = self.sessions.get(form_id)
            if controller is not None:
                controller.last_activity = time.time()
            return controller

    def open(self, form_id: str) -> FormBuilderController:
        """Existing session for the form, or a new one loaded from storage"""
        with self._lock:
            controller = self.get(form_id)
            if controller is None:
                controller = FormBuilderController.open(
                    self.storage, form_id, autosave_delay=self.autosave_delay
                )
                self.sessions[form_id] = controller
                logger.info(f"Opened form {form_id} from storage")
            return controller

    def close(self, form_id: str) -> bool:
        with self._lock:
            controller = self.sessions.pop(form_id, None)
        if controller is None:
            return False
        controller.close()
        return True

    def release(self, form_id: str) -> bool:
        """Close a session after saving its pending edits.

        A session whose save fails stays open with its edits in memory.
        """
        with self._lock:
            controller = self.sessions.get(form_id)
        if controller is None:
            return False
        if controller.dirty:
            try:
                controller.save()
            except PersistenceError as e:
                logger.warning(f"Keeping session for form {form_id} open, unsaved changes: {e}")
                return False
        return self.close(form_id)

    def list_sessions(self) -> List[FormBuilderController]:
        with self._lock:
            return list(self.sessions.values())

    def cleanup_expired_sessions(self) -> int:
        current_time = time.time()
        with self._lock:
            expired = [
                form_id for form_id, controller in self.sessions.items()
                if current_time - controller.last_activity > self.session_timeout
            ]
        return sum(1 for form_id in expired if self.release(form_id))

    def get_session_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "total_sessions": len(self.sessions),
                "dirty_sessions": sum(1 for c in self.sessions.values() if c.dirty),
                "failed_saves": sum(1 for c in self.sessions.values() if c.last_save_error),
            }

    def start_cleanup_thread(self, interval_seconds: float = 3600):
        """Start background thread for session cleanup"""
        def cleanup_worker():
            while not self._stop.wait(interval_seconds):
                try:
                    expired = self.cleanup_expired_sessions()
                    if expired > 0:
                        logger.info(f"Cleaned up {expired} expired sessions")
                except Exception as e:
                    logger.error(f"Error in session cleanup: {e}")

        self._cleanup_thread = threading.Thread(target=cleanup_worker, daemon=True)
        self._cleanup_thread.start()

    def shutdown(self, join_timeout: float = 5.0):
        self._stop.set()
        if self._cleanup_thread is not None:
            self._cleanup_thread.join(timeout=join_timeout)
            self._cleanup_thread = None
        for form_id in [c.form_id for c in self.list_sessions()]:
            self.release(form_id)
