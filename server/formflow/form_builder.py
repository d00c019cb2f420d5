"""
Form aggregate - the ordered question list plus form metadata, settings
and theme, and the pure operations the builder performs on it.

Every operation returns a new Form with ``updated_at`` bumped, or the very
same Form object when there was nothing to do (unknown id, index out of
range), so a no-op never counts as an edit.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, PositiveInt, ValidationError

from . import editing
from .exceptions import CorruptFormError, ValidationRejected
from .options import new_id
from .questions import Question, QuestionType, create_question

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Theme(BaseModel):
    primary_color: str = "#673AB7"
    background_color: str = "#ffffff"
    font_family: str = "Inter"


class FormSettings(BaseModel):
    allow_anonymous: bool = True
    collect_email: bool = False
    show_progress_bar: bool = True
    allow_multiple_responses: bool = True
    response_limit: Optional[PositiveInt] = None
    theme: Theme = Field(default_factory=Theme)


class Form(BaseModel):
    """Complete form definition"""
    id: str = Field(default_factory=new_id)
    title: str = "Untitled Form"
    description: str = ""
    questions: List[Question] = Field(default_factory=list)
    settings: FormSettings = Field(default_factory=FormSettings)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def get_question(self, question_id: str) -> Optional[Question]:
        return next((q for q in self.questions if q.id == question_id), None)

    def index_of(self, question_id: str) -> int:
        for index, question in enumerate(self.questions):
            if question.id == question_id:
                return index
        return -1


def _touch(form: Form, **changes: Any) -> Form:
    # strictly increasing, even when the clock does not move between edits
    now = max(utcnow(), form.updated_at + timedelta(microseconds=1))
    changes["updated_at"] = now
    return form.model_copy(update=changes)


def create_form(title: str = "Untitled Form", description: str = "") -> Form:
    now = utcnow()
    form = Form(title=title, description=description, created_at=now, updated_at=now)
    logger.info(f"Created form {form.id} - {form.title}")
    return form


# ---- Question operations ----

def add_question(form: Form, question_type: QuestionType) -> Tuple[Form, str]:
    """Append a new question; returns the new form and the new question's id"""
    question = create_question(question_type)
    return _touch(form, questions=form.questions + [question]), question.id


def update_question(form: Form, question_id: str, update: Dict[str, Any]) -> Form:
    return edit_question(form, question_id, editing.apply_update, update)


def edit_question(
    form: Form,
    question_id: str,
    edit: Callable[..., Question],
    *args: Any,
    **kwargs: Any,
) -> Form:
    """Apply any edit engine function to the question with this id"""
    index = form.index_of(question_id)
    if index < 0:
        logger.debug(f"Question {question_id} not in form {form.id}; edit ignored")
        return form
    original = form.questions[index]
    edited = edit(original, *args, **kwargs)
    if edited is original:
        return form
    questions = list(form.questions)
    questions[index] = edited
    return _touch(form, questions=questions)


def delete_question(form: Form, question_id: str) -> Form:
    index = form.index_of(question_id)
    if index < 0:
        logger.debug(f"Question {question_id} already gone from form {form.id}")
        return form
    return _touch(form, questions=form.questions[:index] + form.questions[index + 1:])


def duplicate_question(form: Form, question_id: str) -> Form:
    """Append a copy of the question at the end of the form"""
    original = form.get_question(question_id)
    if original is None:
        return form
    copy = editing.duplicate_question(original)
    return _touch(form, questions=form.questions + [copy])


def move_question(form: Form, from_index: int, to_index: int) -> Form:
    """Remove the question at ``from_index`` and reinsert it at ``to_index``"""
    count = len(form.questions)
    if not (0 <= from_index < count and 0 <= to_index < count):
        logger.debug(f"Move {from_index} -> {to_index} out of range for {count} questions")
        return form
    if from_index == to_index:
        return form
    questions = list(form.questions)
    questions.insert(to_index, questions.pop(from_index))
    return _touch(form, questions=questions)


# ---- Form-level operations ----

def update_form_details(form: Form, title: Optional[str] = None, description: Optional[str] = None) -> Form:
    changes = {}
    if title is not None:
        changes["title"] = title
    if description is not None:
        changes["description"] = description
    return _touch(form, **changes) if changes else form


def update_form_settings(form: Form, update: Dict[str, Any]) -> Form:
    """Merge settings key by key; ``theme`` is merged the same way"""
    if not update:
        return form
    data = form.settings.model_dump()
    for key, value in update.items():
        if key == "theme":
            data["theme"].update(value.model_dump() if isinstance(value, Theme) else dict(value or {}))
        elif key in FormSettings.model_fields:
            data[key] = value
        else:
            logger.debug(f"Ignoring unknown form setting '{key}'")
    try:
        settings = FormSettings.model_validate(data)
    except ValidationError as e:
        raise ValidationRejected(f"Invalid form settings: {e.errors()[0]['msg']}") from e
    if settings == form.settings:
        return form
    return _touch(form, settings=settings)


def duplicate_form(form: Form) -> Form:
    """Copy of the whole form under new ids, with fresh timestamps"""
    now = utcnow()
    copy = form.model_copy(
        update={
            "id": new_id(),
            "title": f"{form.title} (Copy)",
            "questions": [_copy_question(q) for q in form.questions],
            "settings": form.settings.model_copy(deep=True),
            "created_at": now,
            "updated_at": now,
        }
    )
    logger.info(f"Duplicated form {form.id} as {copy.id}")
    return copy


def _copy_question(question: Question) -> Question:
    copy = editing.duplicate_question(question)
    return copy.model_copy(update={"title": question.title})


# ---- Structural checks ----

def validate_form(form: Form) -> Form:
    """Refuse a structurally broken form instead of repairing it"""
    seen = set()
    for question in form.questions:
        if question.id in seen:
            raise CorruptFormError(f"Form {form.id} has duplicate question id {question.id}")
        seen.add(question.id)

        payloads = [question.payload] + list(question.retained.values())
        for payload in payloads:
            for name in ("options", "grid_rows", "grid_columns"):
                items = getattr(payload, name, None)
                if items is None:
                    continue
                ids = [item.id for item in items]
                if len(ids) != len(set(ids)):
                    raise CorruptFormError(
                        f"Question {question.id} in form {form.id} has duplicate {name} ids"
                    )
    if form.updated_at < form.created_at:
        raise CorruptFormError(f"Form {form.id} was updated before it was created")
    return form
