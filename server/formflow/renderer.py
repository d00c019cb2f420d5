"""
Question renderer.

The same per-type branch produces both the builder preview (inputs shown
but inert) and the respondent view (inputs live, current answer shown).
Respondent input is turned into typed answer values by ``capture_answer``.
"""
import logging
import random
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field

from .exceptions import AnswerRejected
from .form_builder import Form
from .options import OptionItem
from .questions import (
    ChoicePayload,
    FilePayload,
    GridPayload,
    ImagePayload,
    NumberPayload,
    Question,
    QuestionType,
    ScalePayload,
    VideoPayload,
)
from .uploads import UploadResult, check_upload, video_embed_url
from .validators import as_text, parse_date, parse_time, validate_text

logger = logging.getLogger(__name__)

OTHER = "other"


class RenderMode(str, Enum):
    BUILDER_PREVIEW = "builder_preview"
    RESPONDENT_INPUT = "respondent_input"


class AnswerStatus(str, Enum):
    UNANSWERED = "unanswered"
    ANSWERED = "answered"


AnswerValue = Union[None, str, List[str], Dict[str, str]]


class AnswerState(BaseModel):
    """Respondent answer to one question"""
    question_id: str
    status: AnswerStatus = AnswerStatus.UNANSWERED
    value: AnswerValue = None
    other_text: Optional[str] = None


class RenderedChoice(BaseModel):
    value: str
    label: str
    selected: bool = False


class RenderedCell(BaseModel):
    row: str
    column: str
    key: str
    selected: bool = False


class RenderedField(BaseModel):
    """Displayable structure for one question"""
    question_id: str
    question_type: str
    number: Optional[int] = None
    title: str
    description: str = ""
    required: bool = False
    mode: RenderMode
    disabled: bool
    widget: str = "unsupported"
    answerable: bool = True
    placeholder: Optional[str] = None
    value: Any = None
    message: Optional[str] = None

    # choice questions
    choices: List[RenderedChoice] = Field(default_factory=list)
    allow_other: bool = False
    other_label: Optional[str] = None
    other_text: Optional[str] = None

    # grids
    rows: List[RenderedChoice] = Field(default_factory=list)
    columns: List[RenderedChoice] = Field(default_factory=list)
    cells: List[List[RenderedCell]] = Field(default_factory=list)

    # linear scale
    scale_points: List[int] = Field(default_factory=list)
    min_label: Optional[str] = None
    max_label: Optional[str] = None

    # number / file inputs
    min: Optional[float] = None
    max: Optional[float] = None
    accept: Optional[str] = None
    multiple: bool = False

    # media
    media_url: Optional[str] = None
    embed_url: Optional[str] = None
    media_alt: Optional[str] = None
    media_title: Optional[str] = None
    caption: Optional[str] = None


# ---- Rendering ----

def _choices(items: Sequence[OptionItem], selected) -> List[RenderedChoice]:
    return [RenderedChoice(value=o.value, label=o.text, selected=selected(o.value)) for o in items]


def _ordered_options(question: Question, field: RenderedField) -> List[OptionItem]:
    items = list(question.payload.options)
    if question.payload.shuffle_options and field.mode is RenderMode.RESPONDENT_INPUT:
        # seeded by question id so the order is stable between renders
        random.Random(question.id).shuffle(items)
    return items


def _render_text(widget: str, placeholder: str):
    def render(question: Question, field: RenderedField, answer: Optional[AnswerState]) -> RenderedField:
        field.widget = widget
        field.placeholder = placeholder
        field.value = answer.value if answer else None
        if isinstance(question.payload, NumberPayload):
            field.min = question.payload.min
            field.max = question.payload.max
        return field
    return render


def _render_single_choice(widget: str):
    def render(question: Question, field: RenderedField, answer: Optional[AnswerState]) -> RenderedField:
        payload: ChoicePayload = question.payload
        current = answer.value if answer else None
        field.widget = widget
        field.choices = _choices(_ordered_options(question, field), lambda v: v == current)
        field.placeholder = "Select an option" if widget == "select" else None
        _apply_other(payload, field, answer, current == OTHER)
        field.value = current
        return field
    return render


def _render_checkbox(question: Question, field: RenderedField, answer: Optional[AnswerState]) -> RenderedField:
    payload: ChoicePayload = question.payload
    current = list(answer.value or []) if answer else []
    field.widget = "checkbox_group"
    field.choices = _choices(_ordered_options(question, field), lambda v: v in current)
    _apply_other(payload, field, answer, OTHER in current)
    field.value = current
    return field


def _apply_other(payload: ChoicePayload, field: RenderedField, answer: Optional[AnswerState], chosen: bool):
    if not payload.allow_other:
        return
    field.allow_other = True
    field.other_label = payload.other_text or "Other:"
    field.choices.append(RenderedChoice(value=OTHER, label=field.other_label, selected=chosen))
    if chosen and answer:
        field.other_text = answer.other_text


def _render_scale(question: Question, field: RenderedField, answer: Optional[AnswerState]) -> RenderedField:
    payload: ScalePayload = question.payload
    low, high = payload.linear_scale_min, payload.linear_scale_max
    current = answer.value if answer else None
    field.widget = "scale"
    # inverted bounds give an empty range
    field.scale_points = list(range(low, high + 1))
    field.choices = [
        RenderedChoice(value=str(n), label=str(n), selected=current == str(n)) for n in field.scale_points
    ]
    field.min_label = payload.linear_scale_labels.min or str(low)
    field.max_label = payload.linear_scale_labels.max or str(high)
    field.value = current
    return field


def _render_grid(widget: str):
    def render(question: Question, field: RenderedField, answer: Optional[AnswerState]) -> RenderedField:
        payload: GridPayload = question.payload
        current = answer.value if answer else None
        if widget == "grid_radio":
            chosen = dict(current or {})

            def selected(row: OptionItem, col: OptionItem) -> bool:
                return chosen.get(row.value) == col.value
        else:
            keys = set(current or [])

            def selected(row: OptionItem, col: OptionItem) -> bool:
                return grid_key(row.value, col.value) in keys

        field.widget = widget
        field.rows = _choices(payload.grid_rows, lambda v: False)
        field.columns = _choices(payload.grid_columns, lambda v: False)
        field.cells = [
            [
                RenderedCell(
                    row=row.value,
                    column=col.value,
                    key=grid_key(row.value, col.value),
                    selected=selected(row, col),
                )
                for col in payload.grid_columns
            ]
            for row in payload.grid_rows
        ]
        field.value = current
        return field
    return render


def _render_input(widget: str):
    def render(question: Question, field: RenderedField, answer: Optional[AnswerState]) -> RenderedField:
        field.widget = widget
        field.value = answer.value if answer else None
        return field
    return render


def _render_file(question: Question, field: RenderedField, answer: Optional[AnswerState]) -> RenderedField:
    payload: FilePayload = question.payload
    field.widget = "file_input"
    field.accept = ",".join(payload.file_types) if payload.file_types else None
    field.multiple = payload.allow_multiple
    field.value = list(answer.value or []) if answer else []
    return field


def _render_paragraph(question: Question, field: RenderedField, answer: Optional[AnswerState]) -> RenderedField:
    field.widget = "paragraph"
    field.answerable = False
    field.caption = question.description or "Paragraph text"
    return field


def _render_heading(question: Question, field: RenderedField, answer: Optional[AnswerState]) -> RenderedField:
    field.widget = "heading"
    field.answerable = False
    return field


def _render_image(question: Question, field: RenderedField, answer: Optional[AnswerState]) -> RenderedField:
    payload: ImagePayload = question.payload
    field.widget = "image"
    field.answerable = False
    field.media_url = payload.image_url
    field.media_alt = payload.image_alt or "Question image"
    field.media_title = payload.image_title
    field.caption = payload.image_alt
    return field


def _render_video(question: Question, field: RenderedField, answer: Optional[AnswerState]) -> RenderedField:
    payload: VideoPayload = question.payload
    field.widget = "video"
    field.answerable = False
    field.media_url = payload.video_url
    field.embed_url = video_embed_url(payload.video_url)
    field.media_title = payload.video_title
    field.caption = payload.video_description
    return field


Renderer = Callable[[Question, RenderedField, Optional[AnswerState]], RenderedField]

_RENDERERS: Dict[QuestionType, Renderer] = {
    QuestionType.SHORT_TEXT: _render_text("text_input", "Your answer"),
    QuestionType.LONG_TEXT: _render_text("textarea", "Your answer"),
    QuestionType.EMAIL: _render_text("email_input", "Enter your email"),
    QuestionType.NUMBER: _render_text("number_input", "Enter a number"),
    QuestionType.MULTIPLE_CHOICE: _render_single_choice("radio_group"),
    QuestionType.DROPDOWN: _render_single_choice("select"),
    QuestionType.CHECKBOX: _render_checkbox,
    QuestionType.LINEAR_SCALE: _render_scale,
    QuestionType.MULTIPLE_CHOICE_GRID: _render_grid("grid_radio"),
    QuestionType.CHECKBOX_GRID: _render_grid("grid_checkbox"),
    QuestionType.DATE: _render_input("date_input"),
    QuestionType.TIME: _render_input("time_input"),
    QuestionType.FILE_UPLOAD: _render_file,
    QuestionType.PARAGRAPH: _render_paragraph,
    QuestionType.TITLE_DESCRIPTION: _render_heading,
    QuestionType.IMAGE: _render_image,
    QuestionType.VIDEO: _render_video,
}

_unrendered = set(QuestionType) - set(_RENDERERS)
if _unrendered:
    raise RuntimeError(f"Question types without a renderer: {sorted(t.value for t in _unrendered)}")


def render(
    question: Question,
    mode: RenderMode = RenderMode.RESPONDENT_INPUT,
    current_answer: Optional[AnswerState] = None,
    number: Optional[int] = None,
) -> RenderedField:
    mode = RenderMode(mode)
    question_type = getattr(question.type, "value", str(question.type))
    field = RenderedField(
        question_id=question.id,
        question_type=question_type,
        number=number,
        title=question.title,
        description=question.description or "",
        required=question.required,
        mode=mode,
        disabled=mode is RenderMode.BUILDER_PREVIEW,
    )
    renderer = _RENDERERS.get(question.type)
    if renderer is None:
        logger.warning(f"No renderer for question type '{question_type}' ({question.id})")
        field.answerable = False
        field.message = "Unsupported question type"
        return field

    answer = current_answer if mode is RenderMode.RESPONDENT_INPUT else None
    return renderer(question, field, answer)


def render_form(
    form: Form,
    mode: RenderMode = RenderMode.RESPONDENT_INPUT,
    answers: Optional[Dict[str, AnswerState]] = None,
) -> List[RenderedField]:
    """Render every question in order; only answerable ones are numbered"""
    answers = answers or {}
    fields = []
    number = 0
    for question in form.questions:
        current = None
        if question.type in _RENDERERS and question.answerable:
            number += 1
            current = number
        fields.append(render(question, mode, answers.get(question.id), current))
    return fields


# ---- Answer capture ----

def grid_key(row_value: str, column_value: str) -> str:
    # keyed by value, not id: rows (or columns) with the same text share an answer
    return f"{row_value}-{column_value}"


def _toggle(items: List[str], value: str) -> List[str]:
    if value in items:
        return [item for item in items if item != value]
    return items + [value]


def _choice_values(question: Question) -> List[str]:
    payload: ChoicePayload = question.payload
    values = [o.value for o in payload.options]
    if payload.allow_other:
        values.append(OTHER)
    return values


def _capture_text(question: Question, state: AnswerState, raw: Any) -> str:
    value = as_text(raw)
    error = validate_text(question, value)
    if error:
        raise AnswerRejected(error)
    return value


def _capture_single_choice(question: Question, state: AnswerState, raw: Any) -> str:
    value = as_text(raw)
    if value not in _choice_values(question):
        raise AnswerRejected("Please choose one of the listed options.")
    return value


def _capture_checkbox(question: Question, state: AnswerState, raw: Any) -> List[str]:
    value = as_text(raw)
    if value not in _choice_values(question):
        raise AnswerRejected("Please choose one of the listed options.")
    return _toggle(list(state.value or []), value)


def _capture_scale(question: Question, state: AnswerState, raw: Any) -> str:
    payload: ScalePayload = question.payload
    try:
        point = int(as_text(raw))
    except ValueError:
        raise AnswerRejected("Please pick a point on the scale.")
    if not payload.linear_scale_min <= point <= payload.linear_scale_max:
        raise AnswerRejected(
            f"Please pick a value between {payload.linear_scale_min} and {payload.linear_scale_max}."
        )
    return str(point)


def _grid_cell(question: Question, raw: Any) -> Tuple[str, str]:
    payload: GridPayload = question.payload
    if isinstance(raw, dict):
        row, column = raw.get("row"), raw.get("column")
    else:
        try:
            row, column = raw
        except (TypeError, ValueError):
            raise AnswerRejected("Please choose a cell in the grid.")
    if row not in {r.value for r in payload.grid_rows} or column not in {c.value for c in payload.grid_columns}:
        raise AnswerRejected("Please choose a cell in the grid.")
    return row, column


def _capture_choice_grid(question: Question, state: AnswerState, raw: Any) -> Dict[str, str]:
    row, column = _grid_cell(question, raw)
    chosen = dict(state.value or {})
    chosen[row] = column
    return chosen


def _capture_checkbox_grid(question: Question, state: AnswerState, raw: Any) -> List[str]:
    row, column = _grid_cell(question, raw)
    return _toggle(list(state.value or []), grid_key(row, column))


def _capture_date(question: Question, state: AnswerState, raw: Any) -> str:
    value = parse_date(raw)
    if value is None:
        raise AnswerRejected("Invalid date format. Try MM/DD/YYYY or YYYY-MM-DD")
    return value


def _capture_time(question: Question, state: AnswerState, raw: Any) -> str:
    value = parse_time(raw)
    if value is None:
        raise AnswerRejected("Invalid time format. Try HH:MM")
    return value


def _capture_file(question: Question, state: AnswerState, raw: Any) -> List[str]:
    upload = raw if isinstance(raw, UploadResult) else UploadResult.model_validate(raw)
    check_upload(question, upload)
    urls = list(state.value or [])
    if upload.url in urls:
        return urls
    if question.payload.allow_multiple:
        return urls + [upload.url]
    return [upload.url]


Capturer = Callable[[Question, AnswerState, Any], AnswerValue]

_CAPTURERS: Dict[QuestionType, Optional[Capturer]] = {
    QuestionType.SHORT_TEXT: _capture_text,
    QuestionType.LONG_TEXT: _capture_text,
    QuestionType.EMAIL: _capture_text,
    QuestionType.NUMBER: _capture_text,
    QuestionType.MULTIPLE_CHOICE: _capture_single_choice,
    QuestionType.DROPDOWN: _capture_single_choice,
    QuestionType.CHECKBOX: _capture_checkbox,
    QuestionType.LINEAR_SCALE: _capture_scale,
    QuestionType.MULTIPLE_CHOICE_GRID: _capture_choice_grid,
    QuestionType.CHECKBOX_GRID: _capture_checkbox_grid,
    QuestionType.DATE: _capture_date,
    QuestionType.TIME: _capture_time,
    QuestionType.FILE_UPLOAD: _capture_file,
    QuestionType.PARAGRAPH: None,
    QuestionType.TITLE_DESCRIPTION: None,
    QuestionType.IMAGE: None,
    QuestionType.VIDEO: None,
}

_uncaptured = set(QuestionType) - set(_CAPTURERS)
if _uncaptured:
    raise RuntimeError(f"Question types without answer capture: {sorted(t.value for t in _uncaptured)}")


def capture_answer(question: Question, state: Optional[AnswerState], raw: Any) -> AnswerState:
    """Turn one respondent input event into the question's new answer state.

    Raises AnswerRejected when the input is not acceptable; the given state
    is left as it was. Display-only questions never change state.
    """
    if state is None:
        state = AnswerState(question_id=question.id)
    capture = _CAPTURERS.get(question.type)
    if capture is None:
        return state

    value = capture(question, state, raw)
    if state.status is AnswerStatus.UNANSWERED and value in ("", None):
        return state
    return state.model_copy(update={"status": AnswerStatus.ANSWERED, "value": value})


def capture_other_text(question: Question, state: Optional[AnswerState], text: str) -> AnswerState:
    """Store the free text typed next to the "Other" choice"""
    if state is None:
        state = AnswerState(question_id=question.id)
    payload = question.payload
    if not isinstance(payload, ChoicePayload) or not payload.allow_other:
        return state
    return state.model_copy(update={"other_text": text})


def remove_uploaded_file(question: Question, state: AnswerState, url: str) -> AnswerState:
    if not isinstance(question.payload, FilePayload) or url not in (state.value or []):
        return state
    return state.model_copy(update={"value": [u for u in state.value if u != url]})
