"""
Question edit engine.

Every function here takes a Question and returns a Question. Inputs are
never mutated; when an edit has nothing to do (unknown option id, blank
option text, a field the current type does not use) the very same
Question object comes back, so callers can detect no-ops with ``is``.
"""
import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ValidationError

from . import options as option_model
from .exceptions import ValidationRejected
from .options import OptionItem, clone_option
from .questions import (
    ChoicePayload,
    GridPayload,
    Payload,
    Question,
    QuestionType,
    ScaleLabels,
    ScalePayload,
    Shape,
    default_payload,
    type_descriptor,
)

logger = logging.getLogger(__name__)

_TOP_LEVEL_FIELDS = ("title", "description", "required")
_LIST_FIELDS = {
    "options": ChoicePayload,
    "grid_rows": GridPayload,
    "grid_columns": GridPayload,
}


def _with_payload(question: Question, payload: Payload) -> Question:
    return question.model_copy(update={"payload": payload})


def _validated(model: BaseModel, changes: Dict[str, Any], what: str):
    """Copy of ``model`` with ``changes`` applied and type-checked"""
    try:
        return type(model).model_validate({**model.model_dump(), **changes})
    except ValidationError as e:
        error = e.errors()[0]
        field_name = ".".join(str(part) for part in error["loc"]) or what
        raise ValidationRejected(f"Invalid {what} '{field_name}': {error['msg']}") from e


def _merge_bag(payload: Payload, bag: Dict[str, Any], allowed, bag_name: str) -> Payload:
    """Merge one settings/validation bag into the payload, key by key"""
    changes: Dict[str, Any] = {}
    for key, value in bag.items():
        if key not in allowed:
            logger.debug(f"Ignoring {bag_name} key '{key}' for {payload.shape} payload")
            continue
        if key == "linear_scale_labels":
            current = payload.linear_scale_labels.model_dump()
            current.update(value.model_dump() if isinstance(value, ScaleLabels) else dict(value or {}))
            value = current
        changes[key] = value
    if not changes:
        return payload
    return _validated(payload, changes, bag_name)


# ---- General update ----

def apply_update(question: Question, update: Dict[str, Any]) -> Question:
    """Apply a partial update.

    Top-level fields are replaced, ``settings`` and ``validation`` are
    merged key by key into the active payload, and ``type`` goes through
    ``retype`` so the payload follows the new type. Values of the wrong
    type raise ValidationRejected and nothing is applied.
    """
    result = question

    if "type" in update and update["type"] is not None:
        result = retype(result, update["type"])

    top = {key: update[key] for key in _TOP_LEVEL_FIELDS if update.get(key) is not None}
    if "description" in update:
        top["description"] = update["description"] or ""
    if top:
        result = _validated(result, top, "question field")

    payload = result.payload
    for key, payload_cls in _LIST_FIELDS.items():
        if key not in update:
            continue
        if not isinstance(payload, payload_cls):
            logger.debug(f"Ignoring '{key}' for {result.type.value} question {result.id}")
            continue
        items = [item if isinstance(item, OptionItem) else _coerce_option(item) for item in update[key] or []]
        payload = payload.model_copy(update={key: items})

    if update.get("settings"):
        payload = _merge_bag(payload, update["settings"], payload.settings_fields, "settings")
    if update.get("validation"):
        payload = _merge_bag(payload, update["validation"], payload.validation_fields, "validation")

    if payload is not result.payload:
        result = _with_payload(result, payload)
    return result


def _coerce_option(item: Any) -> OptionItem:
    if isinstance(item, str):
        return option_model.create_option(item)
    data = dict(item)
    text = data.get("text") or ""
    if not isinstance(text, str):
        raise ValidationRejected("Option text must be a string.")
    if data.get("id"):
        return OptionItem(id=str(data["id"]), text=text, value=option_model.slugify(text))
    return option_model.create_option(text)


def set_title(question: Question, title: str) -> Question:
    return question.model_copy(update={"title": title})


def set_description(question: Question, description: Optional[str]) -> Question:
    return question.model_copy(update={"description": description or ""})


def set_required(question: Question, required: bool) -> Question:
    return question.model_copy(update={"required": bool(required)})


def update_settings(question: Question, **settings) -> Question:
    return apply_update(question, {"settings": settings})


def update_validation(question: Question, **rules) -> Question:
    return apply_update(question, {"validation": rules})


# ---- Type changes ----

def retype(question: Question, new_type: QuestionType) -> Question:
    """Change the question type without losing data from the previous type.

    When the new type keeps the same payload shape (e.g. multiple choice to
    checkboxes) the payload stays as it is. Otherwise the current payload is
    parked in ``retained`` and the new one is restored from there or built
    from the registry defaults.
    """
    new_type = QuestionType(new_type)
    if new_type is question.type:
        return question

    new_shape = type_descriptor(new_type).shape
    if new_shape is question.shape:
        return question.model_copy(update={"type": new_type})

    retained = dict(question.retained)
    if question.shape is not Shape.EMPTY:
        retained[question.shape.value] = question.payload
    payload = retained.pop(new_shape.value, None)
    if payload is None:
        payload = default_payload(new_type)
        logger.debug(f"Materialized default {new_shape.value} payload for question {question.id}")

    return question.model_copy(update={"type": new_type, "payload": payload, "retained": retained})


# ---- Options ----

def _edit_items(
    question: Question,
    payload_cls: type,
    field_name: str,
    edit: Callable[[List[OptionItem]], Optional[List[OptionItem]]],
) -> Question:
    payload = question.payload
    if not isinstance(payload, payload_cls):
        logger.debug(f"{question.type.value} question {question.id} has no {field_name}")
        return question
    items = edit(list(getattr(payload, field_name)))
    if items is None:
        return question
    return _with_payload(question, payload.model_copy(update={field_name: items}))


def _append(text: Optional[str], default_label: str):
    def edit(items: List[OptionItem]):
        label = f"{default_label} {len(items) + 1}" if text is None else text.strip()
        if not label:
            logger.debug(f"Rejected blank {default_label.lower()} text")
            return None
        return items + [option_model.create_option(label)]
    return edit


def _remove(item_id: str):
    def edit(items: List[OptionItem]):
        kept = [item for item in items if item.id != item_id]
        if len(kept) == len(items):
            logger.debug(f"No item {item_id} to remove")
            return None
        return kept
    return edit


def _rename(item_id: str, text: str):
    def edit(items: List[OptionItem]):
        if not text or not text.strip():
            logger.debug(f"Rejected blank rename of {item_id}")
            return None
        renamed, found = [], False
        for item in items:
            if item.id == item_id:
                item = option_model.rename_option(item, text)
                found = True
            renamed.append(item)
        return renamed if found else None
    return edit


def add_option(question: Question, text: str) -> Question:
    if text is None or not text.strip():
        return question
    return _edit_items(question, ChoicePayload, "options", _append(text, "Option"))


def remove_option(question: Question, option_id: str) -> Question:
    return _edit_items(question, ChoicePayload, "options", _remove(option_id))


def rename_option(question: Question, option_id: str, text: str) -> Question:
    return _edit_items(question, ChoicePayload, "options", _rename(option_id, text))


# ---- Grid rows / columns ----

def add_grid_row(question: Question, text: Optional[str] = None) -> Question:
    return _edit_items(question, GridPayload, "grid_rows", _append(text, "Row"))


def remove_grid_row(question: Question, row_id: str) -> Question:
    return _edit_items(question, GridPayload, "grid_rows", _remove(row_id))


def rename_grid_row(question: Question, row_id: str, text: str) -> Question:
    return _edit_items(question, GridPayload, "grid_rows", _rename(row_id, text))


def add_grid_column(question: Question, text: Optional[str] = None) -> Question:
    return _edit_items(question, GridPayload, "grid_columns", _append(text, "Column"))


def remove_grid_column(question: Question, column_id: str) -> Question:
    return _edit_items(question, GridPayload, "grid_columns", _remove(column_id))


def rename_grid_column(question: Question, column_id: str, text: str) -> Question:
    return _edit_items(question, GridPayload, "grid_columns", _rename(column_id, text))


# ---- Linear scale ----

def set_scale_bounds(
    question: Question,
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
) -> Question:
    """Set either bound independently. Inverted ranges are allowed."""
    if not isinstance(question.payload, ScalePayload):
        return question
    settings: Dict[str, Any] = {}
    if minimum is not None:
        settings["linear_scale_min"] = int(minimum)
    if maximum is not None:
        settings["linear_scale_max"] = int(maximum)
    return apply_update(question, {"settings": settings}) if settings else question


def set_scale_labels(
    question: Question,
    min_label: Optional[str] = None,
    max_label: Optional[str] = None,
) -> Question:
    labels = {}
    if min_label is not None:
        labels["min"] = min_label
    if max_label is not None:
        labels["max"] = max_label
    if not labels:
        return question
    return apply_update(question, {"settings": {"linear_scale_labels": labels}})


# ---- Duplication ----

def _clone_payload(payload: Payload) -> Payload:
    changes: Dict[str, Any] = {}
    for name in ("options", "grid_rows", "grid_columns"):
        if hasattr(payload, name):
            changes[name] = [clone_option(item) for item in getattr(payload, name)]
    return payload.model_copy(update=changes, deep=True)


def duplicate_question(question: Question) -> Question:
    """Deep copy with fresh ids for the question and every option, row and column"""
    return question.model_copy(
        update={
            "id": option_model.new_id(),
            "title": f"{question.title} (Copy)",
            "payload": _clone_payload(question.payload),
            "retained": {shape: _clone_payload(p) for shape, p in question.retained.items()},
        }
    )
