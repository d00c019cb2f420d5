"""
Export boundary - read-only projections of a form for people to read.
Not a persistence format; use ``storage`` for that.
"""
import re
from datetime import datetime
from typing import Optional

from .form_builder import Form
from .questions import Question, type_descriptor


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def _question_lines(index: int, question: Question):
    yield f"{index}. {question.title}"
    yield f"   Type: {type_descriptor(question.type).label} ({question.type.value})"
    yield f"   Required: {_yes_no(question.required)}"
    if question.description:
        yield f"   Description: {question.description}"
    if question.options is not None:
        yield f"   Options: {', '.join(o.text for o in question.options)}"
    if question.grid_rows is not None:
        yield f"   Rows: {', '.join(r.text for r in question.grid_rows)}"
        yield f"   Columns: {', '.join(c.text for c in question.grid_columns)}"
    settings = question.settings
    if "linear_scale_min" in settings:
        yield f"   Scale: {settings['linear_scale_min']} to {settings['linear_scale_max']}"


def export_text(form: Form, exported_at: Optional[datetime] = None) -> str:
    """Plain-text summary listing every question in order"""
    exported_at = exported_at or datetime.now()
    lines = [
        "FormFlow - Form Export",
        "=====================",
        "",
        f"Form Title: {form.title}",
        f"Description: {form.description}",
        f"Export Date: {exported_at.date().isoformat()}",
        "",
        "Questions:",
    ]
    for index, question in enumerate(form.questions, start=1):
        lines.append("")
        lines.extend(_question_lines(index, question))

    settings = form.settings
    lines += [
        "",
        "Form Settings:",
        f"- Theme: {settings.theme.primary_color}",
        f"- Collect Email: {_yes_no(settings.collect_email)}",
        f"- Show Progress Bar: {_yes_no(settings.show_progress_bar)}",
        f"- Allow Multiple Responses: {_yes_no(settings.allow_multiple_responses)}",
    ]
    if settings.response_limit:
        lines.append(f"- Response Limit: {settings.response_limit}")
    return "\n".join(lines) + "\n"


def export_json(form: Form) -> str:
    return form.model_dump_json(indent=2)


def export_filename(form: Form, extension: str = "txt") -> str:
    stem = re.sub(r"[^a-z0-9]", "_", form.title, flags=re.IGNORECASE).lower() or "form"
    return f"{stem}_export.{extension}"
