import re
from datetime import date, datetime, time
from typing import Any, List, Optional, Union

from .questions import NumberPayload, Question, QuestionType, TextPayload

EMAIL_RE = re.compile(r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$")

DATE_FORMATS = ["%Y-%m-%d", "%m/%d/%Y", "%d/%m/%Y", "%B %d, %Y"]
TIME_FORMATS = ["%H:%M", "%H:%M:%S", "%I:%M %p", "%I:%M%p"]


def _check_length(v: str, min_length: Optional[int], max_length: Optional[int]) -> Optional[str]:
    if min_length is not None and len(v) < min_length:
        return f"Answer must be at least {min_length} characters."
    if max_length is not None and len(v) > max_length:
        return f"Answer must be at most {max_length} characters."
    return None


def _check_pattern(v: str, pattern: Optional[str]) -> Optional[str]:
    if not pattern:
        return None
    try:
        if not re.fullmatch(pattern, v):
            return "Answer does not match the required format."
    except re.error:
        # invalid patterns are treated as absent
        return None
    return None


def validate_text(question: Question, value: str) -> Optional[str]:
    """Validate a free-text answer against the question's rules.

    Empty answers pass; whether a question must be answered is decided at
    submission time.
    """
    v = value or ""
    if not v:
        return None

    rules = question.payload
    if question.type is QuestionType.EMAIL:
        if not EMAIL_RE.match(v.strip()):
            return "Invalid email format. Please use format: name@example.com"

    if question.type is QuestionType.NUMBER:
        try:
            fv = float(v)
        except ValueError:
            return "Please enter a valid number."
        if isinstance(rules, NumberPayload):
            if rules.min is not None and fv < rules.min:
                return f"Value must be >= {_fmt(rules.min)}."
            if rules.max is not None and fv > rules.max:
                return f"Value must be <= {_fmt(rules.max)}."

    if isinstance(rules, (TextPayload, NumberPayload)):
        error = _check_length(v, rules.min_length, rules.max_length)
        if error:
            return error
        return _check_pattern(v, rules.pattern)
    return None


def _fmt(number: float) -> str:
    return str(int(number)) if float(number).is_integer() else str(number)


def parse_date(value: Union[str, date, datetime]) -> Optional[str]:
    """Return the ISO date for a date-ish value, or None when it cannot be read"""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    v = (value or "").strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(v, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def parse_time(value: Union[str, time, datetime]) -> Optional[str]:
    """Return the ISO time (HH:MM, or HH:MM:SS when seconds are given)"""
    if isinstance(value, datetime):
        value = value.time()
    if isinstance(value, time):
        return value.isoformat(timespec="seconds" if value.second else "minutes")
    v = (value or "").strip()
    for fmt in TIME_FORMATS:
        try:
            parsed = datetime.strptime(v.upper(), fmt).time()
        except ValueError:
            continue
        return parsed.isoformat(timespec="seconds" if fmt.endswith("%S") else "minutes")
    return None


def mime_type_allowed(mime_type: str, accepted: Optional[List[str]]) -> bool:
    """Match a MIME type against accepted types, where ``image/*`` is a wildcard"""
    if not accepted:
        return True
    for accepted_type in accepted:
        if accepted_type.endswith("/*"):
            if mime_type.startswith(accepted_type[:-1]):
                return True
        elif mime_type == accepted_type:
            return True
    return False


def validate_file(mime_type: str, size_bytes: int, file_types: Optional[List[str]],
                  max_file_size: Optional[int]) -> Optional[str]:
    if max_file_size and size_bytes > max_file_size:
        max_size_mb = round(max_file_size / (1024 * 1024))
        return f"File size must be less than {max_size_mb}MB"
    if not mime_type_allowed(mime_type, file_types):
        allowed = ", ".join(t.replace("/*", "") for t in file_types)
        return f"File type must be one of: {allowed}"
    return None


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
