"""
Option and grid cell values shared by choice and grid questions
"""
import re
import uuid

from pydantic import BaseModel, ConfigDict, Field

_WHITESPACE_RE = re.compile(r"\s+")


def slugify(text: str) -> str:
    """Lowercase the text and collapse every whitespace run into one underscore."""
    return _WHITESPACE_RE.sub("_", text.lower())


def new_id() -> str:
    return str(uuid.uuid4())


class OptionItem(BaseModel):
    """A selectable choice, grid row or grid column.

    ``value`` always mirrors ``slugify(text)``; build items through
    ``create_option`` / ``rename_option`` rather than setting it by hand.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    text: str
    value: str


def create_option(text: str) -> OptionItem:
    return OptionItem(id=new_id(), text=text, value=slugify(text))


def rename_option(option: OptionItem, new_text: str) -> OptionItem:
    return option.model_copy(update={"text": new_text, "value": slugify(new_text)})


def clone_option(option: OptionItem) -> OptionItem:
    """Copy an option under a freshly minted id."""
    return option.model_copy(update={"id": new_id()})
