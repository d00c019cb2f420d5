from pydantic import BaseModel, Field
from typing import Dict, List, Any, Optional

from .questions import QuestionType
from .renderer import AnswerState, RenderedField


class CreateFormRequest(BaseModel):
    title: str = Field("Untitled Form", max_length=200)
    description: str = ""


class UpdateFormRequest(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None


class AddQuestionRequest(BaseModel):
    type: QuestionType


class UpdateQuestionRequest(BaseModel):
    type: Optional[QuestionType] = None
    title: Optional[str] = None
    description: Optional[str] = None
    required: Optional[bool] = None
    options: Optional[List[Dict[str, Any]]] = None
    grid_rows: Optional[List[Dict[str, Any]]] = None
    grid_columns: Optional[List[Dict[str, Any]]] = None
    settings: Optional[Dict[str, Any]] = None
    validation: Optional[Dict[str, Any]] = None


class MoveQuestionRequest(BaseModel):
    from_index: int
    to_index: int


class OptionRequest(BaseModel):
    text: str


class GridItemRequest(BaseModel):
    text: Optional[str] = None


class AnswerRequest(BaseModel):
    question_id: str = Field(..., min_length=1)
    state: Optional[AnswerState] = None
    input: Any = None
    other_text: Optional[str] = None


class AnswerResponse(BaseModel):
    state: AnswerState
    field: RenderedField


class EditResponse(BaseModel):
    changed: bool
    question_id: Optional[str] = None
    form: Dict[str, Any]
    session: Dict[str, Any]


class SaveResponse(BaseModel):
    saved_at: str
    dirty: bool
