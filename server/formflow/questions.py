"""
Question model and type registry - every supported question type, the
payload shape it carries, and the defaults it is created with
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, FrozenSet, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field

from .options import OptionItem, create_option, new_id

logger = logging.getLogger(__name__)


class QuestionType(str, Enum):
    """All question types the builder can place on a form"""
    SHORT_TEXT = "short_text"
    LONG_TEXT = "long_text"
    MULTIPLE_CHOICE = "multiple_choice"
    CHECKBOX = "checkbox"
    DROPDOWN = "dropdown"
    LINEAR_SCALE = "linear_scale"
    MULTIPLE_CHOICE_GRID = "multiple_choice_grid"
    CHECKBOX_GRID = "checkbox_grid"
    DATE = "date"
    TIME = "time"
    FILE_UPLOAD = "file_upload"
    EMAIL = "email"
    NUMBER = "number"
    PARAGRAPH = "paragraph"
    TITLE_DESCRIPTION = "title_description"
    IMAGE = "image"
    VIDEO = "video"


class Shape(str, Enum):
    """Payload shapes; several question types can share one shape"""
    CHOICE = "choice"
    GRID = "grid"
    SCALE = "scale"
    FILE = "file"
    TEXT = "text"
    NUMBER = "number"
    IMAGE = "image"
    VIDEO = "video"
    EMPTY = "empty"


# ---- Payloads ----

class Payload(BaseModel):
    """Type-dependent part of a question.

    ``settings_fields`` and ``validation_fields`` say which payload fields
    an update may reach through the ``settings`` and ``validation`` bags.
    """
    settings_fields: ClassVar[FrozenSet[str]] = frozenset()
    validation_fields: ClassVar[FrozenSet[str]] = frozenset()

    def settings_view(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in sorted(self.settings_fields)}

    def validation_view(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in sorted(self.validation_fields)}


class ChoicePayload(Payload):
    shape: Literal["choice"] = "choice"
    options: List[OptionItem] = Field(default_factory=list)
    allow_other: bool = False
    other_text: str = "Other:"
    shuffle_options: bool = False

    settings_fields: ClassVar[FrozenSet[str]] = frozenset({"allow_other", "other_text", "shuffle_options"})


class GridPayload(Payload):
    shape: Literal["grid"] = "grid"
    grid_rows: List[OptionItem] = Field(default_factory=list)
    grid_columns: List[OptionItem] = Field(default_factory=list)


class ScaleLabels(BaseModel):
    min: Optional[str] = None
    max: Optional[str] = None


class ScalePayload(Payload):
    shape: Literal["scale"] = "scale"
    linear_scale_min: int = 1
    linear_scale_max: int = 5
    linear_scale_labels: ScaleLabels = Field(default_factory=ScaleLabels)

    settings_fields: ClassVar[FrozenSet[str]] = frozenset(
        {"linear_scale_min", "linear_scale_max", "linear_scale_labels"}
    )

    def settings_view(self) -> Dict[str, Any]:
        view = super().settings_view()
        view["linear_scale_labels"] = self.linear_scale_labels.model_dump()
        return view


class FilePayload(Payload):
    shape: Literal["file"] = "file"
    allow_multiple: bool = False
    file_types: Optional[List[str]] = None
    max_file_size: Optional[int] = None

    settings_fields: ClassVar[FrozenSet[str]] = frozenset({"allow_multiple"})
    validation_fields: ClassVar[FrozenSet[str]] = frozenset({"file_types", "max_file_size"})


class TextPayload(Payload):
    shape: Literal["text"] = "text"
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None

    validation_fields: ClassVar[FrozenSet[str]] = frozenset({"min_length", "max_length", "pattern"})


class NumberPayload(Payload):
    shape: Literal["number"] = "number"
    min: Optional[float] = None
    max: Optional[float] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None

    validation_fields: ClassVar[FrozenSet[str]] = frozenset(
        {"min", "max", "min_length", "max_length", "pattern"}
    )


class ImagePayload(Payload):
    shape: Literal["image"] = "image"
    image_url: Optional[str] = None
    image_alt: Optional[str] = None
    image_title: Optional[str] = None

    settings_fields: ClassVar[FrozenSet[str]] = frozenset({"image_url", "image_alt", "image_title"})


class VideoPayload(Payload):
    shape: Literal["video"] = "video"
    video_url: Optional[str] = None
    video_title: Optional[str] = None
    video_description: Optional[str] = None

    settings_fields: ClassVar[FrozenSet[str]] = frozenset({"video_url", "video_title", "video_description"})


class EmptyPayload(Payload):
    shape: Literal["empty"] = "empty"


QuestionPayload = Annotated[
    Union[
        ChoicePayload,
        GridPayload,
        ScalePayload,
        FilePayload,
        TextPayload,
        NumberPayload,
        ImagePayload,
        VideoPayload,
        EmptyPayload,
    ],
    Field(discriminator="shape"),
]

PAYLOAD_CLASSES: Dict[Shape, type] = {
    Shape.CHOICE: ChoicePayload,
    Shape.GRID: GridPayload,
    Shape.SCALE: ScalePayload,
    Shape.FILE: FilePayload,
    Shape.TEXT: TextPayload,
    Shape.NUMBER: NumberPayload,
    Shape.IMAGE: ImagePayload,
    Shape.VIDEO: VideoPayload,
    Shape.EMPTY: EmptyPayload,
}


class Question(BaseModel):
    """One data-collecting or display unit of a form.

    ``payload`` holds only what the current ``type`` uses. Payloads left
    behind by earlier types are parked in ``retained`` (keyed by shape) so
    that switching back restores them.
    """
    id: str = Field(default_factory=new_id)
    type: QuestionType
    title: str = "Untitled Question"
    description: str = ""
    required: bool = False
    payload: QuestionPayload = Field(default_factory=EmptyPayload)
    retained: Dict[str, QuestionPayload] = Field(default_factory=dict)

    @property
    def shape(self) -> Shape:
        return Shape(self.payload.shape)

    @property
    def options(self) -> Optional[List[OptionItem]]:
        return self.payload.options if isinstance(self.payload, ChoicePayload) else None

    @property
    def grid_rows(self) -> Optional[List[OptionItem]]:
        return self.payload.grid_rows if isinstance(self.payload, GridPayload) else None

    @property
    def grid_columns(self) -> Optional[List[OptionItem]]:
        return self.payload.grid_columns if isinstance(self.payload, GridPayload) else None

    @property
    def settings(self) -> Dict[str, Any]:
        return self.payload.settings_view()

    @property
    def validation(self) -> Dict[str, Any]:
        return self.payload.validation_view()

    @property
    def answerable(self) -> bool:
        return type_descriptor(self.type).answerable


# ---- Type registry ----

@dataclass(frozen=True)
class TypeDescriptor:
    shape: Shape
    label: str
    answerable: bool = True
    default_options_count: int = 0
    default_grid_size: Tuple[int, int] = (0, 0)
    default_validation: Dict[str, Any] = field(default_factory=dict)
    default_settings: Dict[str, Any] = field(default_factory=dict)

    @property
    def uses_options(self) -> bool:
        return self.shape is Shape.CHOICE

    @property
    def uses_grid(self) -> bool:
        return self.shape is Shape.GRID

    @property
    def uses_scale(self) -> bool:
        return self.shape is Shape.SCALE

    @property
    def uses_media(self) -> bool:
        return self.shape in (Shape.IMAGE, Shape.VIDEO)


DEFAULT_FILE_TYPES = ["image/*", "application/pdf"]
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB

_CHOICE_SETTINGS = {"allow_other": False, "other_text": "Other:", "shuffle_options": False}

TYPE_REGISTRY: Dict[QuestionType, TypeDescriptor] = {
    QuestionType.SHORT_TEXT: TypeDescriptor(Shape.TEXT, "Short Answer"),
    QuestionType.LONG_TEXT: TypeDescriptor(Shape.TEXT, "Paragraph"),
    QuestionType.MULTIPLE_CHOICE: TypeDescriptor(
        Shape.CHOICE, "Multiple Choice", default_options_count=2, default_settings=_CHOICE_SETTINGS
    ),
    QuestionType.CHECKBOX: TypeDescriptor(
        Shape.CHOICE, "Checkboxes", default_options_count=2, default_settings=_CHOICE_SETTINGS
    ),
    QuestionType.DROPDOWN: TypeDescriptor(Shape.CHOICE, "Dropdown", default_options_count=2),
    QuestionType.LINEAR_SCALE: TypeDescriptor(
        Shape.SCALE, "Linear Scale", default_settings={"linear_scale_min": 1, "linear_scale_max": 5}
    ),
    QuestionType.MULTIPLE_CHOICE_GRID: TypeDescriptor(
        Shape.GRID, "Multiple Choice Grid", default_grid_size=(2, 3)
    ),
    QuestionType.CHECKBOX_GRID: TypeDescriptor(Shape.GRID, "Checkbox Grid", default_grid_size=(2, 3)),
    QuestionType.DATE: TypeDescriptor(Shape.EMPTY, "Date"),
    QuestionType.TIME: TypeDescriptor(Shape.EMPTY, "Time"),
    QuestionType.FILE_UPLOAD: TypeDescriptor(
        Shape.FILE,
        "File Upload",
        default_validation={"file_types": DEFAULT_FILE_TYPES, "max_file_size": DEFAULT_MAX_FILE_SIZE},
        default_settings={"allow_multiple": False},
    ),
    QuestionType.EMAIL: TypeDescriptor(Shape.TEXT, "Email"),
    QuestionType.NUMBER: TypeDescriptor(Shape.NUMBER, "Number"),
    QuestionType.PARAGRAPH: TypeDescriptor(Shape.EMPTY, "Paragraph Text", answerable=False),
    QuestionType.TITLE_DESCRIPTION: TypeDescriptor(Shape.EMPTY, "Title & Description", answerable=False),
    QuestionType.IMAGE: TypeDescriptor(Shape.IMAGE, "Image", answerable=False),
    QuestionType.VIDEO: TypeDescriptor(Shape.VIDEO, "Video", answerable=False),
}

_missing = set(QuestionType) - set(TYPE_REGISTRY)
if _missing:
    raise RuntimeError(f"Question types without a descriptor: {sorted(t.value for t in _missing)}")


def type_descriptor(question_type: QuestionType) -> TypeDescriptor:
    return TYPE_REGISTRY[QuestionType(question_type)]


def default_payload(question_type: QuestionType) -> Payload:
    """Build the payload a freshly created question of this type starts with"""
    descriptor = type_descriptor(question_type)
    values: Dict[str, Any] = {}
    values.update(descriptor.default_settings)
    values.update(descriptor.default_validation)

    if descriptor.uses_options:
        values["options"] = [
            create_option(f"Option {i + 1}") for i in range(descriptor.default_options_count)
        ]
    if descriptor.uses_grid:
        rows, columns = descriptor.default_grid_size
        values["grid_rows"] = [create_option(f"Row {i + 1}") for i in range(rows)]
        values["grid_columns"] = [create_option(f"Column {i + 1}") for i in range(columns)]

    # copy list defaults so no two questions share a list
    for key, value in list(values.items()):
        if isinstance(value, list):
            values[key] = list(value)

    return PAYLOAD_CLASSES[descriptor.shape](**values)


def create_question(question_type: QuestionType) -> Question:
    question_type = QuestionType(question_type)
    if question_type is QuestionType.TITLE_DESCRIPTION:
        question = Question(
            type=question_type,
            title="Untitled Title",
            description="Description (optional)",
        )
    else:
        question = Question(type=question_type, payload=default_payload(question_type))
    logger.debug(f"Created {question_type.value} question {question.id}")
    return question
