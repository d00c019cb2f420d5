import pytest

from formflow.questions import (
    ChoicePayload,
    EmptyPayload,
    FilePayload,
    GridPayload,
    NumberPayload,
    Question,
    QuestionType,
    ScalePayload,
    Shape,
    TextPayload,
    TYPE_REGISTRY,
    create_question,
    type_descriptor,
)


class TestRegistry:
    def test_every_type_has_a_descriptor(self):
        assert set(TYPE_REGISTRY) == set(QuestionType)

    @pytest.mark.parametrize("question_type,shape", [
        (QuestionType.MULTIPLE_CHOICE, Shape.CHOICE),
        (QuestionType.CHECKBOX, Shape.CHOICE),
        (QuestionType.DROPDOWN, Shape.CHOICE),
        (QuestionType.MULTIPLE_CHOICE_GRID, Shape.GRID),
        (QuestionType.CHECKBOX_GRID, Shape.GRID),
        (QuestionType.LINEAR_SCALE, Shape.SCALE),
        (QuestionType.FILE_UPLOAD, Shape.FILE),
        (QuestionType.SHORT_TEXT, Shape.TEXT),
        (QuestionType.EMAIL, Shape.TEXT),
        (QuestionType.NUMBER, Shape.NUMBER),
        (QuestionType.IMAGE, Shape.IMAGE),
        (QuestionType.VIDEO, Shape.VIDEO),
        (QuestionType.DATE, Shape.EMPTY),
        (QuestionType.PARAGRAPH, Shape.EMPTY),
    ])
    def test_shapes(self, question_type, shape):
        assert type_descriptor(question_type).shape is shape

    def test_flags(self):
        assert type_descriptor(QuestionType.CHECKBOX).uses_options
        assert type_descriptor(QuestionType.CHECKBOX_GRID).uses_grid
        assert type_descriptor(QuestionType.LINEAR_SCALE).uses_scale
        assert type_descriptor(QuestionType.VIDEO).uses_media
        assert not type_descriptor(QuestionType.SHORT_TEXT).uses_options

    @pytest.mark.parametrize("question_type", [
        QuestionType.PARAGRAPH, QuestionType.TITLE_DESCRIPTION, QuestionType.IMAGE, QuestionType.VIDEO,
    ])
    def test_display_types_not_answerable(self, question_type):
        assert not type_descriptor(question_type).answerable

    def test_accepts_plain_strings(self):
        assert type_descriptor("dropdown").shape is Shape.CHOICE


class TestCreateQuestion:
    def test_choice_defaults(self):
        q = create_question(QuestionType.MULTIPLE_CHOICE)
        assert q.title == "Untitled Question"
        assert q.required is False
        assert [o.text for o in q.options] == ["Option 1", "Option 2"]
        assert [o.value for o in q.options] == ["option_1", "option_2"]
        assert q.settings == {"allow_other": False, "other_text": "Other:", "shuffle_options": False}

    def test_grid_defaults(self):
        q = create_question(QuestionType.CHECKBOX_GRID)
        assert [r.text for r in q.grid_rows] == ["Row 1", "Row 2"]
        assert [c.text for c in q.grid_columns] == ["Column 1", "Column 2", "Column 3"]
        assert q.options is None

    def test_scale_defaults(self):
        q = create_question(QuestionType.LINEAR_SCALE)
        assert isinstance(q.payload, ScalePayload)
        assert q.settings["linear_scale_min"] == 1
        assert q.settings["linear_scale_max"] == 5
        assert q.settings["linear_scale_labels"] == {"min": None, "max": None}

    def test_file_defaults(self):
        q = create_question(QuestionType.FILE_UPLOAD)
        assert isinstance(q.payload, FilePayload)
        assert q.validation == {"file_types": ["image/*", "application/pdf"], "max_file_size": 10 * 1024 * 1024}
        assert q.settings == {"allow_multiple": False}

    def test_file_types_not_shared(self):
        a = create_question(QuestionType.FILE_UPLOAD)
        b = create_question(QuestionType.FILE_UPLOAD)
        assert a.payload.file_types is not b.payload.file_types

    def test_text_and_number(self):
        assert isinstance(create_question(QuestionType.EMAIL).payload, TextPayload)
        number = create_question(QuestionType.NUMBER)
        assert isinstance(number.payload, NumberPayload)
        assert number.validation["min"] is None

    def test_title_description(self):
        q = create_question(QuestionType.TITLE_DESCRIPTION)
        assert q.title == "Untitled Title"
        assert q.description == "Description (optional)"
        assert isinstance(q.payload, EmptyPayload)
        assert not q.answerable

    def test_option_ids_unique(self):
        q = create_question(QuestionType.DROPDOWN)
        assert len({o.id for o in q.options}) == 2


class TestSerialization:
    def test_payload_discriminated_on_load(self):
        q = create_question(QuestionType.MULTIPLE_CHOICE_GRID)
        loaded = Question.model_validate_json(q.model_dump_json())
        assert isinstance(loaded.payload, GridPayload)
        assert loaded == q

    def test_retained_payloads_survive(self):
        q = create_question(QuestionType.CHECKBOX)
        q = q.model_copy(update={"retained": {"scale": ScalePayload(linear_scale_max=7)}})
        loaded = Question.model_validate(q.model_dump(mode="json"))
        assert isinstance(loaded.retained["scale"], ScalePayload)
        assert loaded.retained["scale"].linear_scale_max == 7
        assert isinstance(loaded.payload, ChoicePayload)
