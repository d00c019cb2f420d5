import pytest

from formflow import editing
from formflow import form_builder as fb
from formflow.exceptions import CorruptFormError, ValidationRejected
from formflow.options import OptionItem
from formflow.questions import QuestionType


def _form_with(*types):
    form = fb.create_form("Survey")
    ids = []
    for question_type in types:
        form, question_id = fb.add_question(form, question_type)
        ids.append(question_id)
    return form, ids


class TestCreateForm:
    def test_defaults(self):
        form = fb.create_form()
        assert form.title == "Untitled Form"
        assert form.description == ""
        assert form.questions == []
        assert form.settings.theme.primary_color == "#673AB7"
        assert form.settings.allow_anonymous is True
        assert form.settings.response_limit is None
        assert form.created_at == form.updated_at
        assert form.created_at.tzinfo is not None


class TestQuestionOperations:
    def test_end_to_end_scenario(self):
        form = fb.create_form()
        form, question_id = fb.add_question(form, QuestionType.MULTIPLE_CHOICE)
        form = fb.edit_question(form, question_id, editing.add_option, "Red")
        form = fb.edit_question(form, question_id, editing.add_option, "Blue")
        form = fb.update_question(form, question_id, {"required": True})

        question = form.get_question(question_id)
        assert len(question.options) == 4
        assert [o.value for o in question.options[2:]] == ["red", "blue"]
        assert question.required is True
        assert form.updated_at > form.created_at

    def test_updated_at_strictly_increases(self):
        form = fb.create_form()
        stamps = [form.updated_at]
        for _ in range(5):
            form, _ = fb.add_question(form, QuestionType.SHORT_TEXT)
            stamps.append(form.updated_at)
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == len(stamps)

    def test_edit_unknown_question_is_noop(self):
        form, _ = _form_with(QuestionType.SHORT_TEXT)
        assert fb.update_question(form, "missing", {"title": "x"}) is form

    def test_noop_edit_keeps_form(self):
        form, (question_id,) = _form_with(QuestionType.SHORT_TEXT)
        assert fb.edit_question(form, question_id, editing.add_option, "Red") is form

    def test_delete_idempotent(self):
        form, (first, second) = _form_with(QuestionType.SHORT_TEXT, QuestionType.EMAIL)
        once = fb.delete_question(form, first)
        twice = fb.delete_question(once, first)
        assert twice is once
        assert [q.id for q in once.questions] == [second]
        assert len(form.questions) == 2

    def test_duplicate_appends_copy(self):
        form, (first, second) = _form_with(QuestionType.CHECKBOX, QuestionType.SHORT_TEXT)
        duplicated = fb.duplicate_question(form, first)
        copy = duplicated.questions[-1]
        assert [q.id for q in duplicated.questions[:2]] == [first, second]
        assert copy.id not in (first, second)
        assert copy.title.endswith(" (Copy)")
        original_option_ids = {o.id for o in duplicated.questions[0].options}
        assert original_option_ids.isdisjoint(o.id for o in copy.options)

    def test_duplicate_unknown_is_noop(self):
        form, _ = _form_with(QuestionType.CHECKBOX)
        assert fb.duplicate_question(form, "missing") is form

    def test_move(self):
        form, (q1, q2, q3) = _form_with(QuestionType.SHORT_TEXT, QuestionType.EMAIL, QuestionType.NUMBER)
        moved = fb.move_question(form, 0, 2)
        assert [q.id for q in moved.questions] == [q2, q3, q1]

    @pytest.mark.parametrize("from_index,to_index", [(0, 3), (-1, 0), (3, 0), (1, 1)])
    def test_move_out_of_range_is_noop(self, from_index, to_index):
        form, _ = _form_with(QuestionType.SHORT_TEXT, QuestionType.EMAIL, QuestionType.NUMBER)
        assert fb.move_question(form, from_index, to_index) is form


class TestFormLevelOperations:
    def test_details(self):
        form = fb.create_form()
        updated = fb.update_form_details(form, title="Feedback")
        assert updated.title == "Feedback"
        assert updated.description == ""
        assert fb.update_form_details(form) is form

    def test_settings_theme_merged(self):
        form = fb.create_form()
        updated = fb.update_form_settings(form, {"collect_email": True, "theme": {"primary_color": "#000000"}})
        assert updated.settings.collect_email is True
        assert updated.settings.theme.primary_color == "#000000"
        assert updated.settings.theme.font_family == "Inter"

    def test_settings_unchanged_is_noop(self):
        form = fb.create_form()
        assert fb.update_form_settings(form, {"allow_anonymous": True}) is form

    def test_invalid_settings_rejected(self):
        with pytest.raises(ValidationRejected):
            fb.update_form_settings(fb.create_form(), {"response_limit": 0})

    def test_duplicate_form(self):
        form, (question_id,) = _form_with(QuestionType.MULTIPLE_CHOICE_GRID)
        copy = fb.duplicate_form(form)
        assert copy.id != form.id
        assert copy.title == "Survey (Copy)"
        assert copy.questions[0].id != question_id
        assert copy.questions[0].title == form.questions[0].title
        assert copy.created_at >= form.created_at


class TestValidateForm:
    def test_valid_form_passes(self):
        form, _ = _form_with(QuestionType.CHECKBOX, QuestionType.CHECKBOX_GRID)
        assert fb.validate_form(form) is form

    def test_duplicate_question_ids(self):
        form, _ = _form_with(QuestionType.SHORT_TEXT)
        broken = form.model_copy(update={"questions": form.questions * 2})
        with pytest.raises(CorruptFormError):
            fb.validate_form(broken)

    def test_duplicate_option_ids(self):
        form, (question_id,) = _form_with(QuestionType.DROPDOWN)
        question = form.questions[0]
        clash = OptionItem(id=question.options[0].id, text="Again", value="again")
        broken = fb.update_question(form, question_id, {"options": question.options + [clash]})
        with pytest.raises(CorruptFormError):
            fb.validate_form(broken)
