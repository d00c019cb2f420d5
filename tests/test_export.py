import json
from datetime import datetime

from formflow import editing
from formflow import form_builder as fb
from formflow.export import export_filename, export_json, export_text
from formflow.questions import QuestionType


def _form():
    form = fb.create_form("Team Lunch", "Pick a day")
    form, day_id = fb.add_question(form, QuestionType.MULTIPLE_CHOICE)
    form = fb.update_question(form, day_id, {"title": "Which day?", "required": True,
                                             "options": ["Monday", "Friday"]})
    form, scale_id = fb.add_question(form, QuestionType.LINEAR_SCALE)
    form = fb.edit_question(form, scale_id, editing.set_title, "How hungry?")
    form, _ = fb.add_question(form, QuestionType.CHECKBOX_GRID)
    return form


class TestExportText:
    def test_layout(self):
        text = export_text(_form(), exported_at=datetime(2024, 5, 1, 9, 30))
        lines = text.splitlines()
        assert lines[0] == "FormFlow - Form Export"
        assert "Form Title: Team Lunch" in lines
        assert "Description: Pick a day" in lines
        assert "Export Date: 2024-05-01" in lines
        assert "1. Which day?" in lines
        assert "   Type: Multiple Choice (multiple_choice)" in lines
        assert "   Required: Yes" in lines
        assert "   Options: Monday, Friday" in lines
        assert "2. How hungry?" in lines
        assert "   Scale: 1 to 5" in lines
        assert "   Rows: Row 1, Row 2" in lines
        assert "   Columns: Column 1, Column 2, Column 3" in lines
        assert "- Theme: #673AB7" in lines
        assert "- Collect Email: No" in lines

    def test_response_limit_listed_when_set(self):
        form = fb.update_form_settings(_form(), {"response_limit": 25})
        assert "- Response Limit: 25" in export_text(form).splitlines()


class TestExportJson:
    def test_is_the_full_form(self):
        form = _form()
        data = json.loads(export_json(form))
        assert data["id"] == form.id
        assert len(data["questions"]) == 3


class TestExportFilename:
    def test_slugged_title(self):
        assert export_filename(_form()) == "team_lunch_export.txt"
        assert export_filename(fb.create_form("Q&A 2024"), "json") == "q_a_2024_export.json"
