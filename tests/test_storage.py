import json

import pytest

from formflow import editing
from formflow import form_builder as fb
from formflow.exceptions import CorruptFormError, FormNotFoundError, PersistenceError
from formflow.questions import QuestionType
from formflow.storage import InMemoryFormStorage, JsonFileFormStorage, deserialize_form, serialize_form


@pytest.fixture
def form():
    form = fb.create_form("Event signup", "Tell us about yourself")
    form, choice_id = fb.add_question(form, QuestionType.CHECKBOX)
    form = fb.edit_question(form, choice_id, editing.add_option, "Vegetarian")
    form = fb.edit_question(form, choice_id, editing.retype, QuestionType.LINEAR_SCALE)
    form, _ = fb.add_question(form, QuestionType.FILE_UPLOAD)
    form = fb.update_form_settings(form, {"response_limit": 100})
    return form


@pytest.fixture(params=["memory", "files"])
def backend(request, tmp_path):
    if request.param == "memory":
        return InMemoryFormStorage()
    return JsonFileFormStorage(tmp_path / "forms")


class TestSerialization:
    def test_round_trip_is_exact(self, form):
        assert deserialize_form(serialize_form(form)) == form

    def test_retained_payload_survives(self, form):
        loaded = deserialize_form(serialize_form(form))
        retained = loaded.questions[0].retained["choice"]
        assert retained.options[-1].text == "Vegetarian"

    def test_schema_failure_is_corrupt(self):
        with pytest.raises(CorruptFormError):
            deserialize_form('{"questions": [{"type": "hologram"}]}')

    def test_duplicate_ids_are_corrupt(self, form):
        data = json.loads(serialize_form(form))
        data["questions"].append(data["questions"][0])
        with pytest.raises(CorruptFormError):
            deserialize_form(json.dumps(data))


class TestBackends:
    def test_save_and_load(self, backend, form):
        saved_at = backend.save(form)
        assert saved_at.tzinfo is not None
        assert backend.load(form.id) == form
        assert backend.exists(form.id)
        assert backend.list_ids() == [form.id]

    def test_save_is_idempotent(self, backend, form):
        backend.save(form)
        backend.save(form)
        assert backend.list_ids() == [form.id]
        assert backend.load(form.id) == form

    def test_load_unknown(self, backend):
        with pytest.raises(FormNotFoundError):
            backend.load("missing")

    def test_delete(self, backend, form):
        backend.save(form)
        assert backend.delete(form.id) is True
        assert backend.delete(form.id) is False
        assert not backend.exists(form.id)


class TestJsonFileFormStorage:
    def test_writes_one_file_per_form(self, tmp_path, form):
        storage = JsonFileFormStorage(tmp_path)
        storage.save(form)
        assert (tmp_path / f"{form.id}.json").exists()
        assert not list(tmp_path.glob("*.tmp"))

    def test_path_traversal_refused(self, tmp_path):
        with pytest.raises(FormNotFoundError):
            JsonFileFormStorage(tmp_path).load("../etc/passwd")

    def test_corrupt_file(self, tmp_path):
        (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(CorruptFormError):
            JsonFileFormStorage(tmp_path).load("broken")

    def test_write_failure_is_persistence_error(self, tmp_path, form, mocker):
        storage = JsonFileFormStorage(tmp_path)
        mocker.patch("pathlib.Path.write_text", side_effect=PermissionError("denied"))
        with pytest.raises(PersistenceError):
            storage.save(form)

    def test_missing_directory_lists_nothing(self, tmp_path):
        assert JsonFileFormStorage(tmp_path / "nowhere").list_ids() == []
