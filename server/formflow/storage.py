"""
Persistence boundary - save and load whole forms.

Forms are stored as their JSON serialization so a load hands back exactly
what was saved: ids, ordering and every field value.
"""
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Union

from pydantic import ValidationError

from .exceptions import CorruptFormError, FormNotFoundError, PersistenceError
from .form_builder import Form, utcnow, validate_form

logger = logging.getLogger(__name__)


def serialize_form(form: Form) -> str:
    return form.model_dump_json(indent=2)


def deserialize_form(data: Union[str, bytes]) -> Form:
    """Parse a stored form, refusing anything structurally invalid"""
    try:
        form = Form.model_validate_json(data)
    except ValidationError as e:
        raise CorruptFormError(f"Stored form does not match the form schema: {e}") from e
    return validate_form(form)


class FormStorage(ABC):
    """Where the builder saves forms. ``save`` must be idempotent."""

    @abstractmethod
    def save(self, form: Form):
        """Persist the form and return the time it was saved"""

    @abstractmethod
    def load(self, form_id: str) -> Form:
        """Return the stored form or raise FormNotFoundError"""

    @abstractmethod
    def delete(self, form_id: str) -> bool:
        """Remove a stored form; False if it was not there"""

    @abstractmethod
    def list_ids(self) -> List[str]:
        ...

    def exists(self, form_id: str) -> bool:
        return form_id in self.list_ids()


class InMemoryFormStorage(FormStorage):
    """In-memory storage for forms (replace with a real backend in production)"""

    def __init__(self):
        self.forms: Dict[str, str] = {}
        self._lock = threading.Lock()

    def save(self, form: Form):
        data = serialize_form(form)
        with self._lock:
            self.forms[form.id] = data
        return utcnow()

    def load(self, form_id: str) -> Form:
        with self._lock:
            data = self.forms.get(form_id)
        if data is None:
            raise FormNotFoundError(f"Form {form_id} not found")
        return deserialize_form(data)

    def delete(self, form_id: str) -> bool:
        with self._lock:
            return self.forms.pop(form_id, None) is not None

    def list_ids(self) -> List[str]:
        with self._lock:
            return list(self.forms)


class JsonFileFormStorage(FormStorage):
    """One ``<form id>.json`` file per form under a directory"""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path(self, form_id: str) -> Path:
        if not form_id or "/" in form_id or "\\" in form_id or form_id.startswith("."):
            raise FormNotFoundError(f"Form {form_id} not found")
        return self.directory / f"{form_id}.json"

    def save(self, form: Form):
        path = self._path(form.id)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(serialize_form(form), encoding="utf-8")
            tmp_path.replace(path)
        except OSError as e:
            logger.error(f"Failed to save form {form.id} to {path}: {e}")
            raise PersistenceError(f"Could not save form {form.id}: {e}") from e
        logger.info(f"Saved form {form.id} to {path}")
        return utcnow()

    def load(self, form_id: str) -> Form:
        path = self._path(form_id)
        try:
            data = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise FormNotFoundError(f"Form {form_id} not found") from e
        except OSError as e:
            raise PersistenceError(f"Could not read form {form_id}: {e}") from e
        return deserialize_form(data)

    def delete(self, form_id: str) -> bool:
        path = self._path(form_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PersistenceError(f"Could not delete form {form_id}: {e}") from e
        return True

    def list_ids(self) -> List[str]:
        if not self.directory.exists():
            return []
        return sorted(p.stem for p in self.directory.glob("*.json"))
