import traceback
from typing import Optional
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
from fastapi import FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
import logging
from datetime import datetime

from .config import get_settings
from .controller import BuilderSessionStore, FormBuilderController
from .exceptions import CorruptFormError, FormNotFoundError, PersistenceError, ValidationRejected
from .export import export_filename, export_json, export_text
from .renderer import AnswerState, RenderMode, capture_answer, capture_other_text, render, render_form
from .schemas import (
    AddQuestionRequest,
    AnswerRequest,
    AnswerResponse,
    CreateFormRequest,
    EditResponse,
    GridItemRequest,
    MoveQuestionRequest,
    OptionRequest,
    SaveResponse,
    UpdateFormRequest,
    UpdateQuestionRequest,
)
from .storage import JsonFileFormStorage

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown"""
    logger.info("FormFlow editor starting up...")
    if getattr(app.state, "sessions", None) is None:
        storage = JsonFileFormStorage(settings.STORAGE_DIR)
        app.state.sessions = BuilderSessionStore(storage)
        app.state.sessions.start_cleanup_thread()
        logger.info(f"Storing forms in {settings.STORAGE_DIR}")

    yield

    logger.info("FormFlow editor shutting down...")
    app.state.sessions.shutdown()
    app.state.sessions = None
    logger.info("Shutdown complete")


app = FastAPI(
    title="FormFlow Form Editor",
    description="Form definition editor: build questions, preview and capture answers",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(ValidationRejected)
async def validation_rejected_handler(request: Request, exc: ValidationRejected):
    logger.info(f"Rejected input: {exc}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc), "type": "validation_error"},
    )


@app.exception_handler(FormNotFoundError)
async def not_found_handler(request: Request, exc: FormNotFoundError):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc), "type": "not_found"},
    )


@app.exception_handler(CorruptFormError)
async def corrupt_form_handler(request: Request, exc: CorruptFormError):
    logger.error(f"Corrupt form: {exc}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": str(exc), "type": "corrupt_form"},
    )


@app.exception_handler(PersistenceError)
async def persistence_handler(request: Request, exc: PersistenceError):
    logger.error(f"Persistence failure: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": str(exc), "type": "persistence_error", "retryable": True},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    logger.warning(f"Validation error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc), "type": "validation_error"},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error: {exc}\n{traceback.format_exc()}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "An internal server error occurred",
            "type": "server_error",
            "timestamp": datetime.now().isoformat(),
        },
    )


def _sessions(request: Request) -> BuilderSessionStore:
    return request.app.state.sessions


def _session(request: Request, form_id: str) -> FormBuilderController:
    return _sessions(request).open(form_id)


def _edit_response(controller: FormBuilderController, changed: bool,
                   question_id: Optional[str] = None) -> EditResponse:
    return EditResponse(
        changed=changed,
        question_id=question_id,
        form=controller.form.model_dump(mode="json"),
        session=controller.summary(),
    )


@app.get("/health")
def health(request: Request):
    """Basic health check"""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "version": VERSION,
        "sessions": _sessions(request).get_session_stats(),
    }


# Forms
@app.get("/forms")
def list_forms(request: Request):
    """List stored forms and open editor sessions"""
    store = _sessions(request)
    return {
        "status": "success",
        "stored": store.storage.list_ids(),
        "sessions": [c.summary() for c in store.list_sessions()],
    }


@app.post("/forms", status_code=status.HTTP_201_CREATED)
def create_form(request: Request, req: CreateFormRequest):
    """Start editing a new, empty form"""
    controller = _sessions(request).create(req.title, req.description)
    logger.info(f"Created new form: {controller.form_id} - {controller.form.title}")
    return {
        "status": "success",
        "form": controller.form.model_dump(mode="json"),
        "session": controller.summary(),
    }


@app.get("/forms/{form_id}")
def get_form(request: Request, form_id: str):
    controller = _session(request, form_id)
    return {
        "status": "success",
        "form": controller.form.model_dump(mode="json"),
        "session": controller.summary(),
    }


@app.put("/forms/{form_id}", response_model=EditResponse)
def update_form(request: Request, form_id: str, req: UpdateFormRequest):
    """Update form title, description and settings"""
    controller = _session(request, form_id)
    changed = controller.update_details(req.title, req.description)
    if req.settings is not None:
        changed = controller.update_settings(req.settings) or changed
    return _edit_response(controller, changed)


@app.post("/forms/{form_id}/save", response_model=SaveResponse)
def save_form(request: Request, form_id: str):
    controller = _session(request, form_id)
    saved_at = controller.save()
    return SaveResponse(saved_at=saved_at.isoformat(), dirty=controller.dirty)


@app.delete("/forms/{form_id}/session")
def close_session(request: Request, form_id: str):
    """Leave the editor without saving; pending auto-save is dropped"""
    closed = _sessions(request).close(form_id)
    if not closed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No open session for this form")
    return {"status": "success", "form_id": form_id}


@app.get("/forms/{form_id}/export")
def export_form(request: Request, form_id: str, format: str = Query("text", pattern="^(text|json)$")):
    controller = _session(request, form_id)
    if format == "json":
        body, media_type, extension = export_json(controller.form), "application/json", "json"
    else:
        body, media_type, extension = export_text(controller.form), "text/plain", "txt"
    filename = export_filename(controller.form, extension)
    return PlainTextResponse(
        body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# Questions
@app.post("/forms/{form_id}/questions", response_model=EditResponse, status_code=status.HTTP_201_CREATED)
def add_question(request: Request, form_id: str, req: AddQuestionRequest):
    controller = _session(request, form_id)
    question_id = controller.add_question(req.type)
    return _edit_response(controller, True, question_id)


@app.patch("/forms/{form_id}/questions/{question_id}", response_model=EditResponse)
def update_question(request: Request, form_id: str, question_id: str, req: UpdateQuestionRequest):
    controller = _session(request, form_id)
    changed = controller.update_question(question_id, req.model_dump(exclude_unset=True))
    return _edit_response(controller, changed, question_id)


@app.delete("/forms/{form_id}/questions/{question_id}", response_model=EditResponse)
def delete_question(request: Request, form_id: str, question_id: str):
    controller = _session(request, form_id)
    changed = controller.delete_question(question_id)
    return _edit_response(controller, changed, question_id)


@app.post("/forms/{form_id}/questions/{question_id}/duplicate", response_model=EditResponse)
def duplicate_question(request: Request, form_id: str, question_id: str):
    controller = _session(request, form_id)
    copy_id = controller.duplicate_question(question_id)
    return _edit_response(controller, copy_id is not None, copy_id)


@app.post("/forms/{form_id}/questions/move", response_model=EditResponse)
def move_question(request: Request, form_id: str, req: MoveQuestionRequest):
    controller = _session(request, form_id)
    changed = controller.move_question(req.from_index, req.to_index)
    return _edit_response(controller, changed)


@app.post("/forms/{form_id}/questions/{question_id}/options", response_model=EditResponse)
def add_option(request: Request, form_id: str, question_id: str, req: OptionRequest):
    controller = _session(request, form_id)
    if not req.text.strip():
        raise ValidationRejected("Option text cannot be empty.")
    return _edit_response(controller, controller.add_option(question_id, req.text), question_id)


@app.put("/forms/{form_id}/questions/{question_id}/options/{option_id}", response_model=EditResponse)
def rename_option(request: Request, form_id: str, question_id: str, option_id: str, req: OptionRequest):
    controller = _session(request, form_id)
    if not req.text.strip():
        raise ValidationRejected("Option text cannot be empty.")
    changed = controller.rename_option(question_id, option_id, req.text)
    return _edit_response(controller, changed, question_id)


@app.delete("/forms/{form_id}/questions/{question_id}/options/{option_id}", response_model=EditResponse)
def remove_option(request: Request, form_id: str, question_id: str, option_id: str):
    controller = _session(request, form_id)
    changed = controller.remove_option(question_id, option_id)
    return _edit_response(controller, changed, question_id)


_GRID_AXES = ("rows", "columns")


def _check_axis(axis: str):
    if axis not in _GRID_AXES:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Grid axis must be rows or columns")


@app.post("/forms/{form_id}/questions/{question_id}/grid/{axis}", response_model=EditResponse)
def add_grid_item(request: Request, form_id: str, question_id: str, axis: str, req: GridItemRequest):
    _check_axis(axis)
    controller = _session(request, form_id)
    if req.text is not None and not req.text.strip():
        raise ValidationRejected("Grid labels cannot be empty.")
    add = controller.add_grid_row if axis == "rows" else controller.add_grid_column
    return _edit_response(controller, add(question_id, req.text), question_id)


@app.put("/forms/{form_id}/questions/{question_id}/grid/{axis}/{item_id}", response_model=EditResponse)
def rename_grid_item(request: Request, form_id: str, question_id: str, axis: str, item_id: str,
                     req: OptionRequest):
    _check_axis(axis)
    controller = _session(request, form_id)
    if not req.text.strip():
        raise ValidationRejected("Grid labels cannot be empty.")
    rename = controller.rename_grid_row if axis == "rows" else controller.rename_grid_column
    return _edit_response(controller, rename(question_id, item_id, req.text), question_id)


@app.delete("/forms/{form_id}/questions/{question_id}/grid/{axis}/{item_id}", response_model=EditResponse)
def remove_grid_item(request: Request, form_id: str, question_id: str, axis: str, item_id: str):
    _check_axis(axis)
    controller = _session(request, form_id)
    remove = controller.remove_grid_row if axis == "rows" else controller.remove_grid_column
    return _edit_response(controller, remove(question_id, item_id), question_id)


# Preview and answers
@app.get("/forms/{form_id}/preview")
def preview_form(request: Request, form_id: str, mode: RenderMode = Query(RenderMode.BUILDER_PREVIEW)):
    controller = _session(request, form_id)
    fields = render_form(controller.form, mode)
    return {
        "status": "success",
        "mode": mode.value,
        "title": controller.form.title,
        "description": controller.form.description,
        "theme": controller.form.settings.theme.model_dump(),
        "fields": [f.model_dump(mode="json") for f in fields],
    }


@app.post("/forms/{form_id}/answers", response_model=AnswerResponse)
def answer_question(request: Request, form_id: str, req: AnswerRequest):
    """Turn one respondent input into an answer state (nothing is stored)"""
    controller = _session(request, form_id)
    question = controller.form.get_question(req.question_id)
    if question is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Question not found")

    if req.state is not None and req.state.question_id != question.id:
        raise ValidationRejected("Answer state belongs to a different question.")
    state = req.state or AnswerState(question_id=question.id)
    if req.input is not None:
        state = capture_answer(question, state, req.input)
    if req.other_text is not None:
        state = capture_other_text(question, state, req.other_text)
    field = render(question, RenderMode.RESPONDENT_INPUT, state)
    return AnswerResponse(state=state, field=field)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "formflow.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.ENV == "dev",
        log_level=settings.LOG_LEVEL,
    )
