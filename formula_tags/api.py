"""
Formula Editor API with FastAPI

Exposes formula editing sessions over HTTP. Each session owns its own tag
store and suggestion cache, so concurrent editors never share state. Clients
send the same events a text input would produce (buffer changes, the accept
and delete-backward keys, suggestion picks, multiplier choices) and get back
the full view of the formula, including the running result.
"""

import logging
import math
import time
import uuid
from contextlib import asynccontextmanager
from typing import Dict, List, Literal, Optional, Union

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, field_validator

from .config import Settings, configure_logging
from .editor import FormulaEditor
from .errors import ConfigurationError
from .overlay import MULTIPLIERS
from .suggestions import Suggestion, SuggestionCache, SuggestionService
from .tags import Number, Tag, format_number

logger = logging.getLogger(__name__)

JSONNumber = Union[int, float, str, None]


def _json_number(value: Optional[Number]) -> JSONNumber:
    """JSON has no NaN/Infinity; non-finite values are sent as their display text."""
    if isinstance(value, float) and not math.isfinite(value):
        return format_number(value)
    return value


# ----- Pydantic Models -----

class TagModel(BaseModel):
    """Model for a single tag of the formula."""
    id: str
    text: str
    type: str
    value: JSONNumber = None
    base_value: JSONNumber = None
    source_id: Optional[str] = None

    @classmethod
    def from_tag(cls, tag: Tag) -> "TagModel":
        return cls(
            id=tag.id,
            text=tag.text,
            type=tag.type.value,
            value=_json_number(tag.value),
            base_value=_json_number(tag.base_value),
            source_id=tag.source_id,
        )


class FormulaView(BaseModel):
    """Model for the complete state of one editing session."""
    session_id: str
    tags: List[TagModel]
    buffer: str
    query: str
    suggestions: List[Suggestion]
    loading: bool
    result: JSONNumber


class InputEvent(BaseModel):
    """Buffer-change event carrying the full buffer text."""
    text: str


class KeyEvent(BaseModel):
    """Discrete key event."""
    key: Literal["accept", "delete-backward"]


class MultiplierRequest(BaseModel):
    """Multiplier chosen for a tag."""
    multiplier: int

    @field_validator('multiplier')
    @classmethod
    def multiplier_must_be_offered(cls, v: int) -> int:
        if v not in MULTIPLIERS:
            raise ValueError(f"Multiplier must be one of {list(MULTIPLIERS)}")
        return v


class ErrorResponse(BaseModel):
    """Model for error responses."""
    detail: str


# ----- Session Registry -----

class SessionRegistry:
    """Holds the live editing sessions; all of them share one suggestion client."""

    def __init__(self, service: SuggestionService, cache_ttl: float = 300.0, session_ttl: float = 3600.0):
        self.service = service
        self.cache_ttl = cache_ttl
        self.session_ttl = session_ttl
        self.sessions: Dict[str, FormulaEditor] = {}
        self.last_used: Dict[str, float] = {}

    def evict_idle(self) -> int:
        """Drop sessions untouched for ``session_ttl`` seconds; returns how many went."""
        now = time.time()
        idle = [sid for sid, used in self.last_used.items() if now - used >= self.session_ttl]
        for session_id in idle:
            self.drop(session_id)
        if idle:
            logger.info(f"Evicted {len(idle)} idle formula session(s)")
        return len(idle)

    def create(self) -> str:
        self.evict_idle()
        session_id = uuid.uuid4().hex
        self.sessions[session_id] = FormulaEditor(SuggestionCache(self.service, ttl=self.cache_ttl))
        self.last_used[session_id] = time.time()
        logger.info(f"Created formula session {session_id}")
        return session_id

    def get(self, session_id: str) -> Optional[FormulaEditor]:
        self.evict_idle()
        editor = self.sessions.get(session_id)
        if editor is not None:
            self.last_used[session_id] = time.time()
        return editor

    def drop(self, session_id: str) -> bool:
        self.last_used.pop(session_id, None)
        return self.sessions.pop(session_id, None) is not None

    async def close(self):
        await self.service.close()


def view(session_id: str, editor: FormulaEditor) -> FormulaView:
    """Render a session into its response model."""
    cache = editor.suggestions
    return FormulaView(
        session_id=session_id,
        tags=[TagModel.from_tag(tag) for tag in editor.tags],
        buffer=editor.buffer,
        query=editor.query,
        suggestions=editor.offered_suggestions,
        loading=cache.is_loading if cache is not None else False,
        result=_json_number(editor.result),
    )


# ----- Services Initialization -----

settings = Settings.from_env()
registry = SessionRegistry(
    SuggestionService.from_settings(settings),
    cache_ttl=settings.cache_ttl,
    session_ttl=settings.session_ttl,
)

# ----- Application Lifecycle -----

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    configure_logging(settings)
    if not settings.suggestions_url:
        logger.warning("FORMULA_SUGGESTIONS_URL is not set; suggestion lookups will fail")
    logger.info("Formula Editor API starting up")

    yield

    logger.info("Formula Editor API shutting down")
    await registry.close()


app = FastAPI(
    title="Formula Editor API",
    description="Build arithmetic formulas tag by tag and evaluate them left to right",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----- Dependency Injection -----

def get_registry() -> SessionRegistry:
    """
    Dependency for the session registry.
    For testing, this can be overridden with one using a mocked suggestion service.
    """
    return registry


def get_editor(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> FormulaEditor:
    editor = registry.get(session_id)
    if editor is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return editor


async def _refresh(editor: FormulaEditor) -> None:
    try:
        await editor.refresh_suggestions()
    except ConfigurationError as e:
        logger.error(f"Suggestion lookup failed: {str(e)}")
        raise HTTPException(status_code=503, detail=str(e))


# ----- API Routes -----

_ERRORS = {404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}}


@app.post("/sessions", response_model=FormulaView, status_code=201, summary="Create a session")
async def create_session(registry: SessionRegistry = Depends(get_registry)):
    session_id = registry.create()
    return view(session_id, registry.get(session_id))


@app.get("/sessions/{session_id}", response_model=FormulaView, responses=_ERRORS, summary="Get a session")
async def get_session(session_id: str, editor: FormulaEditor = Depends(get_editor)):
    return view(session_id, editor)


@app.delete("/sessions/{session_id}", status_code=204, responses=_ERRORS, summary="Delete a session")
async def delete_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    if not registry.drop(session_id):
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    logger.info(f"Deleted formula session {session_id}")


@app.post(
    "/sessions/{session_id}/input",
    response_model=FormulaView,
    responses=_ERRORS,
    summary="Buffer change",
    description="Feed the full input buffer; free text also triggers a suggestion lookup",
)
async def input_changed(session_id: str, event: InputEvent, editor: FormulaEditor = Depends(get_editor)):
    decision = editor.handle_input(event.text)
    logger.info(f"Session {session_id}: input {event.text!r} -> {decision.rule}")
    if decision.query:
        await _refresh(editor)
    return view(session_id, editor)


@app.post("/sessions/{session_id}/keys", response_model=FormulaView, responses=_ERRORS, summary="Key event")
async def key_pressed(session_id: str, event: KeyEvent, editor: FormulaEditor = Depends(get_editor)):
    if event.key == "accept":
        decision = editor.handle_accept()
    else:
        decision = editor.handle_delete_backward()
    logger.info(f"Session {session_id}: key {event.key} -> {decision.rule}")
    return view(session_id, editor)


@app.post(
    "/sessions/{session_id}/suggestions",
    response_model=FormulaView,
    responses=_ERRORS,
    summary="Accept a suggestion",
)
async def suggestion_picked(session_id: str, suggestion: Suggestion, editor: FormulaEditor = Depends(get_editor)):
    editor.pick_suggestion(suggestion)
    logger.info(f"Session {session_id}: picked suggestion {suggestion.name!r}")
    return view(session_id, editor)


@app.post(
    "/sessions/{session_id}/tags/{tag_id}/multiplier",
    response_model=FormulaView,
    responses={**_ERRORS, 409: {"model": ErrorResponse}},
    summary="Apply a multiplier to a tag",
)
async def tag_multiplier(
    session_id: str,
    tag_id: str,
    request: MultiplierRequest,
    editor: FormulaEditor = Depends(get_editor),
):
    tag = editor.snapshot.find(tag_id)
    if tag is None:
        raise HTTPException(status_code=404, detail=f"Tag not found: {tag_id}")
    if tag.value is None:
        raise HTTPException(status_code=409, detail=f"Tag {tag.text!r} has no value to multiply")
    editor.apply_multiplier(tag_id, request.multiplier)
    return view(session_id, editor)


@app.delete("/sessions/{session_id}/tags/{tag_id}", response_model=FormulaView, responses=_ERRORS, summary="Remove a tag")
async def remove_tag(session_id: str, tag_id: str, editor: FormulaEditor = Depends(get_editor)):
    if editor.snapshot.find(tag_id) is None:
        raise HTTPException(status_code=404, detail=f"Tag not found: {tag_id}")
    editor.remove_tag(tag_id)
    return view(session_id, editor)


@app.delete("/sessions/{session_id}/tags", response_model=FormulaView, responses=_ERRORS, summary="Clear all tags")
async def clear_tags(session_id: str, editor: FormulaEditor = Depends(get_editor)):
    editor.clear()
    return view(session_id, editor)


# ----- Main Entry Point -----

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("formula_tags.api:app", host="0.0.0.0", port=8000, reload=True)
