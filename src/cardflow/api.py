"""JSON HTTP API for cardflow.

Single-project-directory server: a module-level ``_store`` is set at
startup (or by test fixtures) and injected via ``Depends(_get_store)``.
Every project in that store is reachable under ``/api/projects/{id}``.

Usage:
    cardflow serve                    # http://127.0.0.1:8378
    cardflow serve --port 9000        # Custom port
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fastapi.responses import JSONResponse
    from starlette.requests import Request

from cardflow import __version__
from cardflow.core import DocumentStore, find_cardflow_root, open_store, read_config
from cardflow.engine import CardEngine
from cardflow.errors import CardflowError, StaleWriteError
from cardflow.lists import DEFAULT_TTL_SECONDS, TtlCache
from cardflow.types.api import CacheInvalidatedResponse, HealthResponse, ListValuesResponse
from cardflow.types.core import ProjectConfig
from cardflow.validation import check_record_key, sanitize_actor

DEFAULT_PORT = 8378

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level state: set by main() or test fixtures
# ---------------------------------------------------------------------------

_store: DocumentStore | None = None
_config: ProjectConfig = {}
_list_cache: TtlCache = TtlCache(DEFAULT_TTL_SECONDS)

_BOOL_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_BOOL_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def _error_response(
    message: str,
    code: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Return a structured error response and log the error."""
    from fastapi.responses import JSONResponse

    logger.warning("API error [%s] %s: %s", status_code, code, message)
    return JSONResponse(
        {"error": {"message": message, "code": code, "details": details or {}}},
        status_code=status_code,
    )


def _engine_error(exc: CardflowError | KeyError) -> JSONResponse:
    """404 for missing records, 409 for stale writes, 422 for rejected changes."""
    if isinstance(exc, KeyError):
        message = str(exc.args[0]) if exc.args else "Not found"
        return _error_response(message, "not_found", 404)
    status_code = 409 if isinstance(exc, StaleWriteError) else 422
    return _error_response(exc.message, exc.code, status_code, exc.details)


async def _parse_json_body(request: Request) -> dict[str, Any] | JSONResponse:
    """Parse and validate a JSON object body, returning 400 on failure."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, ValueError, UnicodeDecodeError):
        return _error_response("Invalid JSON body", "validation_error", 400)
    if not isinstance(body, dict):
        return _error_response("Request body must be a JSON object", "validation_error", 400)
    return body


def _parse_bool(raw: str | None, name: str, default: bool) -> bool | JSONResponse:
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _BOOL_TRUE_VALUES:
        return True
    if value in _BOOL_FALSE_VALUES:
        return False
    return _error_response(
        f'Invalid value for {name}: "{raw}". Must be one of true/false, 1/0, yes/no, on/off.',
        "validation_error",
        400,
        {"param": name, "value": raw},
    )


def _actor(raw: Any) -> str | JSONResponse:
    cleaned, err = sanitize_actor(raw)
    if err:
        return _error_response(err, "validation_error", 400)
    return cleaned


def _get_store() -> DocumentStore:
    from fastapi import HTTPException

    if _store is None:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return _store


def _get_engine() -> CardEngine:
    return CardEngine.from_config(_get_store(), _config, cache=_list_cache)


def _create_router() -> Any:
    """Build the APIRouter with every card and rule endpoint."""
    from fastapi import APIRouter, Depends, Request
    from fastapi.responses import JSONResponse

    # Expose Request and JSONResponse in module globals so PEP 563 deferred annotations resolve
    globals()["Request"] = Request
    globals()["JSONResponse"] = JSONResponse

    router = APIRouter()

    # Handlers are async while doing synchronous SQLite I/O: every request
    # runs on the event loop thread and never shares the connection across
    # threads.

    @router.get("/health")
    async def api_health(store: DocumentStore = Depends(_get_store)) -> JSONResponse:
        return JSONResponse(HealthResponse(status="ok", version=__version__, schemaVersion=store.get_schema_version()))

    @router.get("/projects/{project_id}/cards/{card_id}")
    async def api_get_card(project_id: str, card_id: str, engine: CardEngine = Depends(_get_engine)) -> JSONResponse:
        try:
            card = engine.get_card(project_id, card_id)
        except (KeyError, CardflowError) as exc:
            return _engine_error(exc)
        return JSONResponse(card)

    @router.get("/projects/{project_id}/cards")
    async def api_list_cards(request: Request, project_id: str, engine: CardEngine = Depends(_get_engine)) -> JSONResponse:
        params = request.query_params
        card_type = params.get("type")
        if not card_type:
            return _error_response("Query parameter 'type' is required", "validation_error", 400)
        year = params.get("year")
        if year is not None and not year.isdigit():
            return _error_response(f'Invalid value for year: "{year}". Must be an integer.', "validation_error", 400)
        try:
            cards = engine.list_cards(
                project_id,
                card_type,
                status=params.get("status"),
                sprint=params.get("sprint"),
                developer=params.get("developer"),
                year=year,
            )
        except (KeyError, CardflowError) as exc:
            return _engine_error(exc)
        return JSONResponse(cards)

    @router.post("/projects/{project_id}/cards")
    async def api_create_card(request: Request, project_id: str, engine: CardEngine = Depends(_get_engine)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        card_type = body.get("type")
        fields = body.get("fields")
        if not isinstance(card_type, str) or not isinstance(fields, dict):
            return _error_response("Body must have a string 'type' and an object 'fields'", "validation_error", 400)
        actor = _actor(body.get("actor", "api"))
        if isinstance(actor, JSONResponse):
            return actor
        try:
            result = engine.create_card(project_id, card_type, fields, actor=actor)
        except (KeyError, CardflowError) as exc:
            return _engine_error(exc)
        return JSONResponse(result, status_code=201)

    @router.patch("/projects/{project_id}/cards/{card_type}/{record_key}")
    async def api_update_card(
        request: Request,
        project_id: str,
        card_type: str,
        record_key: str,
        engine: CardEngine = Depends(_get_engine),
    ) -> JSONResponse:
        key_err = check_record_key(record_key)
        if key_err:
            return _error_response(key_err, "validation_error", 400)
        validate_only = _parse_bool(request.query_params.get("validate_only"), "validate_only", False)
        if isinstance(validate_only, JSONResponse):
            return validate_only
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor = _actor(request.query_params.get("actor", "api"))
        if isinstance(actor, JSONResponse):
            return actor
        try:
            result = engine.update_card(
                project_id,
                card_type,
                record_key,
                body,
                validate_only=validate_only,
                actor=actor,
                expected_updated_at=request.query_params.get("expected_updated_at"),
            )
        except (KeyError, CardflowError) as exc:
            return _engine_error(exc)
        return JSONResponse(result)

    @router.get("/rules/{card_type}")
    async def api_rules(card_type: str, engine: CardEngine = Depends(_get_engine)) -> JSONResponse:
        try:
            return JSONResponse(engine.get_transition_rules(card_type))
        except CardflowError as exc:
            return _engine_error(exc)

    @router.get("/lists/{kind}")
    async def api_list_values(kind: str, engine: CardEngine = Depends(_get_engine)) -> JSONResponse:
        try:
            entries = engine.lists.pairs(kind)
        except CardflowError as exc:
            return _engine_error(exc)
        return JSONResponse(ListValuesResponse(kind=kind, values=[e["text"] for e in entries], entries=[dict(e) for e in entries]))

    @router.post("/lists/invalidate")
    async def api_invalidate_lists(request: Request, engine: CardEngine = Depends(_get_engine)) -> JSONResponse:
        kind = request.query_params.get("kind")
        try:
            engine.lists.invalidate(kind)
        except CardflowError as exc:
            return _engine_error(exc)
        return JSONResponse(CacheInvalidatedResponse(status="invalidated", kind=kind))

    return router


def create_app() -> Any:
    """Create the FastAPI application with every endpoint under ``/api``."""
    from fastapi import FastAPI

    app = FastAPI(title="Cardflow", version=__version__, docs_url=None, redoc_url=None)
    app.include_router(_create_router(), prefix="/api")
    return app


def main(port: int = DEFAULT_PORT, *, host: str = "127.0.0.1") -> None:
    """Open the discovered store and serve the API with uvicorn."""
    import uvicorn

    global _store, _config, _list_cache

    cardflow_dir = find_cardflow_root()
    _config = read_config(cardflow_dir)
    _list_cache = TtlCache(float(_config.get("list_cache_ttl", DEFAULT_TTL_SECONDS)))
    _store = open_store(cardflow_dir, check_same_thread=False)

    from cardflow.logging import setup_logging

    setup_logging(cardflow_dir)
    app = create_app()
    print(f"Cardflow API: http://{host}:{port}/api")
    uvicorn.run(app, host=host, port=port, log_level="warning")
