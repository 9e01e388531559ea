"""FastAPI app hosting isolated form editor sessions."""

from __future__ import annotations

import os
import sys
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


_load_env_file(ROOT / "app" / ".env")

import logging
import time
from collections import OrderedDict

from control_catalog import default_catalog
from drop_adapter import apply_drop
from form_errors import (
    EditPendingError,
    FormError,
    InvalidTargetError,
    NodeNotFoundError,
    ParentNotFoundError,
    SelectionError,
)
from form_serializer import dumps_document
from form_session import FormSession


APP_ENV = os.getenv("APP_ENV", os.getenv("ENV", "dev")).strip().lower() or "dev"
IS_DEV = APP_ENV == "dev"
LOG_LEVEL = os.getenv("FORMKIT_LOG_LEVEL", "INFO").strip().upper() or "INFO"
MAX_SESSIONS = int(os.getenv("FORMKIT_MAX_SESSIONS", "100"))
REQ_SLOW_MS = float(os.getenv("FORMKIT_REQ_SLOW_MS", "250"))
MAX_PENDING_EVENTS = int(os.getenv("FORMKIT_MAX_PENDING_EVENTS", "1000"))

app = FastAPI(title="Formkit")
logger = logging.getLogger("formkit.api")
logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO))
_LOCAL_CORS_ORIGINS = {
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
}
_EXTRA_CORS_ORIGINS = {
    origin.strip().rstrip("/")
    for origin in os.getenv("FORMKIT_CORS_ORIGINS", "").split(",")
    if origin.strip()
}
_CORS_ORIGINS = _LOCAL_CORS_ORIGINS | _EXTRA_CORS_ORIGINS

_CATALOG = default_catalog()
_SESSIONS: "OrderedDict[str, FormSession]" = OrderedDict()

_NOT_FOUND = (NodeNotFoundError, ParentNotFoundError)
_CONFLICT = (InvalidTargetError, EditPendingError, SelectionError)
_DROP_STATUS = {"NODE_NOT_FOUND": 404, "PARENT_NOT_FOUND": 404, "INVALID_TARGET": 409, "PREVIEW_READ_ONLY": 409}


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    total_ms = (time.perf_counter() - start) * 1000
    logger.info("%s %s %s total_ms=%.1f", request.method, request.url.path, response.status_code, total_ms)
    if total_ms >= REQ_SLOW_MS:
        logger.warning("slow_request method=%s path=%s total_ms=%.1f", request.method, request.url.path, total_ms)
    if IS_DEV:
        response.headers["X-Req-MS"] = f"{total_ms:.1f}"
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted(_CORS_ORIGINS),
    allow_origin_regex=r"http://localhost:\d+|http://127\.0\.0\.1:\d+",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(code: str, message: str, path: str | None = None, detail: dict | None = None, status: int = 400) -> JSONResponse:
    body = {
        "ok": False,
        "errors": [{"code": code, "message": message, "path": path, "detail": detail}],
        "warnings": [],
    }
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _ok_response(payload: dict, warnings: list | None = None, status: int = 200) -> JSONResponse:
    body = {"ok": True, **payload, "errors": [], "warnings": warnings or []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _status_for(exc: FormError) -> int:
    if isinstance(exc, _NOT_FOUND):
        return 404
    if isinstance(exc, _CONFLICT):
        return 409
    return 400


@app.exception_handler(FormError)
async def form_error_handler(request: Request, exc: FormError):
    status = _status_for(exc)
    logger.info("form_error method=%s path=%s code=%s status=%s", request.method, request.url.path, exc.code, status)
    return _error_response(exc.code, exc.message, exc.path, exc.detail, status=status)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error method=%s path=%s", request.method, request.url.path)
    return _error_response("INTERNAL_ERROR", "Unexpected server error", detail={"error": str(exc)}, status=500)


async def _safe_json(request: Request) -> dict:
    try:
        body = await request.json()
    except Exception:
        return {}
    return body if isinstance(body, dict) else {}


def _get_session(form_id: str) -> FormSession | None:
    return _SESSIONS.get(form_id)


def _missing_form(form_id: str) -> JSONResponse:
    return _error_response("FORM_NOT_FOUND", "Form session not found", "form_id", {"form_id": form_id}, status=404)


def _load_payload(result) -> dict:
    return {
        "migrated": result.migrated,
        "skipped": result.skipped,
        "ignored_keys": result.ignored_keys,
    }


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.get("/catalog")
async def get_catalog() -> JSONResponse:
    return _ok_response({"groups": _CATALOG.describe()})


@app.post("/forms")
async def create_form(request: Request) -> JSONResponse:
    if len(_SESSIONS) >= MAX_SESSIONS:
        return _error_response("SESSION_LIMIT", "Too many open forms", detail={"max_sessions": MAX_SESSIONS}, status=503)
    body = await _safe_json(request)
    session = FormSession(_CATALOG, max_pending_events=MAX_PENDING_EVENTS)
    warnings: list = []
    load = None
    if "document" in body:
        result = session.load(body.get("document"))
        load = _load_payload(result)
        warnings = result.skipped + result.ignored_keys
    _SESSIONS[session.form_id] = session
    logger.info("form_opened form_id=%s sessions=%s", session.form_id, len(_SESSIONS))
    return _ok_response({"form": session.snapshot(), "load": load}, warnings=warnings, status=201)


@app.get("/forms/{form_id}")
async def get_form(form_id: str) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    return _ok_response({"form": session.snapshot()})


@app.delete("/forms/{form_id}")
async def close_form(form_id: str) -> JSONResponse:
    session = _SESSIONS.pop(form_id, None)
    if session is None:
        return _missing_form(form_id)
    logger.info("form_closed form_id=%s dirty=%s", form_id, session.dirty)
    return _ok_response({"form_id": form_id, "dirty": session.dirty})


@app.post("/forms/{form_id}/load")
async def load_form(form_id: str, request: Request) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    body = await _safe_json(request)
    result = session.load(body.get("document"))
    return _ok_response(
        {"form": session.snapshot(), "load": _load_payload(result)},
        warnings=result.skipped + result.ignored_keys,
    )


@app.post("/forms/{form_id}/drops")
async def drop(form_id: str, request: Request) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    body = await _safe_json(request)
    result = apply_drop(session, body)
    if not result["ok"]:
        status = _DROP_STATUS.get(result["errors"][0]["code"], 400)
        return JSONResponse(jsonable_encoder(result), status_code=status)
    return JSONResponse(jsonable_encoder({**result, "revision": session.store.revision}), status_code=200)


@app.delete("/forms/{form_id}/nodes/{node_id}")
async def delete_node(form_id: str, node_id: str) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    removed = session.delete_node(node_id)
    return _ok_response({"removed": removed, "revision": session.store.revision})


@app.post("/forms/{form_id}/clear")
async def clear_form(form_id: str) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    removed = session.clear_form()
    return _ok_response({"removed": removed, "revision": session.store.revision})


@app.post("/forms/{form_id}/selection")
async def set_selection(form_id: str, request: Request) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    body = await _safe_json(request)
    node_id = body.get("nodeId")
    if node_id is None:
        session.deselect()
    elif not isinstance(node_id, str):
        return _error_response("NODE_ID_INVALID", "nodeId must be a string", "nodeId")
    elif session.store.get(node_id).is_container:
        session.activate_container(node_id)
    else:
        session.select_leaf(node_id)
    return _ok_response({"selection": session.selection.to_dict()})


@app.post("/forms/{form_id}/selection/delete")
async def delete_selection(form_id: str) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    removed = session.delete_selected()
    return _ok_response({"removed": removed, "selection": session.selection.to_dict()})


@app.post("/forms/{form_id}/tab")
async def switch_tab(form_id: str, request: Request) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    body = await _safe_json(request)
    session.switch_tab(body.get("tab"))
    return _ok_response({"tab": session.tab, "selection": session.selection.to_dict()})


@app.post("/forms/{form_id}/preview")
async def preview(form_id: str, request: Request) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    body = await _safe_json(request)
    enabled = body.get("enabled")
    if enabled is None:
        active = session.toggle_preview()
    elif isinstance(enabled, bool):
        active = session.set_preview(enabled)
    else:
        return _error_response("PREVIEW_INVALID", "enabled must be a boolean", "enabled")
    return _ok_response({"preview": active, "selection": session.selection.to_dict()})


@app.get("/forms/{form_id}/nodes/{node_id}/properties")
async def get_properties(form_id: str, node_id: str) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    return _ok_response({"node_id": node_id, "properties": session.node_properties(node_id)})


@app.patch("/forms/{form_id}/nodes/{node_id}/properties")
async def patch_properties(form_id: str, node_id: str, request: Request) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    body = await _safe_json(request)
    values = body.get("values")
    if not isinstance(values, dict):
        return _error_response("VALUES_INVALID", "values must be an object", "values")
    issues = session.edit_properties(node_id, values)
    return _ok_response(
        {"node_id": node_id, "properties": session.node_properties(node_id), "issues": issues, "can_save": session.can_save}
    )


def _list_result(session: FormSession, node_id: str, issues: list) -> JSONResponse:
    return _ok_response(
        {"node_id": node_id, "properties": session.node_properties(node_id), "issues": issues, "can_save": session.can_save}
    )


@app.put("/forms/{form_id}/nodes/{node_id}/properties/{name}/default")
async def set_list_default(form_id: str, node_id: str, name: str, request: Request) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    body = await _safe_json(request)
    issues = session.set_list_default(node_id, name, body.get("index"))
    return _list_result(session, node_id, issues)


@app.post("/forms/{form_id}/nodes/{node_id}/properties/{name}/items")
async def add_list_item(form_id: str, node_id: str, name: str, request: Request) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    body = await _safe_json(request)
    issues = session.add_list_item(node_id, name, body.get("label"), body.get("value"))
    return _list_result(session, node_id, issues)


@app.put("/forms/{form_id}/nodes/{node_id}/properties/{name}/items/{index}")
async def edit_list_item(form_id: str, node_id: str, name: str, index: int, request: Request) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    body = await _safe_json(request)
    issues = session.edit_list_item(node_id, name, index, body.get("label"), body.get("value"))
    return _list_result(session, node_id, issues)


@app.delete("/forms/{form_id}/nodes/{node_id}/properties/{name}/items/{index}")
async def delete_list_item(form_id: str, node_id: str, name: str, index: int) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    issues = session.delete_list_item(node_id, name, index)
    return _list_result(session, node_id, issues)


@app.get("/forms/{form_id}/resources/{kind}")
async def list_resources(form_id: str, kind: str) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    return _ok_response({kind: session.resources(kind)})


@app.post("/forms/{form_id}/resources/{kind}")
async def add_resource(form_id: str, kind: str, request: Request) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    body = await _safe_json(request)
    entry = session.add_resource(kind, body.get("name"), body.get("url"))
    return _ok_response({"entry": entry, kind: session.resources(kind)}, status=201)


@app.put("/forms/{form_id}/resources/{kind}/{index}")
async def edit_resource(form_id: str, kind: str, index: int, request: Request) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    body = await _safe_json(request)
    entry = session.edit_resource(kind, index, body.get("name"), body.get("url"))
    return _ok_response({"entry": entry, kind: session.resources(kind)})


@app.delete("/forms/{form_id}/resources/{kind}/{index}")
async def delete_resource(form_id: str, kind: str, index: int) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    entry = session.delete_resource(kind, index)
    return _ok_response({"entry": entry, kind: session.resources(kind)})


@app.put("/forms/{form_id}/code")
async def set_code(form_id: str, request: Request) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    body = await _safe_json(request)
    session.set_code(body.get("code"))
    return _ok_response({"code": session.code, "dirty": session.dirty})


@app.get("/forms/{form_id}/document")
async def get_document(form_id: str) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    return _ok_response({"document": session.to_document().to_dict(), "dirty": session.dirty})


@app.post("/forms/{form_id}/save")
async def save_form(form_id: str) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    document = session.save()
    return _ok_response(
        {
            "document": document.to_dict(),
            "content": dumps_document(document),
            "hash": session.saved_hash,
            "dirty": session.dirty,
        }
    )


@app.get("/forms/{form_id}/events")
async def list_events(form_id: str, name: str | None = None) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    return _ok_response({"events": session.outbox.pending(name), "dropped": session.outbox.dropped})


@app.post("/forms/{form_id}/events/ack")
async def ack_events(form_id: str, request: Request) -> JSONResponse:
    session = _get_session(form_id)
    if session is None:
        return _missing_form(form_id)
    body = await _safe_json(request)
    event_ids = body.get("event_ids")
    if not isinstance(event_ids, list) or not all(isinstance(e, str) for e in event_ids):
        return _error_response("EVENT_IDS_INVALID", "event_ids must be a list of strings", "event_ids")
    acked = session.outbox.ack_many(event_ids)
    return _ok_response({"acked": acked, "remaining": len(session.outbox)})
