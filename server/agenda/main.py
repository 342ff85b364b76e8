import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import httpx
from fastapi import BackgroundTasks, Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from agenda.config import settings
from agenda.crud import create_appointment, delete_appointment, list_appointments, patch_appointment, seed_appointments
from agenda.db import Base, SessionLocal, engine
from agenda.errors import AgendaError, InternalError, InvalidBody, UnsupportedMethod
from agenda.identity import Identity, resolve_identity
from agenda.logging_setup import configure_logging
from agenda.notifier import TelegramNotifier, build_notifier
from agenda.schemas import AppointmentCreateIn, DiagOut, ErrorOut, HealthOut, ItemOut, ListOut, OkOut, SeedOut
from agenda.storage import DocumentStore, build_document_store

configure_logging(settings.log_level, settings.audit_log_level)
logger = logging.getLogger(__name__)

AGENDA_PATH = "/agenda"
NO_CACHE = "no-store, no-cache, must-revalidate"
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "*",
    "Access-Control-Allow-Methods": "GET,POST,PATCH,DELETE,OPTIONS",
}

app = FastAPI(title="Agenda API", version="0.1.0")


@app.middleware("http")
async def envelope_guard(request: Request, call_next):
    try:
        response = await call_next(request)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Errore non gestito su %s %s", request.method, request.url.path)
        error = InternalError(str(exc) or exc.__class__.__name__)
        response = JSONResponse(status_code=error.status_code, content={"ok": False, "error": error.message})
    response.headers["Cache-Control"] = NO_CACHE
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=[x.strip() for x in settings.cors_origins.split(",") if x.strip()] or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    if engine is not None:
        Base.metadata.create_all(bind=engine)


@app.exception_handler(AgendaError)
def agenda_error_handler(request: Request, exc: AgendaError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.message})


@app.exception_handler(RequestValidationError)
def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = InvalidBody()
    return JSONResponse(status_code=error.status_code, content={"ok": False, "error": error.message})


@app.exception_handler(StarletteHTTPException)
def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = UnsupportedMethod().message if exc.status_code == 405 else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": message}, headers=exc.headers)


@lru_cache
def get_http_client() -> httpx.Client:
    return httpx.Client(timeout=settings.http_timeout_seconds)


def get_store() -> DocumentStore:
    return build_document_store(settings, SessionLocal, get_http_client())


@lru_cache
def get_notifier() -> TelegramNotifier:
    return build_notifier(settings, get_http_client())


def get_identity(request: Request) -> Identity:
    identity = resolve_identity(request.headers, settings.service_token, settings.service_token_pattern)
    logger.info(
        "agenda auth method=%s svc=%s role=%s email=%s elevated=%s",
        request.method,
        identity.service,
        identity.role,
        identity.email,
        identity.elevated,
    )
    return identity


async def get_json_body(request: Request) -> dict[str, Any]:
    raw = await request.body()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        logger.info("Body JSON non valido su %s, trattato come vuoto", request.method)
        return {}
    return data if isinstance(data, dict) else {}


def notify_safely(send: Callable[..., bool], *args: Any) -> None:
    try:
        send(*args)
    except Exception:  # noqa: BLE001
        logger.warning("Notifica Telegram non inviata", exc_info=True)


def _flag(value: str) -> bool:
    return value.strip() == "1"


@app.get("/health", response_model=HealthOut)
def health() -> HealthOut:
    return HealthOut(status="ok", server_time_utc=datetime.now(timezone.utc))


@app.options(AGENDA_PATH)
def agenda_options() -> Response:
    return Response(status_code=200, headers=CORS_HEADERS)


@app.get(AGENDA_PATH, response_model=None, responses={500: {"model": ErrorOut}})
def agenda_list(
    all_: str = Query(default="", alias="all"),
    diag: str = Query(default=""),
    seed: str = Query(default=""),
    context: str = Query(default=""),
    identity: Identity = Depends(get_identity),
    store: DocumentStore = Depends(get_store),
) -> ListOut | DiagOut | SeedOut:
    if _flag(seed):
        written = seed_appointments(store, identity)
        return SeedOut(modes={"read": "none", "write": written.mode})

    listing = list_appointments(store, identity, show_all=_flag(all_))
    debug = {
        "total": listing.total,
        "filtered": len(listing.items),
        "user": identity.as_debug(),
        "modes": {"read": listing.read_mode, "write": "none"},
        "env": store.describe(),
        "force_context": context.strip().lower() or None,
    }
    if _flag(diag):
        return DiagOut(debug=debug, key=store.key, store=store.store_name, preview=store.read_raw())
    return ListOut(items=listing.items, debug=debug)


@app.post(AGENDA_PATH, response_model=ItemOut, responses={400: {"model": ErrorOut}, 403: {"model": ErrorOut}})
def agenda_create(
    background_tasks: BackgroundTasks,
    body: dict[str, Any] = Depends(get_json_body),
    identity: Identity = Depends(get_identity),
    store: DocumentStore = Depends(get_store),
    notifier: TelegramNotifier = Depends(get_notifier),
) -> ItemOut:
    payload = AppointmentCreateIn.model_validate(body)
    mutation = create_appointment(store, identity, payload, default_stato=settings.default_stato)
    background_tasks.add_task(notify_safely, notifier.notify_created, mutation.item)
    return ItemOut(item=mutation.item, debug=mutation.as_debug())


@app.patch(AGENDA_PATH, response_model=ItemOut, responses={400: {"model": ErrorOut}, 403: {"model": ErrorOut}, 404: {"model": ErrorOut}})
def agenda_patch(
    background_tasks: BackgroundTasks,
    id: str = Query(default=""),
    body: dict[str, Any] = Depends(get_json_body),
    identity: Identity = Depends(get_identity),
    store: DocumentStore = Depends(get_store),
    notifier: TelegramNotifier = Depends(get_notifier),
) -> ItemOut:
    mutation = patch_appointment(store, identity, id, body)
    background_tasks.add_task(notify_safely, notifier.notify_updated, mutation.previous, mutation.item)
    return ItemOut(item=mutation.item, debug=mutation.as_debug())


@app.delete(AGENDA_PATH, response_model=OkOut, responses={400: {"model": ErrorOut}, 403: {"model": ErrorOut}})
def agenda_delete(
    id: str = Query(default=""),
    identity: Identity = Depends(get_identity),
    store: DocumentStore = Depends(get_store),
) -> OkOut:
    mutation = delete_appointment(store, identity, id)
    return OkOut(debug=mutation.as_debug())
