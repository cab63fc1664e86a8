"""FastAPI application for hostnotify."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
from typing import Any
import tomllib

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import AdminPolicy, TokenVerifier
from .config import Settings, settings
from .crud import DocumentStore
from .dispatcher import HostNotifier
from .gate import HostRsvpGate, InactiveReservationError
from .providers import InAppSink, ResendEmailSender, TwilioSmsSender
from .ratelimit import RateLimiters
from .scheduler import start_scheduler, stop_scheduler
from .storage import init_db
from .utils import generate_request_id

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")

HOST_RSVP_PATH = "/api/notifications/host-rsvp"


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("hostnotify")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"


APP_VERSION = _load_app_version()


def build_gate(app_settings: Settings) -> HostRsvpGate:
    """Wire the notifier, guards and verifier for one application instance."""
    store = DocumentStore()
    notifier = HostNotifier(
        store,
        in_app=InAppSink(),
        email=ResendEmailSender.from_settings(app_settings),
        sms=TwilioSmsSender.from_settings(app_settings),
        base_url=app_settings.event_url_base,
    )
    return HostRsvpGate(
        store=store,
        notifier=notifier,
        limiters=RateLimiters.from_settings(app_settings),
        verifier=TokenVerifier.from_settings(app_settings),
        admin_policy=AdminPolicy.from_settings(app_settings),
        cooldown_ms=app_settings.notification_cooldown_ms,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    gate = build_gate(settings)
    app.state.gate = gate
    if settings.enable_scheduler:
        start_scheduler(gate.limiters)
    try:
        yield
    finally:
        stop_scheduler()


app = FastAPI(title="hostnotify", version=APP_VERSION, lifespan=lifespan)


def get_gate(request: Request) -> HostRsvpGate:
    gate = getattr(request.app.state, "gate", None)
    if gate is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return gate


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for") or ""
    ip = forwarded.split(",")[0].strip()
    if ip:
        return ip
    return request.client.host if request.client else "unknown"


def _get_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization") or ""
    if not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        {"detail": exc.detail}, status_code=exc.status_code, headers=exc.headers
    )


@app.exception_handler(InactiveReservationError)
async def inactive_reservation_handler(request: Request, exc: InactiveReservationError):
    return JSONResponse(
        {"detail": str(exc), "reservationStatus": exc.status}, status_code=409
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    if request.url.path == HOST_RSVP_PATH:
        return JSONResponse({"detail": "Invalid request body"}, status_code=400)
    return JSONResponse({"detail": exc.errors()}, status_code=422)


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    logger.error(
        "Operational database error on %s %s: %s",
        request.method,
        request.url.path,
        raw,
    )
    status = 503 if "database is locked" in raw.lower() else 500
    return JSONResponse({"detail": "Database unavailable"}, status_code=status)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


class HostRsvpPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reservation_id: Any = Field(default=None, alias="reservationId")


@app.get("/healthz")
def healthz():
    return {"status": "ok", "version": APP_VERSION}


@app.post(HOST_RSVP_PATH)
def notify_host_rsvp(
    request: Request,
    payload: HostRsvpPayload | None = Body(default=None),
    gate: HostRsvpGate = Depends(get_gate),
):
    """Notify the event host about a reservation the caller just created."""
    return gate.handle(
        reservation_id=payload.reservation_id if payload else None,
        token=_get_bearer_token(request),
        client_ip=_client_ip(request),
        request_id=generate_request_id(),
    )
