import asyncio
import json
import time
from contextlib import asynccontextmanager, suppress
from dataclasses import asdict

import structlog
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

from analyzer import badge, summarize
from config import settings
from db import init_db, load_history, reset_history, save_history
from errors import CaptureError, CaptureInProgressError, ViewTrackError
from history import build_snapshot, merge_snapshot
from logs import configure_logging
from schemas import CaptureRequest, SnapshotPush, UserCaptureRequest
from scraper import check_page_url, fetch_user_sketches, scrape_page
from series import build_series, select_view

configure_logging(settings.log_level, settings.log_json)
logger = structlog.get_logger()

clients = set()
capture_lock = asyncio.Lock()


async def broadcast(payload):
    dead = []
    for ws in list(clients):
        try:
            await ws.send_text(json.dumps({"type": "snapshot", "payload": payload}))
        except Exception:
            dead.append(ws)
    for d in dead:
        clients.discard(d)


def summary_payload(history):
    summary = summarize(history, limit=settings.breakdown_limit, max_title=settings.title_max_length)
    return asdict(summary)


async def capture(collect, *args, page_url=""):
    """Collect records, then load, merge and save the history serially.

    ``collect`` is a blocking collector call run in the default executor; with
    ``collect=None`` the first argument is taken as the records themselves.
    """
    if capture_lock.locked():
        raise CaptureInProgressError()
    async with capture_lock:
        loop = asyncio.get_running_loop()
        if collect is None:
            records = args[0]
        else:
            records = await loop.run_in_executor(None, collect, *args)
        snapshot = build_snapshot(records, page_url=page_url, tz_name=settings.capture_timezone)
        history = await loop.run_in_executor(None, load_history)
        history = merge_snapshot(history, snapshot)
        stored = await loop.run_in_executor(None, save_history, history)
    logger.info("capture_saved", fetched_at=snapshot["fetched_at"], sketches=len(snapshot["sketches"]), stored=stored)
    await broadcast(summary_payload(history))
    return {
        "status": "ok",
        "snapshot": snapshot,
        "stored": stored,
        "message": f"Captured {len(snapshot['sketches'])} sketches. Saved in storage ({stored} date snapshots).",
    }


async def poll_loop():
    while True:
        try:
            await capture(scrape_page, settings.poll_url, page_url=settings.poll_url)
        except ViewTrackError as e:
            logger.warning("poll_failed", url=settings.poll_url, error=e.message)
        except Exception:
            logger.exception("poll_failed", url=settings.poll_url)
        await asyncio.sleep(settings.poll_interval)


@asynccontextmanager
async def lifespan(application: FastAPI):
    init_db()
    task = None
    if settings.poll_interval > 0 and settings.poll_url:
        task = asyncio.create_task(poll_loop())
        logger.info("poll_started", url=settings.poll_url, interval=settings.poll_interval)
    application.state.poll_task = task
    yield
    if task:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        logger.info("poll_stopped")


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return response


app = FastAPI(title="Sketch View Tracker", version="0.1.0", lifespan=lifespan)
app.add_middleware(LoggingMiddleware)


@app.exception_handler(ViewTrackError)
async def view_track_error_handler(_request: Request, exc: ViewTrackError):
    logger.warning("request_failed", error=exc.message, error_type=type(exc).__name__)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request body.")
    logger.warning("request_invalid", field=field, error=message)
    return JSONResponse({"error": f"{field}: {message}" if field else message}, status_code=400)


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(_request: Request, exc: SQLAlchemyError):
    logger.error("store_unavailable", error=str(exc), exc_info=True)
    return JSONResponse({"error": "History store unavailable."}, status_code=503)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/capture")
async def capture_page(payload: CaptureRequest):
    check_page_url(payload.url)
    return await capture(scrape_page, payload.url, page_url=payload.url)


@app.post("/capture/user")
async def capture_user(payload: UserCaptureRequest | None = None):
    user_id = (payload.user_id if payload else None) or settings.user_id
    if not user_id:
        raise CaptureError("Set a user id to capture.")
    page_url = f"{settings.api_base}/sketch?userID={user_id}"
    return await capture(fetch_user_sketches, user_id, page_url=page_url)


@app.post("/snapshots")
async def push_snapshot(payload: SnapshotPush):
    """Store records produced by an external collector."""
    return await capture(None, payload.sketches, page_url=payload.page_url)


@app.get("/history")
async def export_history():
    history = await asyncio.get_running_loop().run_in_executor(None, load_history)
    return JSONResponse(
        history,
        headers={"Content-Disposition": 'attachment; filename="openprocessing-views-history.json"'},
    )


@app.delete("/history")
async def delete_history():
    if capture_lock.locked():
        raise CaptureInProgressError()
    async with capture_lock:
        await asyncio.get_running_loop().run_in_executor(None, reset_history)
        logger.info("history_reset")
        await broadcast(summary_payload([]))
    return {"status": "ok", "message": "history cleared"}


@app.get("/series")
async def get_series(sketch: str = "all"):
    history = await asyncio.get_running_loop().run_in_executor(None, load_history)
    series_set = build_series(history)
    view = select_view(series_set, sketch)
    return {"time_labels": series_set.time_labels, **asdict(view)}


@app.get("/summary")
async def get_summary():
    history = await asyncio.get_running_loop().run_in_executor(None, load_history)
    return summary_payload(history)


@app.get("/badge")
async def get_badge():
    history = await asyncio.get_running_loop().run_in_executor(None, load_history)
    return badge(history)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    clients.add(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        clients.discard(websocket)
