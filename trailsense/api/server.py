"""
FastAPI backend: relay webhook, WebSocket fan-out, health check.
"""

import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker
from starlette.concurrency import run_in_threadpool

from ..alerts.alert_store import AlertStore
from ..broadcast.fanout import Broadcaster
from ..config import Settings
from ..db.session import create_tables, make_engine, make_session_factory
from ..devices.state import DeviceStateManager
from ..ingest.errors import IngestError, MalformedPayload, Unauthorized
from ..pipeline import IngestionPipeline, IngestResult

logger = logging.getLogger("trailsense.api")

WEBHOOK_PATH = "/webhook/golioth"


def _check_secret(settings: Settings, request: Request) -> None:
    if not settings.webhook_secret:
        return
    supplied = request.headers.get(settings.webhook_header, "")
    if not hmac.compare_digest(supplied.encode(), settings.webhook_secret.encode()):
        raise Unauthorized("invalid webhook credential")


async def _read_json(request: Request):
    body = await request.body()
    try:
        return json.loads(body)
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedPayload(f"body is not valid JSON: {e}") from e


async def fan_out(broadcaster: Optional[Broadcaster], result: IngestResult) -> None:
    """Runs after the response is sent; never raises into the request."""
    if broadcaster is None:
        logger.warning("broadcast layer not initialized; %d frame(s) dropped", len(result.broadcasts()))
        return
    for event, data in result.broadcasts():
        try:
            await broadcaster.publish(event, data)
        except Exception:
            logger.exception("broadcast of %s failed", event)


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    broadcaster: Optional[Broadcaster] = None,
) -> FastAPI:
    settings = settings or Settings()
    if session_factory is None:
        engine = make_engine(settings.database_url or None)
        create_tables(engine)
        session_factory = make_session_factory(engine)
    broadcaster = broadcaster if broadcaster is not None else Broadcaster()

    pipeline = IngestionPipeline(
        devices=DeviceStateManager(session_factory),
        alerts=AlertStore(session_factory),
    )

    app = FastAPI(title="TrailSense API", version=settings.version)
    app.state.settings = settings
    app.state.pipeline = pipeline
    app.state.broadcaster = broadcaster
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(IngestError)
    async def ingest_error_handler(request: Request, exc: IngestError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "detail": exc.message})

    @app.get("/health")
    async def health():
        """Health check."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": settings.version,
        }

    @app.post(WEBHOOK_PATH)
    async def relay_webhook(request: Request, background_tasks: BackgroundTasks):
        """Relay webhook: answer quickly, the relay retries the whole delivery on any failure."""
        _check_secret(settings, request)
        payload = await _read_json(request)
        logger.info("Webhook received: path=%r", payload.get("path") if isinstance(payload, dict) else None)
        logger.debug("Webhook payload: %s", payload)
        result = await run_in_threadpool(app.state.pipeline.process, payload)
        background_tasks.add_task(fan_out, app.state.broadcaster, result)
        return {"success": True}

    @app.websocket("/ws")
    async def events_websocket(websocket: WebSocket):
        if settings.ws_token:
            token = websocket.query_params.get("token", "")
            if not hmac.compare_digest(token.encode(), settings.ws_token.encode()):
                await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
                return
        await websocket.accept()
        hub = app.state.broadcaster
        await hub.register(websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            await hub.unregister(websocket)

    return app

