"""HTTP server: health, stats, subscriptions, notify, publish. WebSocket: ping, attach, subscribe, unsubscribe, publish, notify."""

from dotenv import load_dotenv
load_dotenv()

import asyncio
import json
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware

from panelbus.config import Settings
from panelbus.observability import get_logger
from panelbus.panel import Panel
from panelbus.protocol import (
    HealthResponse,
    NotifyResponse,
    stats_response,
    subscriptions_response,
    ws_ack,
    ws_error,
    ws_info,
    ws_pong,
    ws_ts,
    ERROR_BAD_REQUEST,
    ERROR_CONTROL_EXISTS,
    ERROR_INTERNAL,
    ERROR_SLOW_CONSUMER,
    ERROR_UNAUTHORIZED,
    ERROR_UNKNOWN_CONTROL,
    ERROR_UNKNOWN_SUBSCRIPTION,
)
from panelbus.registry import SubscriptionToken
from panelbus.remote_control import RemoteControl

logger = get_logger("panelbus.server")


class XAPIKeyMiddleware(BaseHTTPMiddleware):
    """Require X-API-Key header; API_KEY must be configured."""
    async def dispatch(self, request: Request, call_next):
        if request.scope.get("type") == "websocket":
            return await call_next(request)
        expected = request.app.state.settings.api_key
        if not expected:
            return JSONResponse(
                status_code=503,
                content={"error": "UNAUTHORIZED", "message": "X-API-Key required (API_KEY env not set)"},
            )
        key = (request.headers.get("X-API-Key") or "").strip()
        if key != expected:
            return JSONResponse(
                status_code=401,
                content={"error": "UNAUTHORIZED", "message": "invalid or missing X-API-Key"},
            )
        return await call_next(request)


async def _heartbeat_loop(app: FastAPI) -> None:
    """Periodically send info heartbeat (msg: ping) to all connected WebSocket clients."""
    interval = app.state.settings.heartbeat_interval_sec
    if interval <= 0:
        return
    while True:
        await asyncio.sleep(interval)
        payload = ws_info("ping", ws_ts())
        dead = []
        for ws in list(app.state.ws_connections):
            try:
                await ws.send_json(payload)
            except Exception:
                dead.append(ws)
        for ws in dead:
            app.state.ws_connections.discard(ws)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.start_time = time.time()
    heartbeat = asyncio.create_task(_heartbeat_loop(app))
    yield
    heartbeat.cancel()
    try:
        await heartbeat
    except asyncio.CancelledError:
        pass


# ---- Request bodies ----

class NotifyBody(BaseModel):
    key: str
    data: Any = None


class PublishBody(BaseModel):
    topic: str
    message: Any = None


router = APIRouter(prefix="/api/v1")


def _panel(request: Request) -> Panel:
    return request.app.state.panel


# ---- Health ----

@router.get("/health")
def health(request: Request) -> JSONResponse:
    """GET /health → { uptime_sec, controls, subscriptions }."""
    panel = _panel(request)
    body = HealthResponse(
        uptime_sec=time.time() - request.app.state.start_time,
        controls=panel.control_count(),
        subscriptions=len(panel.bus.registry),
    ).to_dict()
    return JSONResponse(content=body, status_code=200)


# ---- Stats ----

@router.get("/stats")
def stats(request: Request) -> JSONResponse:
    """GET /stats → { bus: { counters, gauges } }."""
    body = stats_response(_panel(request).bus.stats())
    return JSONResponse(content=body, status_code=200)


# ---- Subscriptions ----

@router.get("/subscriptions")
def list_subscriptions(request: Request) -> JSONResponse:
    """GET /subscriptions → { subscriptions: [ { id, pattern, subscriber, mode } ] } in dispatch order."""
    entries = [s.to_dict() for s in _panel(request).bus.subscriptions()]
    return JSONResponse(content=subscriptions_response(entries), status_code=200)


# ---- Signals ----

@router.post("/notify")
def notify(body: NotifyBody, request: Request) -> JSONResponse:
    """POST /notify { key, data } → deliver a signal to the panel root."""
    key = body.key.strip()
    if not key:
        return JSONResponse(content={"error": "key is required"}, status_code=400)
    panel = _panel(request)
    handled = panel.signals.handles(key)
    panel.notify(key, body.data)
    return JSONResponse(content=NotifyResponse(key=key, handled=handled).to_dict(), status_code=200)


@router.post("/publish")
def publish(body: PublishBody, request: Request) -> JSONResponse:
    """POST /publish { topic, message } → 202; delivery is complete when the response is sent."""
    _panel(request).signals.broadcast(body.topic, body.message)
    return JSONResponse(content={"status": "accepted", "topic": body.topic}, status_code=202)


# ---- WebSocket (ping, attach, subscribe, unsubscribe, publish, notify) ----

async def _ws_send(websocket: WebSocket, payload: dict) -> None:
    """Send JSON to client; on failure sends SLOW_CONSUMER error if possible."""
    try:
        await websocket.send_json(payload)
    except Exception:
        try:
            await websocket.send_json(ws_error(
                None, ERROR_SLOW_CONSUMER,
                "delivery failed or control queue overflow",
                ws_ts(),
            ))
        except Exception:
            logger.warning("ws_send_failed", extra={"payload_type": payload.get("type")})


def _make_send_callback(websocket: WebSocket):
    """Callback that schedules sending a dict over the websocket."""
    def send_cb(d: dict) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("ws_send_no_loop", extra={"payload_type": d.get("type")})
            return
        loop.create_task(_ws_send(websocket, d))
    return send_cb


def _ws_api_key_ok(websocket: WebSocket) -> bool:
    """Return True if X-API-Key matches the configured API key. The key must be set."""
    expected = websocket.app.state.settings.api_key
    if not expected:
        return False
    key = (websocket.headers.get("x-api-key") or "").strip()
    return key == expected


class _Connection:
    """Remote controls and subscriptions owned by one WebSocket; released on close."""

    def __init__(self, panel: Panel, settings: Settings, websocket: WebSocket) -> None:
        self.panel = panel
        self.settings = settings
        self.send_cb = _make_send_callback(websocket)
        self.controls: Dict[str, RemoteControl] = {}
        self.tokens: set = set()

    def attach(self, name: str) -> Optional[RemoteControl]:
        if self.panel.find(name) is not None:
            return None
        control = RemoteControl(name, queue_max_size=self.settings.queue_max_size)
        control.set_send_callback(self.send_cb)
        control.start_drain(asyncio.get_running_loop())
        self.panel.add(control)
        self.controls[name] = control
        return control

    def default_control(self) -> Optional[str]:
        if len(self.controls) == 1:
            return next(iter(self.controls))
        return None

    def close(self) -> None:
        for token in list(self.tokens):
            self.panel.bus.unsubscribe(token)
        self.tokens.clear()
        for control in self.controls.values():
            # also covers subscriptions made by name through notify signals
            self.panel.bus.unsubscribe_control(control)
            control.stop_drain()
            control.set_send_callback(None)
            self.panel.remove(control)
        self.controls.clear()


async def _handle_frame(websocket: WebSocket, conn: _Connection, msg: Dict[str, Any]) -> None:
    msg_type = msg.get("type")
    request_id = msg.get("request_id")
    panel = conn.panel

    if msg_type == "ping":
        await websocket.send_json(ws_pong(msg.get("request_id", ""), ws_ts()))
        return

    if msg_type == "attach":
        name = msg.get("control")
        if not name or not isinstance(name, str):
            await websocket.send_json(ws_error(request_id, ERROR_BAD_REQUEST, "attach requires control", ws_ts()))
            return
        if conn.attach(name) is None:
            await websocket.send_json(ws_error(
                request_id, ERROR_CONTROL_EXISTS,
                f"Control {name!r} already exists",
                ws_ts(),
            ))
            return
        await websocket.send_json(ws_ack(request_id, ws_ts(), control=name))
        return

    if msg_type == "subscribe":
        topic = msg.get("topic")
        control_name = msg.get("control") or conn.default_control()
        if not isinstance(topic, str) or not control_name:
            await websocket.send_json(ws_error(
                request_id, ERROR_BAD_REQUEST,
                "subscribe requires topic and control",
                ws_ts(),
            ))
            return
        token = panel.signals.subscribe(topic, control_name)
        if token is None:
            await websocket.send_json(ws_error(
                request_id, ERROR_UNKNOWN_CONTROL,
                f"Control {control_name!r} not found",
                ws_ts(),
            ))
            return
        conn.tokens.add(token)
        await websocket.send_json(ws_ack(request_id, ws_ts(), topic=topic, subscription=str(token)))
        return

    if msg_type == "unsubscribe":
        raw = msg.get("subscription")
        try:
            token = SubscriptionToken.parse(raw)
        except ValueError:
            await websocket.send_json(ws_error(
                request_id, ERROR_BAD_REQUEST,
                "unsubscribe requires subscription",
                ws_ts(),
            ))
            return
        if not panel.bus.unsubscribe(token):
            await websocket.send_json(ws_error(
                request_id, ERROR_UNKNOWN_SUBSCRIPTION,
                f"Subscription {raw!r} not found",
                ws_ts(),
            ))
            return
        conn.tokens.discard(token)
        await websocket.send_json(ws_ack(request_id, ws_ts(), subscription=str(token)))
        return

    if msg_type == "publish":
        topic = msg.get("topic")
        if not topic or not isinstance(topic, str):
            await websocket.send_json(ws_error(request_id, ERROR_BAD_REQUEST, "publish requires topic", ws_ts()))
            return
        panel.signals.broadcast(topic, msg.get("message"))
        await websocket.send_json(ws_ack(request_id, ws_ts(), topic=topic))
        return

    if msg_type == "notify":
        key = msg.get("key")
        if not key or not isinstance(key, str):
            await websocket.send_json(ws_error(request_id, ERROR_BAD_REQUEST, "notify requires key", ws_ts()))
            return
        panel.notify(key, msg.get("data"))
        await websocket.send_json(ws_ack(request_id, ws_ts(), key=key))
        return

    await websocket.send_json(ws_error(
        request_id, ERROR_BAD_REQUEST,
        f"Unknown type: {msg_type!r}",
        ws_ts(),
    ))


@router.websocket("/ws")
async def websocket_handler(websocket: WebSocket) -> None:
    """
    WebSocket endpoint. Messages: ping, attach, subscribe, unsubscribe, publish, notify.
    Server replies: pong, ack, event, error, info.
    """
    await websocket.accept()
    if not _ws_api_key_ok(websocket):
        await websocket.send_json(ws_error(
            None, ERROR_UNAUTHORIZED,
            "invalid or missing X-API-Key",
            ws_ts(),
        ))
        await websocket.close()
        return
    app = websocket.app
    app.state.ws_connections.add(websocket)
    conn = _Connection(app.state.panel, app.state.settings, websocket)
    try:
        while True:
            data = await websocket.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json(ws_error(None, ERROR_BAD_REQUEST, "Invalid JSON", ws_ts()))
                continue
            if not isinstance(msg, dict):
                await websocket.send_json(ws_error(None, ERROR_BAD_REQUEST, "Frame must be an object", ws_ts()))
                continue
            await _handle_frame(websocket, conn, msg)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.exception("ws_error", extra={"error": str(e)})
        try:
            await websocket.send_json(ws_error(
                None, ERROR_INTERNAL,
                f"Unexpected server error: {e!s}",
                ws_ts(),
            ))
        except Exception:
            logger.warning("ws_error_not_sent")
    finally:
        conn.close()
        app.state.ws_connections.discard(websocket)


def create_app(panel: Optional[Panel] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the app around a panel. Each app gets its own panel unless one is passed in."""
    settings = settings or Settings.from_env()
    app = FastAPI(title="Panel Broadcast API", lifespan=lifespan)
    app.state.settings = settings
    app.state.panel = panel or Panel(settings.panel_name, match_mode=settings.match_mode)
    app.state.start_time = time.time()
    app.state.ws_connections = set()
    app.add_middleware(XAPIKeyMiddleware)
    app.include_router(router)
    return app


app = create_app()
