"""Protocol shapes: panel signal keys, HTTP responses and WebSocket frames."""

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


# ---- Panel signals ----

SUBSCRIBE_KEY = "broadcast-subscribe"
BROADCAST_KEY = "broadcast"


@dataclass
class BroadcastSubscribeRequest:
    """Data of a ``broadcast-subscribe`` signal."""
    topic: str
    control_name: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BroadcastSubscribeRequest":
        """Raises KeyError/TypeError when a field is missing or not a string."""
        topic = data["topic"]
        control_name = data["controlName"]
        if not isinstance(topic, str) or not isinstance(control_name, str):
            raise TypeError("topic and controlName must be strings")
        return cls(topic=topic, control_name=control_name)


@dataclass
class BroadcastRequest:
    """Data of a ``broadcast`` signal. The message is passed through untouched."""
    topic: str
    message: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BroadcastRequest":
        topic = data["topic"]
        if not isinstance(topic, str):
            raise TypeError("topic must be a string")
        return cls(topic=topic, message=data.get("message"))


# ---- Health ----

@dataclass
class HealthResponse:
    """Response for GET /health."""
    uptime_sec: float
    controls: int
    subscriptions: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uptime_sec": int(self.uptime_sec),
            "controls": self.controls,
            "subscriptions": self.subscriptions,
        }


@dataclass
class NotifyResponse:
    """Response for POST /notify."""
    key: str
    handled: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def subscriptions_response(subscriptions: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Response for GET /subscriptions."""
    return {"subscriptions": subscriptions}


def stats_response(stats: Dict[str, Dict[str, int]]) -> Dict[str, Any]:
    """Response for GET /stats."""
    return {"bus": stats}


# ---- WebSocket: Server → Client ----

# Error codes (use with ws_error)
ERROR_BAD_REQUEST = "BAD_REQUEST"
ERROR_UNKNOWN_CONTROL = "UNKNOWN_CONTROL"
ERROR_CONTROL_EXISTS = "CONTROL_EXISTS"
ERROR_UNKNOWN_SUBSCRIPTION = "UNKNOWN_SUBSCRIPTION"
ERROR_SLOW_CONSUMER = "SLOW_CONSUMER"
ERROR_UNAUTHORIZED = "UNAUTHORIZED"
ERROR_INTERNAL = "INTERNAL"


def ws_ts() -> str:
    """Current UTC timestamp in ISO 8601 (e.g. 2025-08-25T10:00:00Z)."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def ws_ack(request_id: Optional[str], ts: str, **fields: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {"type": "ack", "status": "ok", "ts": ts}
    if request_id is not None:
        out["request_id"] = request_id
    for name, value in fields.items():
        if value is not None:
            out[name] = value
    return out


def ws_event(control: str, topic: str, message: Any, ts: str) -> Dict[str, Any]:
    return {"type": "event", "control": control, "topic": topic, "message": message, "ts": ts}


def ws_error(request_id: Optional[str], code: str, message: str, ts: str) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "type": "error",
        "error": {"code": code, "message": message},
        "ts": ts,
    }
    if request_id is not None:
        out["request_id"] = request_id
    return out


def ws_pong(request_id: str, ts: str) -> Dict[str, Any]:
    return {"type": "pong", "request_id": request_id, "ts": ts}


def ws_info(msg: str, ts: str, control: Optional[str] = None) -> Dict[str, Any]:
    out: Dict[str, Any] = {"type": "info", "msg": msg, "ts": ts}
    if control is not None:
        out["control"] = control
    return out
