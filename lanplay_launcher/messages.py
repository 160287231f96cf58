"""
Control channel message types.
"""

import json
from dataclasses import dataclass
from typing import Dict, Union


@dataclass(frozen=True)
class Heartbeat:
    """Browser liveness signal."""


@dataclass(frozen=True)
class StatusRequest:
    """Browser asks for the current status."""


@dataclass(frozen=True)
class Unrecognized:
    """Anything else: invalid JSON, non-object payloads, unknown types."""

    raw: str = ""


ControlMessage = Union[Heartbeat, StatusRequest, Unrecognized]


def parse_message(raw) -> ControlMessage:
    """Decode one inbound frame; never raises"""
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    try:
        msg = json.loads(raw)
    except (TypeError, ValueError):
        return Unrecognized(str(raw))
    if not isinstance(msg, dict):
        return Unrecognized(raw)

    msg_type = msg.get("type")
    if msg_type == "heartbeat":
        return Heartbeat()
    if msg_type == "status":
        return StatusRequest()
    return Unrecognized(raw)


def status_message(payload: Dict) -> Dict:
    return {"type": "status", "data": payload}


def heartbeat_ack() -> Dict:
    return {"type": "heartbeat-ack"}


def shutdown_message(reason: str) -> Dict:
    return {"type": "shutdown", "reason": reason}
