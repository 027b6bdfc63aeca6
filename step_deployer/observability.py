import contextvars
import logging
from typing import Any


request_id_ctx = contextvars.ContextVar("request_id", default="")
_logger = logging.getLogger("step_deployer.obs")

MAX_FIELD_LENGTH = 256


def get_request_id() -> str:
    return request_id_ctx.get() or ""


def _truncate(value: str) -> str:
    if len(value) <= MAX_FIELD_LENGTH:
        return value
    return value[:MAX_FIELD_LENGTH] + "..."


def log_event(event: str, **fields: Any) -> None:
    payload = {"event": event, "request_id": get_request_id()}
    for key, value in fields.items():
        if value is None:
            continue
        if isinstance(value, str):
            payload[key] = _truncate(value)
        else:
            payload[key] = value
    parts = [f"{key}={payload[key]}" for key in sorted(payload.keys())]
    _logger.info(" ".join(parts))
