from __future__ import annotations

from typing import Any


def compact_error(value: Any, *, limit: int = 320) -> str:
    text = str(value or "").replace("\n", " ").strip()
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def emit_event(logger: Any, event: str, *, level: str = "info", **fields: Any) -> None:
    """Logs `event` with the non-None fields; unknown levels fall back to info."""
    payload = {key: value for key, value in fields.items() if value is not None and key != "event"}
    log_fn = getattr(logger, level, None)
    if not callable(log_fn):
        log_fn = logger.info
    log_fn(str(event), **payload)
