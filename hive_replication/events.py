from __future__ import annotations

from typing import Any, Callable, List, Optional

from .common import PrintLogger


class Emitter:
    """Fan out job events to subscribers."""

    def __init__(self) -> None:
        self._subscribers: List[Callable[[str, dict], None]] = []

    def subscribe(self, subscriber: Callable[[str, dict], None]) -> None:
        self._subscribers.append(subscriber)

    def emit(self, event: str, payload: dict) -> None:
        for subscriber in list(self._subscribers):
            subscriber(event, payload)


def emit_log(
    emitter: Optional[Emitter],
    *,
    level: str,
    msg: str,
    logger: Optional[PrintLogger] = None,
    **fields: Any,
) -> None:
    if logger is not None:
        getattr(logger, level.lower(), logger.info)(msg, **fields)
    if emitter is not None:
        emitter.emit("log", {"level": level.upper(), "msg": msg, **fields})


__all__ = ["Emitter", "emit_log"]
