"""
core/telemetry.py -- Per-request telemetry context, event record, and emitter.

Lifecycle of one request:

  1. The telemetry middleware opens a TelemetryContext (request id, ip,
     method, path) and attributes any session resolved from the cookie.
  2. The context is handed to the gate and the route handler through a
     FastAPI dependency. They classify the request: event_type, result,
     reason. Login/logout re-attribute identity.
  3. Once the response status is final, the middleware calls finalize(),
     which freezes the context into an immutable TelemetryEvent, and hands it
     to TelemetryEmitter.emit(). Any later mutation raises.

A request that no handler classified (404, framework validation error, an
exception before the route ran) still produces an event -- with null
event_type/result/reason.

Layer rule: no imports from api/ or scanner/. Kept free of FastAPI so auth/
can depend on it.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from auth.models import Session

logger = logging.getLogger("secureauth.telemetry")


def utc_timestamp() -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def client_ip(forwarded_for: str | None, peer: str | None) -> str | None:
    """First X-Forwarded-For entry if present and non-empty, else the transport peer."""
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    return peer or None


@dataclass(frozen=True)
class TelemetryEvent:
    timestamp: str
    request_id: str
    ip: str | None
    method: str
    path: str
    status: int
    event_type: str | None
    result: str | None
    reason: str | None
    user_id: str | None
    session_id: str | None

    def to_json(self) -> str:
        return json.dumps(asdict(self), separators=(",", ":"))


@dataclass
class TelemetryContext:
    """Mutable only until finalize(); see module docstring."""

    request_id: str
    ip: str | None
    method: str
    path: str
    event_type: str | None = None
    result: str | None = None
    reason: str | None = None
    user_id: str | None = None
    session_id: str | None = None
    _event: TelemetryEvent | None = field(default=None, repr=False)

    @property
    def finalized(self) -> bool:
        return self._event is not None

    def _ensure_open(self) -> None:
        if self._event is not None:
            raise RuntimeError(f"telemetry for request {self.request_id} already finalized")

    def begin(self, event_type: str) -> None:
        """Label what kind of event this request is."""
        self._ensure_open()
        self.event_type = event_type

    def succeed(self, reason: str | None = None) -> None:
        self._ensure_open()
        self.result = "success"
        self.reason = reason

    def fail(self, reason: str) -> None:
        self._ensure_open()
        self.result = "failure"
        self.reason = reason

    def attribute(self, session: Session | None) -> None:
        """Set (or clear, with None) the identity this request acts as."""
        self._ensure_open()
        self.user_id = session.user_id if session else None
        self.session_id = session.session_id if session else None

    def finalize(self, status: int) -> TelemetryEvent:
        """Freeze the context into its event. Exactly one event per context."""
        self._ensure_open()
        self._event = TelemetryEvent(
            timestamp=utc_timestamp(),
            request_id=self.request_id,
            ip=self.ip,
            method=self.method,
            path=self.path,
            status=status,
            event_type=self.event_type,
            result=self.result,
            reason=self.reason,
            user_id=self.user_id,
            session_id=self.session_id,
        )
        return self._event


TelemetrySink = Callable[[TelemetryEvent], None]


class JsonlFileSink:
    """Append each event as one JSON line to a file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def __call__(self, event: TelemetryEvent) -> None:
        with self._lock, self.path.open("a", encoding="utf-8") as fh:
            fh.write(event.to_json() + "\n")


class TelemetryEmitter:
    """Fan one finalized event out to the log stream and every registered sink.

    The response has already been produced when emit() runs, so a failing
    sink is logged and the remaining sinks still receive the event.
    """

    def __init__(self, sinks: list[TelemetrySink] | None = None) -> None:
        self._sinks: list[TelemetrySink] = list(sinks or [])

    def add_sink(self, sink: TelemetrySink) -> None:
        self._sinks.append(sink)

    def emit(self, event: TelemetryEvent) -> None:
        logger.info(event.to_json())
        for sink in self._sinks:
            try:
                sink(event)
            except Exception:
                logger.exception("Telemetry sink %r failed for request %s", sink, event.request_id)
