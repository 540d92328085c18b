"""Structured diagnostics for in-place corrections.

The engine never raises for bad numeric input. Whenever it clamps or corrects
a value it emits a :class:`DiagnosticEvent` to an injectable sink, so hosts can
log them and tests can assert on them.
"""
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

logger = logging.getLogger("open_spray_sim.diagnostics")

RADIUS_MIN = 1.0
RADIUS_MAX = 256.0


@dataclass(frozen=True)
class DiagnosticEvent:
    kind: str
    value: Any = None
    original: Any = None
    detail: str = ""
    severity: str = "warning"


DiagnosticSink = Callable[[DiagnosticEvent], None]


class LoggingDiagnosticSink:
    """Forwards events to the `open_spray_sim.diagnostics` logger."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def __call__(self, event: DiagnosticEvent) -> None:
        level = logging.WARNING if event.severity == "warning" else logging.DEBUG
        if not self.log.isEnabledFor(level):
            return
        self.log.log(
            level,
            "%s: %r (was %r) %s",
            event.kind, event.value, event.original, event.detail,
        )


class RecordingDiagnosticSink:
    """Keeps every event in memory."""

    def __init__(self):
        self.events: List[DiagnosticEvent] = []

    def __call__(self, event: DiagnosticEvent) -> None:
        self.events.append(event)

    def kinds(self):
        return [e.kind for e in self.events]

    def of_kind(self, kind: str) -> List[DiagnosticEvent]:
        return [e for e in self.events if e.kind == kind]

    def clear(self):
        self.events.clear()


def safe_radius(r, report: Optional[DiagnosticSink] = None) -> float:
    """Clamps a stamp radius into [1, 256]; non-finite becomes 1."""
    try:
        v = float(r)
    except (TypeError, ValueError):
        v = float("nan")
    finite = math.isfinite(v)
    if (not finite or v > RADIUS_MAX) and report is not None:
        report(DiagnosticEvent(
            "radius_sanitized",
            value=RADIUS_MAX if finite else RADIUS_MIN,
            original=r,
        ))
    if not finite:
        return RADIUS_MIN
    return max(RADIUS_MIN, min(RADIUS_MAX, v))
