"""Spray-paint engine: grains, wetness and drips."""
from .configs import Material, PaintColor, SprayParams
from .diagnostics import DiagnosticEvent, LoggingDiagnosticSink, RecordingDiagnosticSink
from .scheduling import MonotonicClock, TaskScheduler, VirtualClock
from .spray_engine import EngineStats, SprayEngine

__all__ = [
    "SprayEngine",
    "SprayParams",
    "EngineStats",
    "Material",
    "PaintColor",
    "DiagnosticEvent",
    "LoggingDiagnosticSink",
    "RecordingDiagnosticSink",
    "MonotonicClock",
    "TaskScheduler",
    "VirtualClock",
]
