"""Tension distribution for cable-driven parallel robots."""

from .config import ConfigurationError, Mode, OSQPSettings, RobotParameters, TDAConfig
from .core import TensionDistributor
from .result import Diagnostic, DiagnosticKind, Status, TensionResult
from .telemetry import LCMTelemetry, LCMTelemetryConfig, NullTelemetry, RecordingTelemetry, TelemetrySink

__all__ = [
    "ConfigurationError",
    "Diagnostic",
    "DiagnosticKind",
    "LCMTelemetry",
    "LCMTelemetryConfig",
    "Mode",
    "NullTelemetry",
    "OSQPSettings",
    "RecordingTelemetry",
    "RobotParameters",
    "Status",
    "TDAConfig",
    "TelemetrySink",
    "TensionDistributor",
    "TensionResult",
]
