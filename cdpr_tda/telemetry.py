"""
Telemetry sinks.

The barycenter formulation publishes its projected strip data once per cycle.
Sinks are fire-and-forget: the distributor logs and swallows publish errors.
"""

from __future__ import annotations

from dataclasses import dataclass
import struct
from typing import Protocol, Sequence


# Channel the barycenter projection is published on.
BARYCENTER_CHANNEL = "barycenter"


class TelemetrySink(Protocol):
    def publish(self, channel: str, data: Sequence[float]) -> None: ...


class NullTelemetry:
    def publish(self, channel: str, data: Sequence[float]) -> None:
        return None


class RecordingTelemetry:
    """Keeps every published message in memory (tests, offline runs)."""

    def __init__(self):
        self.messages: list[tuple[str, list[float]]] = []

    def publish(self, channel: str, data: Sequence[float]) -> None:
        self.messages.append((str(channel), [float(v) for v in data]))

    def last(self, channel: str) -> list[float] | None:
        for ch, data in reversed(self.messages):
            if ch == channel:
                return data
        return None


def encode_float_array(data: Sequence[float]) -> bytes:
    """Big-endian int32 length followed by float32 values."""
    vals = [float(v) for v in data]
    return struct.pack(">i", len(vals)) + struct.pack(f">{len(vals)}f", *vals)


def decode_float_array(buf: bytes) -> list[float]:
    (count,) = struct.unpack_from(">i", buf, 0)
    if count < 0 or len(buf) < 4 + 4 * count:
        raise ValueError(f"truncated float array payload ({len(buf)} bytes for {count} values)")
    return list(struct.unpack_from(f">{count}f", buf, 4))


@dataclass
class LCMTelemetryConfig:
    lcm_url: str = "udpm://239.255.76.67:7667?ttl=255"
    # Prepended to every channel name (e.g. "cdpr_" -> "cdpr_barycenter").
    channel_prefix: str = ""


class LCMTelemetry:
    """Publishes float arrays over LCM (needs the `lcm` extra)."""

    def __init__(self, cfg: LCMTelemetryConfig | None = None):
        import lcm

        self.cfg = LCMTelemetryConfig() if cfg is None else cfg
        self.lc = lcm.LCM(self.cfg.lcm_url)

    def publish(self, channel: str, data: Sequence[float]) -> None:
        self.lc.publish(f"{self.cfg.channel_prefix}{channel}", encode_float_array(data))
