"""
Configuration objects for the tension distribution solver.

Robot-side numbers (cable count, platform mass, tension limits) come from the
robot model and are read-only here. Everything that tunes the algorithm lives
in `TDAConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import math


class ConfigurationError(ValueError):
    """Invalid solver configuration (raised at construction, never per cycle)."""


class Mode(str, Enum):
    UNCONSTRAINED = "unconstrained"
    MIN_NORM = "min_norm"
    MIN_WRENCH_ERROR = "min_wrench_error"
    MIN_NORM_INTERP = "min_norm_interp"
    CLOSED_FORM = "closed_form"
    BARYCENTER = "barycenter"
    AUGMENTED_GAIN = "augmented_gain"

    @classmethod
    def parse(cls, name: "str | Mode") -> "Mode":
        if isinstance(name, Mode):
            return name
        key = str(name).strip().lower().replace("-", "_")
        for m in cls:
            if m.value == key or m.name.lower() == key:
                return m
        raise ConfigurationError(f"unknown mode {name!r}; expected one of {[m.value for m in cls]}")


# Modes whose tension vector comes out of the OSQP adapter.
QP_MODES = (Mode.MIN_NORM, Mode.MIN_WRENCH_ERROR, Mode.MIN_NORM_INTERP, Mode.AUGMENTED_GAIN)

# Wrench dimension (force + moment).
WRENCH_DIM = 6


@dataclass(frozen=True)
class RobotParameters:
    n_cables: int
    mass: float  # kg
    tau_min: float  # N
    tau_max: float  # N

    @property
    def redundancy(self) -> int:
        return int(self.n_cables) - WRENCH_DIM


@dataclass
class OSQPSettings:
    max_iter: int = 10000
    # Tight tolerances + polishing: the equality W.tau = w is checked downstream.
    eps_abs: float = 1e-7
    eps_rel: float = 1e-7
    polishing: bool = True
    # An inequality row counts as active when its dual exceeds this.
    active_tol: float = 1e-7


@dataclass
class TDAConfig:
    mode: Mode = Mode.MIN_NORM

    # Reuse last cycle's primal/dual iterate and active set.
    # If False the OSQP workspace is re-created every cycle (deterministic).
    warm_start: bool = True

    # Rate limiting: |tau[i] - tau_prev[i]| <= max_delta (N per cycle).
    # Ignored in UNCONSTRAINED and CLOSED_FORM modes.
    rate_limit: bool = False
    max_delta: float = 0.0

    # Saturation check margin used by the closed-form redistribution.
    saturation_tol: float = 1e-3
    # Membership margin of a candidate vertex in every projected strip.
    vertex_tol: float = 1e-3
    # Vertices closer than this (in redundancy coordinates) are merged.
    vertex_merge_tol: float = 1e-6
    # 2x2 intersection systems with |det| below this are treated as parallel rows.
    singular_tol: float = 1e-10
    # Post-hoc bound check margin on every output.
    bound_tol: float = 1e-3
    # Closed form: realized wrench error above this means the reduced system lost rank.
    wrench_tol: float = 1e-6

    # MIN_NORM_INTERP: weight of the (alpha - 1)^2 penalty.
    interp_weight: float = 7000.0
    # AUGMENTED_GAIN: box on the appended gains.
    kp_bounds: tuple[float, float] = (1.0, 400.0)
    kd_bounds: tuple[float, float] = (2.0, 400.0)

    osqp: OSQPSettings = field(default_factory=OSQPSettings)


def validate_config(robot: RobotParameters, cfg: TDAConfig) -> None:
    """Raise ConfigurationError if `robot`/`cfg` cannot drive the selected mode."""
    n = int(robot.n_cables)
    if n < WRENCH_DIM:
        raise ConfigurationError(f"{n} cables cannot cover a {WRENCH_DIM}-dimensional wrench (need >= {WRENCH_DIM})")
    if not (math.isfinite(robot.tau_min) and math.isfinite(robot.tau_max)):
        raise ConfigurationError("tension bounds must be finite")
    if float(robot.tau_min) >= float(robot.tau_max):
        raise ConfigurationError(f"tau_min ({robot.tau_min}) must be < tau_max ({robot.tau_max})")
    if not float(robot.mass) > 0.0:
        raise ConfigurationError(f"platform mass must be positive, got {robot.mass}")

    mode = Mode.parse(cfg.mode)
    if mode == Mode.BARYCENTER and n != 8:
        # The centroid lives in a 2-D slice of the kernel; with n != 8 that slice
        # would either not exist or silently drop redundancy.
        raise ConfigurationError(f"barycenter mode needs exactly 8 cables (2-D redundancy), got {n}")
    if mode == Mode.MIN_NORM_INTERP and float(robot.tau_max) <= 0.0:
        raise ConfigurationError("min_norm_interp scales its cost by 1/tau_max; tau_max must be positive")

    if cfg.rate_limit and float(cfg.max_delta) <= 0.0:
        raise ConfigurationError(f"rate limiting needs max_delta > 0, got {cfg.max_delta}")
    for name in ("saturation_tol", "vertex_tol", "vertex_merge_tol", "singular_tol", "bound_tol", "wrench_tol"):
        if not float(getattr(cfg, name)) > 0.0:
            raise ConfigurationError(f"{name} must be positive")
    if float(cfg.interp_weight) <= 0.0:
        raise ConfigurationError("interp_weight must be positive")
    for name in ("kp_bounds", "kd_bounds"):
        lo, hi = getattr(cfg, name)
        if float(lo) > float(hi):
            raise ConfigurationError(f"{name}: lower bound {lo} above upper bound {hi}")
