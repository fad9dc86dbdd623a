from __future__ import annotations

from dataclasses import replace
from typing import Sequence
import logging

import numpy as np

from .config import Mode, RobotParameters, TDAConfig, WRENCH_DIM
from .formulations import FORMULATIONS, Formulation
from .problem import OptimizationProblem, build_problem
from .qp_osqp import ActiveSet
from .rate_limit import RateLimiter
from .result import DiagnosticKind, TensionResult, bound_violations
from .telemetry import NullTelemetry, TelemetrySink


log = logging.getLogger(__name__)

# Modes that ignore the rate limiter (their bounds are always [tau_min, tau_max]).
_NO_RATE_LIMIT = (Mode.UNCONSTRAINED, Mode.CLOSED_FORM)


class TensionDistributor:
    """
    Per-cycle tension distribution for an n-cable parallel robot.

    Usage (one call per control cycle):
        tda = TensionDistributor(RobotParameters(8, 25.0, 0.0, 100.0), TDAConfig(mode=Mode.BARYCENTER))
        res = tda.compute(W, w)
        if res.ok:
            send(res.tau)

    The mode is fixed at construction; so are the shapes of every matrix the
    selected formulation uses. All per-cycle state (solution vector, active
    set, previous tensions, previous wrench) lives on this object.
    """

    def __init__(self, robot: RobotParameters, cfg: TDAConfig | None = None, telemetry: TelemetrySink | None = None):
        self.robot = robot
        base = TDAConfig() if cfg is None else cfg
        # private copy with the mode resolved; build_problem validates it
        self.cfg = replace(base, mode=Mode.parse(base.mode))
        self.mode = self.cfg.mode
        self.n = int(robot.n_cables)
        self.telemetry = NullTelemetry() if telemetry is None else telemetry

        self._problem = build_problem(self.mode, self.robot, self.cfg)
        self._form: Formulation = FORMULATIONS[self.mode](self._problem, self.robot, self.cfg, self._publish)
        self._limiter = RateLimiter(
            self.n,
            self.robot.tau_min,
            self.robot.tau_max,
            self.cfg.max_delta,
            enabled=bool(self.cfg.rate_limit) and self.mode not in _NO_RATE_LIMIT,
        )
        self._cycles = 0

    @property
    def problem(self) -> OptimizationProblem:
        return self._problem

    @property
    def formulation(self) -> Formulation:
        return self._form

    @property
    def active_set(self) -> ActiveSet | None:
        return self._form.active_set

    @property
    def tau(self) -> np.ndarray:
        return self._form.tau.copy()

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._limiter

    def prime(self, tau: np.ndarray) -> None:
        """Seed the previous tensions (rate-limit reference and primal warm start)."""
        tau = np.asarray(tau, dtype=float).reshape(-1)
        if tau.size != self.n:
            raise ValueError(f"prime: expected {self.n} tensions, got {tau.size}")
        self._form.tau[:] = tau
        self._limiter.update(tau)

    def reset(self) -> None:
        self._form.reset()
        self._limiter.reset()
        self._cycles = 0

    def _publish(self, channel: str, data: Sequence[float]) -> None:
        try:
            self.telemetry.publish(channel, data)
        except Exception as e:
            log.warning("telemetry publish on %r failed: %s", channel, e)

    def _check_inputs(self, W, w, ve, pe) -> tuple[np.ndarray, np.ndarray, np.ndarray | None, np.ndarray | None]:
        W = np.asarray(W, dtype=float)
        if W.shape != (WRENCH_DIM, self.n):
            raise ValueError(f"wrench matrix must be {WRENCH_DIM}x{self.n}, got {W.shape}")
        w = np.asarray(w, dtype=float).reshape(-1)
        if w.size != WRENCH_DIM:
            raise ValueError(f"desired wrench must have {WRENCH_DIM} entries, got {w.size}")
        if self.mode == Mode.AUGMENTED_GAIN:
            if ve is None or pe is None:
                raise ValueError("augmented_gain needs both ve and pe")
            ve = np.asarray(ve, dtype=float).reshape(-1)
            pe = np.asarray(pe, dtype=float).reshape(-1)
            if ve.size != WRENCH_DIM or pe.size != WRENCH_DIM:
                raise ValueError(f"ve and pe must have {WRENCH_DIM} entries, got {ve.size} and {pe.size}")
        return W, w, ve, pe

    def compute(
        self,
        W: np.ndarray,
        w: np.ndarray,
        *,
        ve: np.ndarray | None = None,
        pe: np.ndarray | None = None,
    ) -> TensionResult:
        """
        Tensions for one cycle.

        Raises ValueError on malformed input. Everything else (infeasible
        wrench, solver trouble, empty polytope, bound violations) is reported
        on the returned result, whose `tau` is always filled.
        """
        W, w, ve, pe = self._check_inputs(W, w, ve, pe)

        lo, hi = self._limiter.bounds()
        res = TensionResult(tau=np.zeros(self.n, dtype=float), x=np.zeros(self._problem.n_x, dtype=float))
        res.info["rate_limited"] = self._limiter.active

        self._form.solve(W, w, lo, hi, res, ve=ve, pe=pe)
        res.x = self._form.x.copy()
        res.tau = self._form.tau.copy()

        if not np.all(np.isfinite(res.tau)):
            res.report(DiagnosticKind.SOLVER_NON_CONVERGENCE, "non-finite tensions")
        else:
            bad = bound_violations(res.tau, lo, hi, self.cfg.bound_tol)
            if bad.size > 0:
                worst = ", ".join(f"{int(i)}:{res.tau[i]:.4g}" for i in bad)
                res.report(
                    DiagnosticKind.CONSTRAINT_VIOLATION,
                    f"{bad.size} tension(s) outside [{float(np.min(lo)):.4g}, {float(np.max(hi)):.4g}] ({worst})",
                )

        self._limiter.update(res.tau)
        self._cycles += 1
        log.debug("cycle %d mode=%s status=%s", self._cycles, self.mode.value, res.status.value)
        return res
