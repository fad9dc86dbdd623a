"""
One class per tension-distribution mode.

Every formulation owns its solution vector `x` (tau first, then any
auxiliary variables) and only the matrices its mode needs. `solve()` writes
the new x and attaches diagnostics/auxiliary values to the result; bound
checking and rate-limit bookkeeping are left to the distributor.
"""

from __future__ import annotations

from typing import Callable, Sequence

import numpy as np

from . import barycenter
from .closed_form import redistribute
from .config import Mode, RobotParameters, TDAConfig
from .problem import OptimizationProblem
from .qp_osqp import ActiveSet, OSQPSolver
from .result import DiagnosticKind, TensionResult
from .telemetry import BARYCENTER_CHANNEL


Publish = Callable[[str, Sequence[float]], None]


class Formulation:
    mode: Mode

    def __init__(self, problem: OptimizationProblem, robot: RobotParameters, cfg: TDAConfig, publish: Publish | None = None):
        self.problem = problem
        self.robot = robot
        self.cfg = cfg
        self.publish = publish
        self.n = int(problem.n)
        self.x = np.zeros(problem.n_x, dtype=float)

    @property
    def tau(self) -> np.ndarray:
        # view, not a copy
        return self.x[: self.n]

    @property
    def active_set(self) -> ActiveSet | None:
        return None

    def reset(self) -> None:
        self.x[:] = 0.0

    def solve(
        self,
        W: np.ndarray,
        w: np.ndarray,
        lo: np.ndarray,
        hi: np.ndarray,
        result: TensionResult,
        *,
        ve: np.ndarray | None = None,
        pe: np.ndarray | None = None,
    ) -> None:
        raise NotImplementedError


class UnconstrainedFormulation(Formulation):
    """tau = pinv(W) w. Bounds are not enforced, only checked afterwards."""

    mode = Mode.UNCONSTRAINED

    def solve(self, W, w, lo, hi, result, *, ve=None, pe=None) -> None:
        self.x[:] = np.linalg.pinv(W) @ w


class QPFormulation(Formulation):
    """Shared OSQP plumbing; subclasses fill (Q, r, A, b) in `assemble()`."""

    def __init__(self, problem, robot, cfg, publish=None):
        super().__init__(problem, robot, cfg, publish)
        self.solver = OSQPSolver(problem.n_x, problem.n_eq, problem.n_ineq, cfg.osqp)
        self._active = ActiveSet(problem.n_ineq)

    @property
    def active_set(self) -> ActiveSet:
        return self._active

    def reset(self) -> None:
        super().reset()
        self._active.reset()
        self.solver.reset()

    def assemble(self, W: np.ndarray, w: np.ndarray, ve: np.ndarray | None, pe: np.ndarray | None) -> None:
        raise NotImplementedError

    def after_solve(self, w: np.ndarray, result: TensionResult) -> None:
        pass

    def solve(self, W, w, lo, hi, result, *, ve=None, pe=None) -> None:
        pb = self.problem
        self.assemble(W, w, ve, pe)
        pb.set_box_bounds(lo, hi)

        warm = bool(self.cfg.warm_start)
        if not warm:
            self._active.reset()
            self.solver.reset()

        sol = self.solver.solve(pb.Q, pb.r, pb.A, pb.b, pb.C, pb.d, self.x, self._active, warm_start=warm)
        self.x[:] = sol.x
        result.info["solver_status"] = sol.status
        result.info["iterations"] = sol.iterations
        result.info["active_rows"] = self._active.indices().tolist()

        if not sol.converged:
            if "infeasible" in sol.status:
                result.report(DiagnosticKind.INFEASIBLE_WRENCH, f"{self.mode.value}: QP reported '{sol.status}'")
            else:
                result.report(
                    DiagnosticKind.SOLVER_NON_CONVERGENCE,
                    f"{self.mode.value}: OSQP status '{sol.status}' after {sol.iterations} iterations",
                )
        self.after_solve(w, result)


class MinNormFormulation(QPFormulation):
    """min |tau|^2  st  W tau = w, box."""

    mode = Mode.MIN_NORM

    def assemble(self, W, w, ve, pe) -> None:
        self.problem.A[:, :] = W
        self.problem.b[:] = w


class MinWrenchErrorFormulation(QPFormulation):
    """min |W tau - w|^2, box only. Exact wrench tracking is not enforced."""

    mode = Mode.MIN_WRENCH_ERROR

    def assemble(self, W, w, ve, pe) -> None:
        self.problem.Q[:, :] = W.T @ W
        self.problem.r[:] = -(W.T @ w)


class MinNormInterpFormulation(QPFormulation):
    """
    x = (tau, alpha). The realized wrench is alpha w + (1 - alpha) w_prev,
    where w_prev is the wrench requested on the previous cycle (0 at start);
    alpha is pulled towards 1 by the interp_weight penalty.
    """

    mode = Mode.MIN_NORM_INTERP

    def __init__(self, problem, robot, cfg, publish=None):
        super().__init__(problem, robot, cfg, publish)
        self.w_prev = np.zeros(problem.A.shape[0], dtype=float)

    def reset(self) -> None:
        super().reset()
        self.w_prev[:] = 0.0

    def assemble(self, W, w, ve, pe) -> None:
        n = self.n
        self.problem.A[:, :n] = W
        self.problem.A[:, n] = self.w_prev - w
        self.problem.b[:] = self.w_prev

    def after_solve(self, w, result) -> None:
        self.w_prev = np.asarray(w, dtype=float).copy()
        result.alpha = float(self.x[self.n])


class AugmentedGainFormulation(QPFormulation):
    """x = (tau, Kp, Kd) with W tau - Kp pe - Kd ve = w."""

    mode = Mode.AUGMENTED_GAIN

    def assemble(self, W, w, ve, pe) -> None:
        n = self.n
        self.problem.A[:, :n] = W
        self.problem.A[:, n] = -np.asarray(pe, dtype=float)
        self.problem.A[:, n + 1] = -np.asarray(ve, dtype=float)
        self.problem.b[:] = w

    def after_solve(self, w, result) -> None:
        result.kp = float(self.x[self.n])
        result.kd = float(self.x[self.n + 1])


class ClosedFormFormulation(Formulation):
    mode = Mode.CLOSED_FORM

    def solve(self, W, w, lo, hi, result, *, ve=None, pe=None) -> None:
        out = redistribute(
            W,
            w,
            self.robot.mass,
            self.robot.tau_min,
            self.robot.tau_max,
            tol=self.cfg.saturation_tol,
            wrench_tol=self.cfg.wrench_tol,
        )
        self.x[:] = out.tau
        result.info["closed_form_fixes"] = list(out.fixes)
        result.info["deviation_norm"] = out.deviation_norm
        result.info["feasibility_radius"] = out.radius
        if not out.feasible:
            result.report(DiagnosticKind.INFEASIBLE_WRENCH, out.reason)


class BarycenterFormulation(Formulation):
    """Centroid of the feasible tension polygon (8 cables, 2-D redundancy)."""

    mode = Mode.BARYCENTER

    def _publish(self, data: Sequence[float]) -> None:
        if self.publish is not None:
            self.publish(BARYCENTER_CHANNEL, data)

    def solve(self, W, w, lo, hi, result, *, ve=None, pe=None) -> None:
        cfg = self.cfg
        st = barycenter.solve(
            W,
            w,
            lo,
            hi,
            tol=cfg.vertex_tol,
            singular_tol=cfg.singular_tol,
            merge_tol=cfg.vertex_merge_tol,
            publish=self._publish,
        )
        self.x[:] = st.tensions()

        if st.kernel.shape[1] > 2:
            result.report(
                DiagnosticKind.DEGENERATE_GEOMETRY,
                f"wrench matrix is rank deficient (kernel dimension {st.kernel.shape[1]}); using 2 kernel directions",
            )
        if st.skipped_pairs:
            result.report(
                DiagnosticKind.DEGENERATE_GEOMETRY,
                f"{len(st.skipped_pairs)} parallel strip pair(s) skipped in vertex search",
            )

        result.info["vertices"] = st.vertices.copy()
        result.info["area"] = float(st.area)
        if st.centroid is None:
            result.report(DiagnosticKind.EMPTY_POLYTOPE, "no feasible vertex; returning the minimum-norm particular solution")
            result.info["centroid"] = None
        else:
            result.info["centroid"] = st.centroid.copy()


FORMULATIONS: dict[Mode, type[Formulation]] = {
    Mode.UNCONSTRAINED: UnconstrainedFormulation,
    Mode.MIN_NORM: MinNormFormulation,
    Mode.MIN_WRENCH_ERROR: MinWrenchErrorFormulation,
    Mode.MIN_NORM_INTERP: MinNormInterpFormulation,
    Mode.AUGMENTED_GAIN: AugmentedGainFormulation,
    Mode.CLOSED_FORM: ClosedFormFormulation,
    Mode.BARYCENTER: BarycenterFormulation,
}
