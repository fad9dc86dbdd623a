"""
Bound-and-cost builder.

Each QP-backed mode solves

    min  0.5 * x^T Q x + r^T x
    s.t. A x  = b
         C x <= d

with x = [tau(n), extras]. The shapes are decided here once, from the mode
and the robot; per-cycle code only rewrites numbers inside them.

Box rows (every mode):
    row i     :  tau[i] <=  tau_max
    row i + n : -tau[i] <= -tau_min
Extra rows are appended after the 2n box rows for the auxiliary variables.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .config import Mode, RobotParameters, TDAConfig, WRENCH_DIM, validate_config


@dataclass
class OptimizationProblem:
    mode: Mode
    n: int  # cables
    n_x: int  # solution dimension (n, n+1 or n+2)
    Q: np.ndarray | None
    r: np.ndarray | None
    A: np.ndarray  # (n_eq, n_x)
    b: np.ndarray  # (n_eq,)
    C: np.ndarray  # (n_ineq, n_x)
    d: np.ndarray  # (n_ineq,)

    @property
    def n_eq(self) -> int:
        return int(self.A.shape[0])

    @property
    def n_ineq(self) -> int:
        return int(self.C.shape[0])

    def box_bounds(self) -> tuple[np.ndarray, np.ndarray]:
        """Current (lo, hi) per cable as encoded in d."""
        n = self.n
        return -self.d[n : 2 * n].copy(), self.d[0:n].copy()

    def set_box_bounds(self, lo: np.ndarray, hi: np.ndarray) -> None:
        n = self.n
        self.d[0:n] = np.asarray(hi, dtype=float).reshape(n)
        self.d[n : 2 * n] = -np.asarray(lo, dtype=float).reshape(n)


def box_constraints(n: int, tau_min: float, tau_max: float) -> tuple[np.ndarray, np.ndarray]:
    C = np.zeros((2 * n, n), dtype=float)
    d = np.zeros(2 * n, dtype=float)
    for i in range(n):
        C[i, i] = 1.0
        C[i + n, i] = -1.0
        d[i] = float(tau_max)
        d[i + n] = -float(tau_min)
    return C, d


def _append_var_box(C: np.ndarray, d: np.ndarray, row: int, col: int, lo: float, hi: float) -> None:
    # var <= hi ; -var <= -lo
    C[row, col] = 1.0
    C[row + 1, col] = -1.0
    d[row] = float(hi)
    d[row + 1] = -float(lo)


def build_problem(mode: Mode | str, robot: RobotParameters, cfg: TDAConfig) -> OptimizationProblem:
    """Fixed-shape (Q, r, A, b, C, d) template for `mode`. Raises ConfigurationError."""
    mode = Mode.parse(mode)
    validate_config(robot, cfg)
    n = int(robot.n_cables)
    tau_min = float(robot.tau_min)
    tau_max = float(robot.tau_max)

    Q = None
    r = None
    A = np.zeros((0, n), dtype=float)
    b = np.zeros(0, dtype=float)

    if mode == Mode.MIN_NORM:
        # min |tau|^2  st  W.tau = w
        Q = np.eye(n, dtype=float)
        r = np.zeros(n, dtype=float)
        A = np.zeros((WRENCH_DIM, n), dtype=float)
        b = np.zeros(WRENCH_DIM, dtype=float)
        C, d = box_constraints(n, tau_min, tau_max)

    elif mode == Mode.MIN_WRENCH_ERROR:
        # min |W.tau - w|^2, no equality: Q = W^T W and r = -W^T w are refreshed per cycle.
        Q = np.zeros((n, n), dtype=float)
        r = np.zeros(n, dtype=float)
        C, d = box_constraints(n, tau_min, tau_max)

    elif mode == Mode.MIN_NORM_INTERP:
        # x = (tau, alpha)
        # min |tau|^2 / tau_max + lambda (alpha - 1)^2
        #  st W.tau = alpha.w + (1 - alpha).w_prev  <=>  [W | w_prev - w] x = w_prev
        n_x = n + 1
        lam = float(cfg.interp_weight)
        Q = np.eye(n_x, dtype=float) / tau_max
        Q[n, n] = lam
        r = np.zeros(n_x, dtype=float)
        r[n] = -lam
        A = np.zeros((WRENCH_DIM, n_x), dtype=float)
        b = np.zeros(WRENCH_DIM, dtype=float)
        C = np.zeros((2 * n + 2, n_x), dtype=float)
        d = np.zeros(2 * n + 2, dtype=float)
        C[: 2 * n, :n], d[: 2 * n] = box_constraints(n, tau_min, tau_max)
        _append_var_box(C, d, 2 * n, n, 0.0, 1.0)

    elif mode == Mode.AUGMENTED_GAIN:
        # x = (tau, Kp, Kd)
        # min |x|^2  st  W.tau - Kp.pe - Kd.ve = w
        n_x = n + 2
        Q = np.eye(n_x, dtype=float)
        r = np.zeros(n_x, dtype=float)
        A = np.zeros((WRENCH_DIM, n_x), dtype=float)
        b = np.zeros(WRENCH_DIM, dtype=float)
        C = np.zeros((2 * n + 4, n_x), dtype=float)
        d = np.zeros(2 * n + 4, dtype=float)
        C[: 2 * n, :n], d[: 2 * n] = box_constraints(n, tau_min, tau_max)
        _append_var_box(C, d, 2 * n, n, *cfg.kp_bounds)
        _append_var_box(C, d, 2 * n + 2, n + 1, *cfg.kd_bounds)

    else:
        # UNCONSTRAINED / CLOSED_FORM / BARYCENTER: no cost, only the box
        # (used for rate limiting and the post-hoc bound check).
        C, d = box_constraints(n, tau_min, tau_max)

    n_x = int(C.shape[1])
    return OptimizationProblem(mode=mode, n=n, n_x=n_x, Q=Q, r=r, A=A, b=b, C=C, d=d)
