"""
Closed-form tension distribution with iterative saturation removal.

Start from the mid-range tensions f_m = (tau_max + tau_min) / 2 and take the
minimum-norm deviation that satisfies the wrench equality:

    tau = f_m + pinv(W) (w - W f_m),   f_v = tau - f_m

If |f_v| is beyond the feasibility radius sqrt(m) (tau_max + tau_min) / 4 we
give up immediately. Otherwise, while some cable is outside its bounds,
pin the first offending cable to the violated limit, move its contribution
into the wrench, drop its column and solve the reduced system again. Each
fix consumes one order of redundancy (n - 6 to start); a violation that
shows up once the order is negative means there is no solution.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import math

import numpy as np

from .config import WRENCH_DIM


log = logging.getLogger(__name__)


@dataclass
class ClosedFormState:
    f_m: np.ndarray  # running mid-range guess (zeroed for pinned cables)
    f_v: np.ndarray  # initial deviation from mid-range
    w_: np.ndarray  # wrench left for the free cables
    W_: np.ndarray  # wrench matrix with pinned columns zeroed
    tau_: np.ndarray  # pinned tensions (0 for free cables)
    order: int  # remaining redundancy order

    @classmethod
    def start(cls, W: np.ndarray, w: np.ndarray, tau_min: float, tau_max: float) -> "ClosedFormState":
        n = int(W.shape[1])
        return cls(
            f_m=np.full(n, 0.5 * (float(tau_max) + float(tau_min)), dtype=float),
            f_v=np.zeros(n, dtype=float),
            w_=np.asarray(w, dtype=float).copy(),
            W_=np.asarray(W, dtype=float).copy(),
            tau_=np.zeros(n, dtype=float),
            order=n - WRENCH_DIM,
        )

    def tensions(self) -> np.ndarray:
        return self.f_m + np.linalg.pinv(self.W_) @ (self.w_ - self.W_ @ self.f_m) + self.tau_

    def pin(self, i: int, value: float) -> None:
        self.w_ = self.w_ - float(value) * self.W_[:, i]
        self.tau_[i] = float(value)
        self.f_m[i] = 0.0
        self.W_[:, i] = 0.0
        self.order -= 1


@dataclass
class ClosedFormOutcome:
    tau: np.ndarray
    feasible: bool
    reason: str = ""
    deviation_norm: float = 0.0
    radius: float = 0.0
    # (cable index, pinned value) in the order they were fixed
    fixes: list[tuple[int, float]] = field(default_factory=list)

    @property
    def iterations(self) -> int:
        return len(self.fixes)


def feasibility_radius(mass: float, tau_min: float, tau_max: float) -> float:
    return math.sqrt(float(mass)) * (float(tau_max) + float(tau_min)) / 4.0


def _first_violation(tau: np.ndarray, tau_min: float, tau_max: float, tol: float) -> tuple[int, float] | None:
    for i, t in enumerate(tau):
        if t > tau_max + tol:
            return i, tau_max
        if t < tau_min - tol:
            return i, tau_min
    return None


def redistribute(
    W: np.ndarray,
    w: np.ndarray,
    mass: float,
    tau_min: float,
    tau_max: float,
    *,
    tol: float = 1e-3,
    wrench_tol: float = 1e-6,
) -> ClosedFormOutcome:
    W = np.asarray(W, dtype=float)
    w = np.asarray(w, dtype=float).reshape(WRENCH_DIM)
    tau_min = float(tau_min)
    tau_max = float(tau_max)

    st = ClosedFormState.start(W, w, tau_min, tau_max)
    tau = st.tensions()
    st.f_v = tau - st.f_m

    norm_fv = float(np.linalg.norm(st.f_v))
    radius = feasibility_radius(mass, tau_min, tau_max)
    out = ClosedFormOutcome(tau=tau, feasible=True, deviation_norm=norm_fv, radius=radius)
    if norm_fv > radius:
        out.feasible = False
        out.reason = f"no feasible tension distribution (|f_v|={norm_fv:.4g} > radius {radius:.4g})"
        return out

    while True:
        hit = _first_violation(tau, tau_min, tau_max, tol)
        if hit is None:
            break
        i, bound = hit
        if st.order < 0:
            out.feasible = False
            out.reason = f"no solution exists: cable {i} at {tau[i]:.4g} with redundancy exhausted"
            break
        log.debug("closed form: pin cable %d at %.4g (was %.4g, order %d)", i, bound, tau[i], st.order)
        st.pin(i, bound)
        out.fixes.append((i, bound))
        tau = st.tensions()

    out.tau = tau
    if out.feasible:
        err = float(np.linalg.norm(W @ tau - w))
        if err > float(wrench_tol) * max(1.0, float(np.linalg.norm(w))):
            out.feasible = False
            out.reason = f"no solution exists: realized wrench off by {err:.4g} after {len(out.fixes)} fixes"
    return out
