"""
OSQP adapter for the tension-distribution QPs.

Problem (as built by problem.py):

    min  0.5 * x^T Q x + r^T x
    s.t. A x  = b        (n_eq rows)
         C x <= d        (n_ineq rows)

OSQP only knows  l <= M x <= u,  so we stack

    M = [A; C],   l = [b; -inf],   u = [b; d]

Sparsity:
  The wrench matrix is dense and refreshed every cycle, and some of its
  entries may be exactly zero on a given cycle. OSQP forbids changing the
  sparsity pattern after setup, so both P (upper triangle) and M are stored
  with a FULL pattern and only their `.data` arrays are rewritten.

Warm start / active set:
  An inequality row i is considered active when its dual y[n_eq + i] exceeds
  `active_tol` (upper bound hit). The flags and duals are kept in `ActiveSet`,
  owned by the caller, and fed back as the dual warm start on the next cycle.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

import numpy as np

import osqp
import scipy.sparse as sp

from .config import OSQPSettings


log = logging.getLogger(__name__)

# OSQP status strings accepted as converged (spelling differs across OSQP releases).
_SOLVED = ("solved", "solved inaccurate", "solved_inaccurate")
# Statuses whose x / y are real iterates. On infeasibility OSQP fills them with
# finite placeholders (~2e9) that must not reach the caller.
_USABLE = _SOLVED + ("maximum iterations reached", "maximum_iterations_reached")


class ActiveSet:
    """Inequality rows believed active, carried across cycles."""

    def __init__(self, n_ineq: int):
        self.flags = np.zeros(int(n_ineq), dtype=bool)
        self.duals = np.zeros(int(n_ineq), dtype=float)

    def __len__(self) -> int:
        return int(self.flags.size)

    def reset(self) -> None:
        self.flags[:] = False
        self.duals[:] = 0.0

    def indices(self) -> np.ndarray:
        return np.flatnonzero(self.flags)


@dataclass
class QPSolution:
    x: np.ndarray
    status: str
    converged: bool
    iterations: int
    obj_val: float


def _full_csc(M: np.ndarray) -> sp.csc_matrix:
    """CSC matrix with every entry structurally present (explicit zeros kept)."""
    rows, cols = np.indices(M.shape)
    rows = rows.ravel()
    cols = cols.ravel()
    # Build on ones so the pattern can't lose entries, then write the real values.
    S = sp.csc_matrix((np.ones(rows.size, dtype=float), (rows, cols)), shape=M.shape)
    S.data[:] = _csc_values(S, M)
    return S


def _full_triu_csc(M: np.ndarray) -> sp.csc_matrix:
    rows, cols = np.triu_indices(M.shape[0])
    S = sp.csc_matrix((np.ones(rows.size, dtype=float), (rows, cols)), shape=M.shape)
    S.data[:] = _csc_values(S, M)
    return S


def _csc_values(S: sp.csc_matrix, M: np.ndarray) -> np.ndarray:
    """Values of dense M laid out in S's (fixed) CSC storage order."""
    cols = np.repeat(np.arange(S.shape[1]), np.diff(S.indptr))
    return np.asarray(M, dtype=float)[S.indices, cols]


class OSQPSolver:
    def __init__(self, n_x: int, n_eq: int, n_ineq: int, settings: OSQPSettings | None = None):
        self.n_x = int(n_x)
        self.n_eq = int(n_eq)
        self.n_ineq = int(n_ineq)
        self.settings = OSQPSettings() if settings is None else settings
        self._prob: osqp.OSQP | None = None
        self._P: sp.csc_matrix | None = None
        self._M: sp.csc_matrix | None = None
        # equality duals from the last solve (inequality duals live in ActiveSet)
        self._y_eq = np.zeros(self.n_eq, dtype=float)

    def reset(self) -> None:
        """Drop the OSQP workspace; the next solve sets up from scratch."""
        self._prob = None
        self._y_eq[:] = 0.0

    def _setup(self, P: sp.csc_matrix, q: np.ndarray, M: sp.csc_matrix, l: np.ndarray, u: np.ndarray) -> None:
        s = self.settings
        self._prob = osqp.OSQP()
        self._prob.setup(
            P=P,
            q=q,
            A=M,
            l=l,
            u=u,
            verbose=False,
            polishing=bool(s.polishing),
            max_iter=int(s.max_iter),
            eps_abs=float(s.eps_abs),
            eps_rel=float(s.eps_rel),
        )

    def solve(
        self,
        Q: np.ndarray,
        r: np.ndarray,
        A: np.ndarray,
        b: np.ndarray,
        C: np.ndarray,
        d: np.ndarray,
        x: np.ndarray,
        active: ActiveSet,
        *,
        warm_start: bool = True,
    ) -> QPSolution:
        """
        Solve the QP. `x` is the previous iterate (primal warm start) and is
        NOT modified; `active` is updated in place.

        When OSQP stops at its iteration cap the returned x is its last
        iterate. On any other failure (infeasible, non-finite, ...) the
        incoming `x` is returned and the duals are cleared.
        """
        Q = np.asarray(Q, dtype=float).reshape(self.n_x, self.n_x)
        r = np.asarray(r, dtype=float).reshape(self.n_x)
        A = np.asarray(A, dtype=float).reshape(self.n_eq, self.n_x)
        b = np.asarray(b, dtype=float).reshape(self.n_eq)
        C = np.asarray(C, dtype=float).reshape(self.n_ineq, self.n_x)
        d = np.asarray(d, dtype=float).reshape(self.n_ineq)
        x_prev = np.asarray(x, dtype=float).reshape(self.n_x)
        if len(active) != self.n_ineq:
            raise ValueError(f"active set has {len(active)} rows, expected {self.n_ineq}")

        # OSQP wants the upper triangle of a symmetric P.
        Qs = 0.5 * (Q + Q.T)
        M_dense = np.vstack([A, C])
        l = np.concatenate([b, -np.inf * np.ones(self.n_ineq, dtype=float)])
        u = np.concatenate([b, d])

        if (not warm_start) or self._prob is None:
            self._P = _full_triu_csc(Qs)
            self._M = _full_csc(M_dense)
            self._setup(self._P, r, self._M, l, u)
        else:
            self._P.data[:] = _csc_values(self._P, Qs)
            self._M.data[:] = _csc_values(self._M, M_dense)
            self._prob.update(Px=self._P.data, q=r, Ax=self._M.data, l=l, u=u)

        if warm_start:
            y0 = np.concatenate([self._y_eq, np.where(active.flags, active.duals, 0.0)])
            self._prob.warm_start(x=x_prev, y=y0)

        res = self._prob.solve()
        status = str(getattr(res.info, "status", "unknown")).strip().lower()
        converged = status in _SOLVED
        iterations = int(getattr(res.info, "iter", 0))
        obj_val = float(getattr(res.info, "obj_val", np.nan))

        usable = status in _USABLE
        x_out = x_prev.copy()
        if usable and res.x is not None:
            xr = np.asarray(res.x, dtype=float).reshape(-1)
            if xr.size == self.n_x and np.all(np.isfinite(xr)):
                x_out = xr.copy()

        y = None if (not usable or res.y is None) else np.asarray(res.y, dtype=float).reshape(-1)
        if y is not None and y.size == self.n_eq + self.n_ineq and np.all(np.isfinite(y)):
            self._y_eq = y[: self.n_eq].copy()
            active.duals[:] = y[self.n_eq :]
            active.flags[:] = active.duals > float(self.settings.active_tol)
        else:
            self._y_eq[:] = 0.0
            active.reset()

        if not usable:
            # the workspace holds the infeasibility certificate; start clean next cycle
            self._prob = None
        if not converged:
            log.debug("osqp status=%s after %d iterations", status, iterations)

        return QPSolution(x=x_out, status=status, converged=converged, iterations=iterations, obj_val=obj_val)
