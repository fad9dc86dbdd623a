"""Per-cycle result of a tension distribution: tensions plus what went wrong, if anything."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
import logging

import numpy as np


log = logging.getLogger(__name__)


class Status(str, Enum):
    OK = "ok"
    VIOLATION = "violation"
    NOT_CONVERGED = "not_converged"
    INFEASIBLE = "infeasible"


class DiagnosticKind(str, Enum):
    INFEASIBLE_WRENCH = "infeasible_wrench"
    SOLVER_NON_CONVERGENCE = "solver_non_convergence"
    DEGENERATE_GEOMETRY = "degenerate_geometry"
    EMPTY_POLYTOPE = "empty_polytope"
    CONSTRAINT_VIOLATION = "constraint_violation"


# Status implied by each diagnostic kind (None: informational only).
_KIND_STATUS = {
    DiagnosticKind.INFEASIBLE_WRENCH: Status.INFEASIBLE,
    DiagnosticKind.EMPTY_POLYTOPE: Status.INFEASIBLE,
    DiagnosticKind.SOLVER_NON_CONVERGENCE: Status.NOT_CONVERGED,
    DiagnosticKind.CONSTRAINT_VIOLATION: Status.VIOLATION,
    DiagnosticKind.DEGENERATE_GEOMETRY: None,
}

_SEVERITY = {Status.OK: 0, Status.VIOLATION: 1, Status.NOT_CONVERGED: 2, Status.INFEASIBLE: 3}


@dataclass(frozen=True)
class Diagnostic:
    kind: DiagnosticKind
    message: str


@dataclass
class TensionResult:
    """
    Output of one control cycle.

    `tau` is always populated (best effort when the status is not OK).
    `x` is the full solution vector: tau followed by alpha (min_norm_interp)
    or Kp, Kd (augmented_gain).
    """

    tau: np.ndarray
    x: np.ndarray
    status: Status = Status.OK
    diagnostics: list[Diagnostic] = field(default_factory=list)
    alpha: float | None = None
    kp: float | None = None
    kd: float | None = None
    info: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == Status.OK

    def has(self, kind: DiagnosticKind) -> bool:
        return any(d.kind == kind for d in self.diagnostics)

    def report(self, kind: DiagnosticKind, message: str) -> None:
        """Attach a diagnostic, log it and escalate the status if needed."""
        self.diagnostics.append(Diagnostic(kind, message))
        if kind == DiagnosticKind.DEGENERATE_GEOMETRY:
            log.debug("%s: %s", kind.value, message)
        else:
            log.warning("%s: %s", kind.value, message)
        implied = _KIND_STATUS[kind]
        if implied is not None and _SEVERITY[implied] > _SEVERITY[self.status]:
            self.status = implied


def bound_violations(tau: np.ndarray, lo: np.ndarray, hi: np.ndarray, tol: float) -> np.ndarray:
    """Indices i with tau[i] < lo[i] - tol or tau[i] > hi[i] + tol."""
    tau = np.asarray(tau, dtype=float).reshape(-1)
    bad = (tau < np.asarray(lo, dtype=float) - float(tol)) | (tau > np.asarray(hi, dtype=float) + float(tol))
    return np.flatnonzero(bad)
