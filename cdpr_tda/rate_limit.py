from __future__ import annotations

import numpy as np


class RateLimiter:
    """
    Caps the tension change per cycle by narrowing the box bounds around the
    previous solution:

        max(tau_min, tau_prev - max_delta) <= tau <= min(tau_max, tau_prev + max_delta)

    Nothing is tightened until a previous solution exists (first cycle, or
    after reset()).
    """

    def __init__(self, n: int, tau_min: float, tau_max: float, max_delta: float, enabled: bool):
        self.n = int(n)
        self.tau_min = float(tau_min)
        self.tau_max = float(tau_max)
        self.max_delta = float(max_delta)
        self.enabled = bool(enabled)
        self._tau_prev: np.ndarray | None = None

    @property
    def tau_prev(self) -> np.ndarray | None:
        return None if self._tau_prev is None else self._tau_prev.copy()

    @property
    def active(self) -> bool:
        return self.enabled and self._tau_prev is not None

    def reset(self) -> None:
        self._tau_prev = None

    def update(self, tau: np.ndarray) -> None:
        tau = np.asarray(tau, dtype=float).reshape(self.n)
        if np.all(np.isfinite(tau)):
            self._tau_prev = tau.copy()

    def bounds(self) -> tuple[np.ndarray, np.ndarray]:
        lo = np.full(self.n, self.tau_min, dtype=float)
        hi = np.full(self.n, self.tau_max, dtype=float)
        if self.active:
            lo = np.maximum(lo, self._tau_prev - self.max_delta)
            hi = np.minimum(hi, self._tau_prev + self.max_delta)
            # previous tension outside [tau_min, tau_max]: pin to the nearest limit
            lo = np.minimum(lo, hi)
        return lo, hi
