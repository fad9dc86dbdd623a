"""
Barycenter (polytope centroid) tension distribution.

Every tension vector that realizes w can be written tau = p + K lambda, with
p = pinv(W) w and K an orthonormal kernel basis of W. For an 8-cable robot K
is n x 2, so the bounds lo <= tau <= hi become n strips in the plane:

    A[i] <= H[i] . lambda <= B[i],   H = K,  A = lo - p,  B = hi - p

Their intersection is a convex polygon. Its vertices are found by
intersecting every pair of strip edges and keeping the points that lie in
all strips; the tension is taken at the polygon's centroid.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import math

import numpy as np
from scipy.linalg import null_space


log = logging.getLogger(__name__)


@dataclass
class PolytopeState:
    kernel: np.ndarray  # (n, n - 6)
    p: np.ndarray  # (n,) particular solution
    H: np.ndarray  # (n, 2)
    A: np.ndarray  # (n,) lower strip bounds
    B: np.ndarray  # (n,) upper strip bounds
    vertices: np.ndarray = field(default_factory=lambda: np.zeros((0, 2)))
    centroid: np.ndarray | None = None
    area: float = 0.0
    skipped_pairs: list[tuple[int, int]] = field(default_factory=list)

    def telemetry(self) -> list[float]:
        """Flat [H[i,0], H[i,1], A[i], B[i]] per cable."""
        out: list[float] = []
        for i in range(self.H.shape[0]):
            out.extend([float(self.H[i, 0]), float(self.H[i, 1]), float(self.A[i]), float(self.B[i])])
        return out

    def tensions(self) -> np.ndarray:
        if self.centroid is None:
            return self.p.copy()
        return self.p + self.H @ self.centroid


def project(W: np.ndarray, w: np.ndarray, lo: np.ndarray, hi: np.ndarray) -> PolytopeState:
    W = np.asarray(W, dtype=float)
    w = np.asarray(w, dtype=float).reshape(-1)
    kernel = null_space(W)
    if kernel.shape[1] < 2:
        raise ValueError(f"wrench matrix kernel has dimension {kernel.shape[1]}; the barycenter needs 2")
    p = np.linalg.pinv(W) @ w
    H = kernel[:, :2].copy()
    A = np.asarray(lo, dtype=float).reshape(-1) - p
    B = np.asarray(hi, dtype=float).reshape(-1) - p
    return PolytopeState(kernel=kernel, p=p, H=H, A=A, B=B)


def enumerate_vertices(
    H: np.ndarray,
    A: np.ndarray,
    B: np.ndarray,
    *,
    tol: float = 1e-3,
    singular_tol: float = 1e-10,
    merge_tol: float = 1e-6,
) -> tuple[np.ndarray, list[tuple[int, int]]]:
    """
    Vertices of {lambda : A - tol <= H lambda <= B + tol}.

    Returns (vertices (k, 2), skipped) where `skipped` lists the row pairs
    whose 2x2 system was singular (parallel strips).
    """
    H = np.asarray(H, dtype=float)
    A = np.asarray(A, dtype=float).reshape(-1)
    B = np.asarray(B, dtype=float).reshape(-1)
    n = H.shape[0]

    found: list[np.ndarray] = []
    skipped: list[tuple[int, int]] = []
    for i in range(n):
        for j in range(i + 1, n):
            a, b = H[i]
            c, e = H[j]
            det = a * e - b * c
            if abs(det) < singular_tol:
                skipped.append((i, j))
                continue
            inv = np.array([[e, -b], [-c, a]], dtype=float) / det
            for u in (A[i], B[i]):
                for v in (A[j], B[j]):
                    lam = inv @ np.array([u, v], dtype=float)
                    h = H @ lam
                    if np.min(h - A) >= -tol and np.max(h - B) <= tol:
                        found.append(lam)

    verts: list[np.ndarray] = []
    for lam in found:
        if all(np.max(np.abs(lam - v)) > merge_tol for v in verts):
            verts.append(lam)
    if not verts:
        return np.zeros((0, 2), dtype=float), skipped
    return np.vstack(verts), skipped


def sort_clockwise(vertices: np.ndarray, center: np.ndarray | None = None) -> np.ndarray:
    """Order points by descending polar angle around `center` (default: their mean)."""
    V = np.asarray(vertices, dtype=float).reshape(-1, 2)
    c = V.mean(axis=0) if center is None else np.asarray(center, dtype=float).reshape(2)
    ang = np.arctan2(V[:, 1] - c[1], V[:, 0] - c[0])
    return V[np.argsort(-ang, kind="stable")]


def shoelace_centroid(ordered: np.ndarray) -> tuple[np.ndarray, float]:
    """
    Centroid and signed area of a simple polygon given as an ordered vertex
    list (either orientation, not closed). Area is negative for clockwise input.
    """
    V = np.asarray(ordered, dtype=float).reshape(-1, 2)
    Vn = np.roll(V, -1, axis=0)
    cross = V[:, 0] * Vn[:, 1] - Vn[:, 0] * V[:, 1]
    a2 = float(np.sum(cross))  # twice the signed area
    if abs(a2) <= 1e-15:
        return V.mean(axis=0), 0.0
    cx = float(np.sum(cross * (V[:, 0] + Vn[:, 0])))
    cy = float(np.sum(cross * (V[:, 1] + Vn[:, 1])))
    return np.array([cx, cy], dtype=float) / (3.0 * a2), 0.5 * a2


def polygon_centroid(vertices: np.ndarray) -> tuple[np.ndarray, float]:
    """
    Centroid of the convex hull spanned by unordered `vertices`.

    One or two points: their mean (area 0). More: clockwise sort around the
    mean, then the shoelace formula.
    """
    V = np.asarray(vertices, dtype=float).reshape(-1, 2)
    if V.shape[0] == 0:
        raise ValueError("no vertices")
    if V.shape[0] <= 2:
        return V.mean(axis=0), 0.0
    return shoelace_centroid(sort_clockwise(V))


def solve(
    W: np.ndarray,
    w: np.ndarray,
    lo: np.ndarray,
    hi: np.ndarray,
    *,
    tol: float = 1e-3,
    singular_tol: float = 1e-10,
    merge_tol: float = 1e-6,
    publish=None,
) -> PolytopeState:
    """
    Full barycenter pipeline. `publish`, if given, is called with the flat
    per-cable projection data before the vertex search.

    On an empty polygon the returned state has no centroid and
    `tensions()` falls back to p.
    """
    st = project(W, w, lo, hi)
    if publish is not None:
        publish(st.telemetry())

    st.vertices, st.skipped_pairs = enumerate_vertices(
        st.H, st.A, st.B, tol=tol, singular_tol=singular_tol, merge_tol=merge_tol
    )
    log.debug("barycenter: %d vertices, %d parallel pairs skipped", st.vertices.shape[0], len(st.skipped_pairs))
    if st.vertices.shape[0] == 0:
        return st

    st.centroid, st.area = polygon_centroid(st.vertices)
    if not all(math.isfinite(float(v)) for v in st.centroid):
        st.centroid = st.vertices.mean(axis=0)
        st.area = 0.0
    return st
