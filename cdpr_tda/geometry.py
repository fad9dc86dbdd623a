"""
Wrench matrix of a point-to-point cable robot.

Cable i runs from platform anchor b_i (platform frame) to frame anchor a_i
(world frame). With platform pose (p, R) and unit direction

    u_i = (a_i - p - R b_i) / |a_i - p - R b_i|

the wrench the cables apply to the platform is W tau, with column i of W
equal to [u_i; (R b_i) x u_i].
"""

from __future__ import annotations

import numpy as np
from scipy.spatial.transform import Rotation


def rotation_rpy(rpy: np.ndarray) -> np.ndarray:
    """Roll-pitch-yaw (extrinsic x, y, z; rad) -> R (platform->world)."""
    return Rotation.from_euler("xyz", np.asarray(rpy, dtype=float).reshape(3)).as_matrix()


def cable_vectors(frame_anchors: np.ndarray, platform_anchors: np.ndarray, position: np.ndarray, rpy: np.ndarray):
    """Returns (u (n,3) unit directions, lengths (n,), Rb (n,3) platform anchors in world axes)."""
    a = np.asarray(frame_anchors, dtype=float).reshape(-1, 3)
    b = np.asarray(platform_anchors, dtype=float).reshape(-1, 3)
    if a.shape != b.shape:
        raise ValueError(f"anchor count mismatch: {a.shape[0]} frame vs {b.shape[0]} platform")
    R = rotation_rpy(rpy)
    Rb = b @ R.T
    d = a - np.asarray(position, dtype=float).reshape(1, 3) - Rb
    lengths = np.linalg.norm(d, axis=1)
    if np.any(lengths < 1e-9):
        raise ValueError("zero-length cable (platform anchor on its frame anchor)")
    return d / lengths[:, None], lengths, Rb


def wrench_matrix(frame_anchors: np.ndarray, platform_anchors: np.ndarray, position: np.ndarray, rpy: np.ndarray) -> np.ndarray:
    u, _, Rb = cable_vectors(frame_anchors, platform_anchors, position, rpy)
    W = np.zeros((6, u.shape[0]), dtype=float)
    W[0:3, :] = u.T
    W[3:6, :] = np.cross(Rb, u).T
    return W


def default_anchors(
    frame_half: tuple[float, float, float] = (2.0, 1.5, 1.5),
    platform_half: tuple[float, float, float] = (0.15, 0.10, 0.05),
) -> tuple[np.ndarray, np.ndarray]:
    """
    8-cable crossed layout in a box frame.

    Cable k leaves frame corner S_k (fx, fy, fz) and attaches to the platform
    at S_k (-bx, by, -bz), where S_k runs over the 8 sign matrices
    diag(+/-1, +/-1, +/-1). Every cable crosses to the opposite x side and
    the opposite face of the platform.

    At the centered pose the cable directions and moments cancel in sum, so
    equal tensions produce no wrench (pretension is free) and the six rows of
    W are mutually orthogonal (full rank).

    Returns (frame_anchors (8,3), platform_anchors (8,3)); upper cables first.
    """
    f = np.asarray(frame_half, dtype=float).reshape(3)
    b = np.asarray(platform_half, dtype=float).reshape(3) * np.array([-1.0, 1.0, -1.0])
    corners = ((1.0, 1.0), (-1.0, 1.0), (-1.0, -1.0), (1.0, -1.0))

    a_list = []
    b_list = []
    for sz in (1.0, -1.0):
        for sx, sy in corners:
            S = np.array([sx, sy, sz], dtype=float)
            a_list.append(S * f)
            b_list.append(S * b)
    return np.asarray(a_list, dtype=float), np.asarray(b_list, dtype=float)


def gravity_wrench(mass: float, g: float = 9.81) -> np.ndarray:
    """Wrench the cables must supply to hold `mass` still (platform COM at its origin)."""
    return np.array([0.0, 0.0, float(mass) * float(g), 0.0, 0.0, 0.0], dtype=float)
