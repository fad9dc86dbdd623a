import math

import numpy as np
import pytest

from cdpr_tda import Mode, RobotParameters, Status, TDAConfig, TensionDistributor
from cdpr_tda.geometry import default_anchors, gravity_wrench, rotation_rpy, wrench_matrix


def test_wrench_matrix_columns():
    a, b = default_anchors()
    assert a.shape == b.shape == (8, 3)
    pos = np.array([0.1, -0.05, 0.2])
    rpy = np.array([0.02, -0.03, 0.1])
    W = wrench_matrix(a, b, pos, rpy)
    assert W.shape == (6, 8)
    np.testing.assert_allclose(np.linalg.norm(W[0:3], axis=0), 1.0)

    R = rotation_rpy(rpy)
    for i in range(8):
        rb = R @ b[i]
        u = a[i] - pos - rb
        u = u / np.linalg.norm(u)
        np.testing.assert_allclose(W[0:3, i], u)
        np.testing.assert_allclose(W[3:6, i], np.cross(rb, u))


def test_generic_pose_has_full_rank():
    a, b = default_anchors()
    W = wrench_matrix(a, b, np.array([0.1, -0.05, 0.2]), np.array([0.02, -0.03, 0.1]))
    assert np.linalg.matrix_rank(W) == 6


def test_upper_cables_pull_up():
    a, b = default_anchors()
    W = wrench_matrix(a, b, np.zeros(3), np.zeros(3))
    assert np.all(W[2, :4] > 0.0)
    assert np.all(W[2, 4:] < 0.0)


def test_gravity_wrench():
    np.testing.assert_allclose(gravity_wrench(2.0, g=10.0), [0.0, 0.0, 20.0, 0.0, 0.0, 0.0])


def test_uniform_pretension_is_free_at_center():
    a, b = default_anchors()
    W = wrench_matrix(a, b, np.zeros(3), np.zeros(3))
    np.testing.assert_allclose(W @ np.ones(8), 0.0, atol=1e-12)
    # rows are mutually orthogonal
    G = W @ W.T
    np.testing.assert_allclose(G - np.diag(np.diag(G)), 0.0, atol=1e-12)
    assert np.linalg.matrix_rank(W) == 6


@pytest.mark.parametrize("mode", [Mode.BARYCENTER, Mode.CLOSED_FORM, Mode.MIN_NORM])
def test_default_circle_start_is_feasible(mode):
    # first cycle of the demo path: r = 0.4 m, period 4 s, 10 kg in [5, 300] N
    a, b = default_anchors()
    pos = np.array([0.4, 0.0, 0.0])
    W = wrench_matrix(a, b, pos, np.zeros(3))
    omega = 2.0 * math.pi / 4.0
    w = gravity_wrench(10.0)
    w[0] -= 10.0 * omega * omega * 0.4

    robot = RobotParameters(n_cables=8, mass=10.0, tau_min=5.0, tau_max=300.0)
    res = TensionDistributor(robot, TDAConfig(mode=mode)).compute(W, w)
    assert res.status == Status.OK, res.diagnostics
    assert np.all(res.tau >= 5.0 - 1e-3) and np.all(res.tau <= 300.0 + 1e-3)
    np.testing.assert_allclose(W @ res.tau, w, atol=1e-3)
