import math

import numpy as np

from cdpr_tda import DiagnosticKind, Mode, RecordingTelemetry, Status, TDAConfig, TensionDistributor
from cdpr_tda.barycenter import enumerate_vertices, polygon_centroid, shoelace_centroid, sort_clockwise


def test_unit_square_strips():
    H = np.eye(2)
    verts, skipped = enumerate_vertices(H, np.zeros(2), np.ones(2))
    assert skipped == []
    assert verts.shape == (4, 2)
    assert {tuple(np.round(v, 9)) for v in verts} == {(0.0, 0.0), (0.0, 1.0), (1.0, 0.0), (1.0, 1.0)}
    c, area = polygon_centroid(verts)
    np.testing.assert_allclose(c, [0.5, 0.5], atol=1e-12)
    assert abs(area) == 1.0


def test_duplicated_strip_is_skipped_and_merged():
    H = np.array([[1.0, 0.0], [0.0, 1.0], [1.0, 0.0]])
    verts, skipped = enumerate_vertices(H, np.zeros(3), np.ones(3))
    assert skipped == [(0, 2)]
    assert verts.shape == (4, 2)


def test_sort_is_clockwise():
    pts = np.array([[1.0, 1.0], [-1.0, -1.0], [1.0, -1.0], [-1.0, 1.0]])
    ordered = sort_clockwise(pts)
    ang = np.arctan2(ordered[:, 1], ordered[:, 0])
    assert np.all(np.diff(ang) < 0.0)
    _, area = shoelace_centroid(ordered)
    assert area < 0.0


def test_shoelace_square_and_triangle():
    square = np.array([[0.0, 0.0], [2.0, 0.0], [2.0, 2.0], [0.0, 2.0]])
    c, area = shoelace_centroid(square)
    np.testing.assert_allclose(c, [1.0, 1.0], atol=1e-6)
    assert math.isclose(area, 4.0)

    tri = np.array([[0.0, 0.0], [1.0, 0.0], [0.5, math.sqrt(3.0) / 2.0]])
    c, _ = polygon_centroid(tri)
    np.testing.assert_allclose(c, [0.5, math.sqrt(3.0) / 6.0], atol=1e-6)


def test_small_and_collinear_vertex_sets_use_mean():
    c, area = polygon_centroid(np.array([[0.0, 0.0], [2.0, 4.0]]))
    np.testing.assert_allclose(c, [1.0, 2.0])
    assert area == 0.0
    c, area = polygon_centroid(np.array([[0.0, 0.0], [1.0, 1.0], [2.0, 2.0]]))
    np.testing.assert_allclose(c, [1.0, 1.0])
    assert area == 0.0


def test_barycenter_generic_wrench(robot8, random_case):
    W, w, _ = random_case
    sink = RecordingTelemetry()
    tda = TensionDistributor(robot8, TDAConfig(mode=Mode.BARYCENTER), telemetry=sink)
    res = tda.compute(W, w)
    assert res.ok, res.diagnostics
    assert np.all(res.tau >= -1e-3) and np.all(res.tau <= 100.0 + 1e-3)
    np.testing.assert_allclose(W @ res.tau, w, atol=1e-6)
    assert res.info["vertices"].shape[0] >= 3

    data = sink.last("barycenter")
    assert data is not None and len(data) == 4 * 8


def test_barycenter_symmetric_hexagon(robot8, x_triplet_W):
    # cables 0, 6, 7 share 150 N along x: the feasible set is a regular hexagon around 50/50/50
    w = np.array([150.0, 50.0, 50.0, 50.0, 50.0, 50.0])
    res = TensionDistributor(robot8, TDAConfig(mode=Mode.BARYCENTER)).compute(x_triplet_W, w)
    assert res.status == Status.OK
    assert res.has(DiagnosticKind.DEGENERATE_GEOMETRY)
    assert res.info["vertices"].shape == (6, 2)
    np.testing.assert_allclose(res.tau, 50.0, atol=1e-6)


def test_barycenter_empty_polytope(robot8, x_triplet_W):
    w = np.array([400.0, 0.0, 0.0, 0.0, 0.0, 0.0])
    res = TensionDistributor(robot8, TDAConfig(mode=Mode.BARYCENTER)).compute(x_triplet_W, w)
    assert res.status == Status.INFEASIBLE
    assert res.has(DiagnosticKind.EMPTY_POLYTOPE)
    assert res.info["centroid"] is None
    # falls back to the minimum-norm particular solution
    np.testing.assert_allclose(res.tau, np.linalg.pinv(x_triplet_W) @ w, atol=1e-9)


def test_barycenter_uses_rate_limited_bounds(robot8, random_case):
    W, _, _ = random_case
    cfg = TDAConfig(mode=Mode.BARYCENTER, rate_limit=True, max_delta=30.0)
    tda = TensionDistributor(robot8, cfg)
    tda.prime(np.full(8, 50.0))
    res = tda.compute(W, W @ np.full(8, 50.0))
    assert res.ok, res.diagnostics
    assert np.all(np.abs(res.tau - 50.0) <= 30.0 + 1e-3)


def test_failing_sink_does_not_break_cycle(robot8, random_case):
    class Broken:
        def publish(self, channel, data):
            raise OSError("network down")

    W, w, _ = random_case
    res = TensionDistributor(robot8, TDAConfig(mode=Mode.BARYCENTER), telemetry=Broken()).compute(W, w)
    assert res.ok
