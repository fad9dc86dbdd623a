import warnings

import numpy as np
import pytest

from cdpr_tda import DiagnosticKind, Mode, OSQPSettings, Status, TDAConfig, TensionDistributor


def _in_bounds(tau, lo=0.0, hi=100.0, eps=1e-3):
    return bool(np.all(tau >= lo - eps) and np.all(tau <= hi + eps))


def test_min_norm_realizes_wrench(robot8, random_case):
    W, w, _ = random_case
    tda = TensionDistributor(robot8, TDAConfig(mode=Mode.MIN_NORM))
    res = tda.compute(W, w)
    assert res.status == Status.OK, res.diagnostics
    assert _in_bounds(res.tau)
    np.testing.assert_allclose(W @ res.tau, w, atol=1e-3)


def test_min_norm_zero_wrench(robot8, random_case):
    W, _, _ = random_case
    tda = TensionDistributor(robot8, TDAConfig(mode=Mode.MIN_NORM))
    res = tda.compute(W, np.zeros(6))
    assert res.ok
    np.testing.assert_allclose(res.tau, 0.0, atol=1e-3)
    np.testing.assert_allclose(W @ res.tau, 0.0, atol=1e-3)


def test_min_wrench_error_tracks_feasible_wrench(robot8, random_case):
    W, w, _ = random_case
    tda = TensionDistributor(robot8, TDAConfig(mode=Mode.MIN_WRENCH_ERROR))
    res = tda.compute(W, w)
    assert res.ok, res.diagnostics
    assert _in_bounds(res.tau)
    np.testing.assert_allclose(W @ res.tau, w, atol=1e-3)


def test_min_norm_interp_blends_with_previous_wrench(robot8, random_case):
    W, w, _ = random_case
    tda = TensionDistributor(robot8, TDAConfig(mode=Mode.MIN_NORM_INTERP))

    # previous wrench starts at zero: W.tau = alpha.w
    first = tda.compute(W, w)
    assert first.ok, first.diagnostics
    assert first.alpha is not None
    assert -1e-4 <= first.alpha <= 1.0 + 1e-4
    assert first.alpha == first.x[8]
    np.testing.assert_allclose(W @ first.tau, first.alpha * w, atol=1e-3)

    # same wrench again: any alpha reproduces w
    second = tda.compute(W, w)
    assert second.ok
    np.testing.assert_allclose(W @ second.tau, w, atol=1e-3)


def test_augmented_gain_equality(robot8, random_case):
    W, w, _ = random_case
    pe = np.array([0.01, -0.01, 0.005, 0.0, 0.0, 0.002])
    ve = np.array([0.0, 0.01, -0.01, 0.003, 0.0, 0.0])
    tda = TensionDistributor(robot8, TDAConfig(mode=Mode.AUGMENTED_GAIN))
    res = tda.compute(W, w, ve=ve, pe=pe)
    assert res.ok, res.diagnostics
    assert 1.0 - 1e-3 <= res.kp <= 400.0 + 1e-3
    assert 2.0 - 1e-3 <= res.kd <= 400.0 + 1e-3
    assert _in_bounds(res.tau)
    np.testing.assert_allclose(W @ res.tau - res.kp * pe - res.kd * ve, w, atol=1e-3)


def test_augmented_gain_needs_errors(robot8, random_case):
    W, w, _ = random_case
    tda = TensionDistributor(robot8, TDAConfig(mode=Mode.AUGMENTED_GAIN))
    with pytest.raises(ValueError):
        tda.compute(W, w, pe=np.zeros(6))


def test_cold_start_is_deterministic(robot8, random_case):
    W, w, _ = random_case
    tda = TensionDistributor(robot8, TDAConfig(mode=Mode.MIN_NORM, warm_start=False))
    a = tda.compute(W, w)
    b = tda.compute(W, w)
    np.testing.assert_array_equal(a.tau, b.tau)
    assert a.info["iterations"] == b.info["iterations"]


def test_rate_limit_caps_change(robot8, random_case):
    W, _, _ = random_case
    w = W @ np.full(8, 50.0)
    cfg = TDAConfig(mode=Mode.MIN_WRENCH_ERROR, rate_limit=True, max_delta=0.5)
    tda = TensionDistributor(robot8, cfg)
    tda.prime(np.full(8, 10.0))
    res = tda.compute(W, w)
    assert res.info["rate_limited"]
    assert np.all(np.abs(res.tau - 10.0) <= 0.5 + 1e-4)
    assert res.status == Status.OK


def test_rate_limit_starts_after_first_cycle(robot8, random_case):
    W, w, _ = random_case
    cfg = TDAConfig(mode=Mode.MIN_NORM, rate_limit=True, max_delta=0.5)
    tda = TensionDistributor(robot8, cfg)
    res = tda.compute(W, w)
    assert not res.info["rate_limited"]
    np.testing.assert_allclose(W @ res.tau, w, atol=1e-3)
    assert tda.rate_limiter.active


@pytest.mark.parametrize(
    "mode, rows",
    [(Mode.MIN_NORM, 16), (Mode.MIN_WRENCH_ERROR, 16), (Mode.MIN_NORM_INTERP, 18), (Mode.AUGMENTED_GAIN, 20)],
)
def test_active_set_matches_inequality_rows(robot8, mode, rows):
    tda = TensionDistributor(robot8, TDAConfig(mode=mode))
    assert len(tda.active_set) == rows == tda.problem.C.shape[0]


def test_iteration_cap_reports_non_convergence(robot8, random_case):
    W, w, _ = random_case
    cfg = TDAConfig(mode=Mode.MIN_NORM, osqp=OSQPSettings(max_iter=1, polishing=False))
    res = TensionDistributor(robot8, cfg).compute(W, w)
    assert res.has(DiagnosticKind.SOLVER_NON_CONVERGENCE)
    assert res.status == Status.NOT_CONVERGED
    assert res.tau.shape == (8,)


def test_reset_clears_state(robot8, random_case):
    W, w, _ = random_case
    tda = TensionDistributor(robot8, TDAConfig(mode=Mode.MIN_NORM_INTERP, rate_limit=True, max_delta=1.0))
    tda.compute(W, w)
    tda.reset()
    assert tda.rate_limiter.tau_prev is None
    assert not np.any(tda.active_set.flags)
    np.testing.assert_allclose(tda.formulation.w_prev, 0.0)
    np.testing.assert_allclose(tda.tau, 0.0)


def test_infeasible_step_keeps_previous_tensions(robot8, random_case):
    # W.tau = W.50 cannot be met within 0.5 N of 10 N: the QP is infeasible
    W, _, _ = random_case
    cfg = TDAConfig(mode=Mode.MIN_NORM, rate_limit=True, max_delta=0.5)
    tda = TensionDistributor(robot8, cfg)
    tda.prime(np.full(8, 10.0))
    res = tda.compute(W, W @ np.full(8, 50.0))
    assert res.status == Status.INFEASIBLE
    assert res.has(DiagnosticKind.INFEASIBLE_WRENCH)
    assert np.all(np.abs(res.tau - 10.0) <= 0.5)
    assert not np.any(tda.active_set.flags)
    np.testing.assert_allclose(tda.rate_limiter.tau_prev, 10.0)

    # the next cycle is still limited around 10 N
    again = tda.compute(W, W @ np.full(8, 50.0))
    assert np.all(np.abs(again.tau - 10.0) <= 0.5)


def test_no_deprecated_osqp_settings(robot8, random_case):
    W, w, _ = random_case
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        TensionDistributor(robot8, TDAConfig(mode=Mode.MIN_NORM)).compute(W, w)
    assert not [c for c in caught if "polish" in str(c.message).lower()]
