from __future__ import annotations

from typing import Callable, List, Tuple

import numpy as np

from dpg_control.common.testers.test_utils import (
    assert_allclose,
    assert_raises,
    assert_true,
    run_tests,
)

from dpg_control.common.estimators import NumericalInstabilityError, kalman_update, rls_update


def _regression_data(seed: int = 0, n: int = 40, d: int = 3) -> Tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(seed)
    X = rng.standard_normal((n, d))
    p_true = np.array([1.5, -2.0, 0.5])[:d]
    y = X @ p_true + 0.1 * rng.standard_normal(n)
    return X, y


# =============================================================================
# Tests: RLS
# =============================================================================
def test_rls_matches_regularized_batch_least_squares():
    # RLS from (p0 = 0, P0 = c I) with lam = 1 is exactly ridge regression with penalty 1/c
    X, y = _regression_data()
    d = X.shape[1]
    c = 100.0

    p = np.zeros(d)
    P = c * np.eye(d)
    for k in range(X.shape[0]):
        p, P = rls_update(p, y[k], X[k], P, 1.0)

    p_batch = np.linalg.solve(X.T @ X + np.eye(d) / c, X.T @ y)
    assert_allclose(p, p_batch, rtol=1e-8, atol=1e-10)
    assert_allclose(P, np.linalg.inv(X.T @ X + np.eye(d) / c), rtol=1e-8, atol=1e-10)


def test_rls_single_step_formula():
    p = np.array([0.5, -1.0])
    P = np.array([[2.0, 0.3], [0.3, 1.0]])
    phi = np.array([1.0, 2.0])
    y, lam = 3.0, 0.9

    p_new, P_new = rls_update(p, y, phi, P, lam)

    gain = P @ phi / (lam + phi @ P @ phi)
    assert_allclose(p_new, p + gain * (y - phi @ p))
    assert_allclose(P_new, (P - np.outer(gain, phi @ P)) / lam)


def test_rls_does_not_mutate_inputs():
    p = np.array([1.0, 2.0])
    P = np.eye(2)
    phi = np.array([0.5, 0.5])
    rls_update(p, 1.0, phi, P, 0.99)
    assert_allclose(p, [1.0, 2.0])
    assert_allclose(P, np.eye(2))


def test_rls_rejects_bad_inputs():
    assert_raises(ValueError, lambda: rls_update(np.zeros(2), 0.0, np.zeros(3), np.eye(2), 1.0))
    assert_raises(ValueError, lambda: rls_update(np.zeros(2), 0.0, np.zeros(2), np.eye(3), 1.0))
    assert_raises(ValueError, lambda: rls_update(np.zeros(2), 0.0, np.zeros(2), np.eye(2), 0.0))
    assert_raises(ValueError, lambda: rls_update(np.zeros(2), 0.0, np.zeros(2), np.eye(2), 1.5))


def test_rls_degenerate_denominator_raises():
    # lam + phi' P phi = 1 - 1 = 0
    assert_raises(
        NumericalInstabilityError,
        lambda: rls_update(np.zeros(1), 1.0, np.ones(1), -np.eye(1), 1.0),
    )
    assert_raises(
        NumericalInstabilityError,
        lambda: rls_update(np.zeros(1), 1.0, np.array([np.inf]), np.eye(1), 1.0),
    )
    assert_true(issubclass(NumericalInstabilityError, FloatingPointError))


# =============================================================================
# Tests: Kalman
# =============================================================================
def test_kalman_without_process_noise_equals_rls():
    X, y = _regression_data(seed=1)
    d = X.shape[1]
    R1 = np.zeros((d, d))
    R12 = np.zeros(d)

    p_k, P_k = np.zeros(d), 10.0 * np.eye(d)
    p_r, P_r = np.zeros(d), 10.0 * np.eye(d)
    for k in range(X.shape[0]):
        p_k, P_k = kalman_update(R1, 1.0, R12, p_k, y[k], X[k], P_k)
        p_r, P_r = rls_update(p_r, y[k], X[k], P_r, 1.0)

    assert_allclose(p_k, p_r, rtol=1e-8, atol=1e-10)
    assert_allclose(P_k, P_r, rtol=1e-8, atol=1e-10)


def test_kalman_single_step_formula_and_symmetry():
    P = np.array([[4.0, 1.0], [1.0, 3.0]])
    p = np.array([0.2, 0.1])
    phi = np.array([1.0, -1.0])
    R1 = np.outer(phi, phi)
    R2 = 1.0
    R12 = np.array([0.1, 0.0])
    y = 2.0

    p_new, P_new = kalman_update(R1, R2, R12, p, y, phi, P)

    S = phi @ P @ phi + R2
    K = (P @ phi + R12) / S
    assert_allclose(p_new, p + K * (y - phi @ p))
    expected = P + R1 - S * np.outer(K, K)
    assert_allclose(P_new, 0.5 * (expected + expected.T))
    assert_allclose(P_new, P_new.T, rtol=0.0, atol=0.0)


def test_kalman_rejects_bad_shapes_and_degenerate_variance():
    d = 2
    assert_raises(ValueError, lambda: kalman_update(np.zeros((3, 3)), 1.0, np.zeros(d), np.zeros(d), 0.0, np.ones(d), np.eye(d)))
    assert_raises(ValueError, lambda: kalman_update(np.zeros((d, d)), 1.0, np.zeros(3), np.zeros(d), 0.0, np.ones(d), np.eye(d)))
    assert_raises(
        NumericalInstabilityError,
        lambda: kalman_update(np.zeros((d, d)), 0.0, np.zeros(d), np.zeros(d), 0.0, np.ones(d), np.zeros((d, d))),
    )


TESTS: List[Tuple[str, Callable[[], None]]] = [
    ("rls_matches_regularized_batch_least_squares", test_rls_matches_regularized_batch_least_squares),
    ("rls_single_step_formula", test_rls_single_step_formula),
    ("rls_does_not_mutate_inputs", test_rls_does_not_mutate_inputs),
    ("rls_rejects_bad_inputs", test_rls_rejects_bad_inputs),
    ("rls_degenerate_denominator_raises", test_rls_degenerate_denominator_raises),
    ("kalman_without_process_noise_equals_rls", test_kalman_without_process_noise_equals_rls),
    ("kalman_single_step_formula_and_symmetry", test_kalman_single_step_formula_and_symmetry),
    ("kalman_rejects_bad_shapes_and_degenerate_variance", test_kalman_rejects_bad_shapes_and_degenerate_variance),
]


def main(argv=None) -> int:
    return run_tests(TESTS, argv=argv, suite_name="estimators")


if __name__ == "__main__":
    raise SystemExit(main())
