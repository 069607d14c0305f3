from __future__ import annotations

import math
from typing import Callable, List, Tuple

import numpy as np
import torch as th

from dpg_control.common.testers.test_utils import (
    assert_allclose,
    assert_eq,
    assert_raises,
    assert_shape,
    assert_true,
    run_tests,
)

from dpg_control.common.noises import (
    GaussianTraceNoise,
    OrnsteinUhlenbeckTraceNoise,
    build_exploration,
)
from dpg_control.common.utils.noise_utils import _scale_factor


# =============================================================================
# Tests: covariance factor
# =============================================================================
def test_scale_factor_scalar_and_matrices():
    L = _scale_factor(0.25, 3)
    assert_allclose(L, 0.5 * th.eye(3, dtype=th.float64))

    sigma = np.array([[1.0, 0.5], [0.5, 2.0]])
    L = _scale_factor(sigma, 2)
    assert_allclose((L @ L.T).numpy(), sigma)

    # rank-deficient covariance goes through the eigen-decomposition path
    sigma = np.array([[1.0, 1.0], [1.0, 1.0]])
    L = _scale_factor(sigma, 2)
    assert_allclose((L @ L.T).numpy(), sigma, atol=1e-10)

    assert_allclose(_scale_factor(0.0, 2), th.zeros(2, 2, dtype=th.float64))


def test_scale_factor_rejects_bad_covariances():
    assert_raises(ValueError, lambda: _scale_factor(-1.0, 2))
    assert_raises(ValueError, lambda: _scale_factor(float("nan"), 2))
    assert_raises(ValueError, lambda: _scale_factor(np.eye(3), 2))
    assert_raises(ValueError, lambda: _scale_factor(np.array([[1.0, 0.0], [0.0, -1.0]]), 2))


# =============================================================================
# Tests: Gaussian traces
# =============================================================================
def test_gaussian_trace_shape_dtype_and_seed():
    a = GaussianTraceNoise(horizon=7, action_dim=2, seed=11)
    b = GaussianTraceNoise(horizon=7, action_dim=2, seed=11)

    ta = a(1.0)
    assert_shape(ta, (7, 2))
    assert_eq(ta.dtype, np.float64)
    assert_true(isinstance(ta, np.ndarray))
    assert_allclose(ta, b(1.0), rtol=0.0, atol=0.0)

    second = a(1.0)
    assert_true(not np.allclose(ta, second), "consecutive traces must differ")

    a.reset()
    assert_allclose(a(1.0), ta, rtol=0.0, atol=0.0)


def test_gaussian_trace_scales_with_covariance():
    noise = GaussianTraceNoise(horizon=20, action_dim=1, seed=3)
    unit = noise(1.0)
    noise.reset()
    quarter = noise(0.25)
    assert_allclose(quarter, 0.5 * unit)

    assert_allclose(noise(0.0), np.zeros((20, 1)))


def test_gaussian_trace_sample_covariance():
    sigma = np.array([[1.0, 0.5], [0.5, 2.0]])
    noise = GaussianTraceNoise(horizon=20_000, action_dim=2, seed=0)
    trace = noise(sigma)
    emp = np.cov(trace, rowvar=False)
    assert_allclose(emp, sigma, atol=0.1, rtol=0.0)
    assert_allclose(trace.mean(axis=0), np.zeros(2), atol=0.05, rtol=0.0)


# =============================================================================
# Tests: OU traces
# =============================================================================
def test_ou_trace_follows_recursion():
    T, m = 12, 2
    theta, dt, c = 0.15, 0.05, 0.4
    ou = OrnsteinUhlenbeckTraceNoise(T, m, theta=theta, dt=dt, seed=5)
    white = GaussianTraceNoise(T, m, seed=5)

    n = ou(c)
    g = white(c)

    assert_allclose(n[0], np.zeros(m))
    expected = np.zeros((T, m))
    for k in range(1, T):
        expected[k] = expected[k - 1] - theta * expected[k - 1] * dt + math.sqrt(dt) * g[k - 1]
    assert_allclose(n, expected, atol=1e-12)


def test_ou_rejects_bad_parameters():
    assert_raises(ValueError, lambda: OrnsteinUhlenbeckTraceNoise(5, 1, theta=-0.1))
    assert_raises(ValueError, lambda: OrnsteinUhlenbeckTraceNoise(5, 1, dt=0.0))
    assert_raises(ValueError, lambda: GaussianTraceNoise(0, 1))
    assert_raises(ValueError, lambda: GaussianTraceNoise(5, 1.5))


# =============================================================================
# Tests: builder
# =============================================================================
def test_build_exploration_kinds():
    g = build_exploration(kind="Gaussian", horizon=4, action_dim=1, seed=0)
    assert_true(isinstance(g, GaussianTraceNoise))

    ou = build_exploration(kind="Ornstein-Uhlenbeck", horizon=4, action_dim=1, seed=0, ou_theta=0.3, ou_dt=0.1)
    assert_true(isinstance(ou, OrnsteinUhlenbeckTraceNoise))
    assert_eq(ou.theta, 0.3)
    assert_eq(ou.dt, 0.1)
    assert_true(isinstance(build_exploration(kind="ou", horizon=4, action_dim=1), OrnsteinUhlenbeckTraceNoise))

    assert_true(build_exploration(kind=None, horizon=4, action_dim=1) is None)
    assert_true(build_exploration(kind="none", horizon=4, action_dim=1) is None)
    assert_raises(ValueError, lambda: build_exploration(kind="pink", horizon=4, action_dim=1))


TESTS: List[Tuple[str, Callable[[], None]]] = [
    ("scale_factor_scalar_and_matrices", test_scale_factor_scalar_and_matrices),
    ("scale_factor_rejects_bad_covariances", test_scale_factor_rejects_bad_covariances),
    ("gaussian_trace_shape_dtype_and_seed", test_gaussian_trace_shape_dtype_and_seed),
    ("gaussian_trace_scales_with_covariance", test_gaussian_trace_scales_with_covariance),
    ("gaussian_trace_sample_covariance", test_gaussian_trace_sample_covariance),
    ("ou_trace_follows_recursion", test_ou_trace_follows_recursion),
    ("ou_rejects_bad_parameters", test_ou_rejects_bad_parameters),
    ("build_exploration_kinds", test_build_exploration_kinds),
]


def main(argv=None) -> int:
    return run_tests(TESTS, argv=argv, suite_name="noises")


if __name__ == "__main__":
    raise SystemExit(main())
