from __future__ import annotations

from typing import Callable, List, Tuple

import numpy as np

from dpg_control.common.testers.test_utils import (
    assert_allclose,
    assert_close,
    assert_eq,
    assert_raises,
    assert_shape,
    assert_true,
    run_tests,
)

from dpg_control.baselines.dpg import DPGFunctions
from dpg_control.common.noises import GaussianTraceNoise
from dpg_control.common.trainers.evaluator import episode_cost
from dpg_control.systems import (
    LinearQuadraticSystem,
    double_integrator_functions,
    make_double_integrator,
    make_linear_quadratic_functions,
)


def _system(horizon: int = 6) -> LinearQuadraticSystem:
    A = np.array([[1.0, 0.1, 0.0], [0.0, 1.0, 0.1], [0.0, 0.0, 0.9]])
    B = np.array([[0.0, 0.0], [0.1, 0.0], [0.0, 0.2]])
    return LinearQuadraticSystem(A, B, np.eye(3), 0.5 * np.eye(2), horizon)


def _features(s: np.ndarray) -> np.ndarray:
    n = s.shape[0]
    iu = np.triu_indices(n)
    return np.concatenate([np.outer(s, s)[iu], [1.0]])


# =============================================================================
# Tests: construction
# =============================================================================
def test_dimensions_and_validation():
    sys_ = _system()
    assert_eq((sys_.state_dim, sys_.action_dim), (3, 2))
    assert_eq(sys_.n_theta, 6)
    assert_eq(sys_.n_w, 6)
    assert_eq(sys_.n_v, 7)

    assert_raises(ValueError, lambda: LinearQuadraticSystem(np.ones((2, 3)), np.ones((2, 1)), np.eye(2), np.eye(1), 5))
    assert_raises(ValueError, lambda: LinearQuadraticSystem(np.eye(2), np.ones((3, 1)), np.eye(2), np.eye(1), 5))
    assert_raises(ValueError, lambda: LinearQuadraticSystem(np.eye(2), np.ones((2, 1)), np.eye(3), np.eye(1), 5))
    assert_raises(ValueError, lambda: LinearQuadraticSystem(np.eye(2), np.ones((2, 1)), np.eye(2), np.eye(1), 0))


# =============================================================================
# Tests: collaborators
# =============================================================================
def test_simulate_shapes_and_dynamics():
    sys_ = _system(horizon=6)
    rng = np.random.default_rng(0)
    theta = rng.standard_normal(sys_.n_theta) * 0.3
    x0 = np.array([1.0, -0.5, 0.2])
    eps = rng.standard_normal((6, 2))

    x, u = sys_.simulate(theta, x0, eps)
    assert_shape(x, (6, 3))
    assert_shape(u, (6, 2))
    assert_allclose(x[0], x0)

    K = sys_.gain(theta)
    for t in range(6):
        assert_allclose(u[t], K @ x[t] + eps[t])
        if t + 1 < 6:
            assert_allclose(x[t + 1], sys_.A @ x[t] + sys_.B @ u[t])

    x_clean, u_clean = sys_.simulate(theta, x0)
    assert_allclose(u_clean[0], K @ x0)
    assert_allclose(sys_.policy(x0, theta, 0), K @ x0)


def test_reward_and_episode_cost():
    sys_ = _system(horizon=5)
    s = np.array([1.0, 2.0, -1.0])
    a = np.array([0.5, -0.5])
    assert_close(sys_.reward(s, a, 0), -(s @ s + 0.5 * a @ a))

    theta = -0.2 * np.ones(sys_.n_theta)
    x, u = sys_.simulate(theta, s)
    assert_close(sys_.episode_cost(theta, s), episode_cost(x, u, sys_.reward))
    assert_true(sys_.episode_cost(theta, s) > 0.0)


def test_autograd_gradients_match_closed_form():
    sys_ = _system()
    rng = np.random.default_rng(1)
    theta = rng.standard_normal(sys_.n_theta)
    w = rng.standard_normal(sys_.n_w)
    v = rng.standard_normal(sys_.n_v)
    s = rng.standard_normal(3)
    a = rng.standard_normal(2)
    s1 = rng.standard_normal(3)
    a1 = rng.standard_normal(2)

    dQ_da, dQ_dw, dQ_dv, dmu = sys_.gradients(s1, s, a1, a, theta, w, v, 0)

    K = sys_.gain(theta)
    dmu_exp = np.kron(np.eye(2), s.reshape(3, 1))
    assert_shape(dmu, (6, 2))
    assert_allclose(dmu, dmu_exp)
    assert_allclose(dQ_da, dmu_exp.T @ w)
    assert_allclose(dQ_dw, dmu_exp @ (a - K @ s))
    assert_allclose(dQ_dv, _features(s))

    q = sys_.q_value(s, a, v, w, theta, 0)
    assert_close(q, float(dmu_exp @ (a - K @ s) @ w + v @ _features(s)))


def test_q_value_at_policy_action_is_the_baseline():
    sys_ = _system()
    rng = np.random.default_rng(2)
    theta = rng.standard_normal(sys_.n_theta)
    s = rng.standard_normal(3)
    v = rng.standard_normal(sys_.n_v)
    w = rng.standard_normal(sys_.n_w)
    a = sys_.policy(s, theta, 0)
    assert_close(sys_.q_value(s, a, v, w, theta, 0), float(v @ _features(s)), atol=1e-10)


# =============================================================================
# Tests: Riccati reference
# =============================================================================
def test_optimal_gain_scalar_riccati():
    sys_ = LinearQuadraticSystem([[1.0]], [[1.0]], [[1.0]], [[1.0]], 10)
    K = sys_.optimal_gain()
    golden = (1.0 + 5.0 ** 0.5) / 2.0
    assert_allclose(K, [[-golden / (1.0 + golden)]], rtol=1e-9)


def test_optimal_gain_stabilizes_double_integrator():
    system, _ = make_double_integrator(horizon=50, seed=0)
    K = system.optimal_gain()
    assert_shape(K, (1, 2))
    rho = float(np.max(np.abs(np.linalg.eigvals(system.A + system.B @ K))))
    assert_true(rho < 1.0, f"closed loop spectral radius {rho}")

    # optimal gain beats a hand-picked stabilizing one
    x0 = np.array([1.0, 0.0])
    assert_true(system.episode_cost(K.reshape(-1), x0) < system.episode_cost(np.array([-1.0, -1.5]), x0))


# =============================================================================
# Tests: factories
# =============================================================================
def test_factories_bundle_collaborators():
    system, fns = make_linear_quadratic_functions(
        [[1.0]], [[1.0]], [[1.0]], [[1.0]], horizon=8, noise="ou", seed=0, ou_theta=0.5
    )
    assert_true(isinstance(fns, DPGFunctions))
    assert_eq(fns.exploration(1.0).shape, (8, 1))
    assert_eq(fns.exploration.theta, 0.5)

    assert_raises(
        ValueError,
        lambda: make_linear_quadratic_functions([[1.0]], [[1.0]], [[1.0]], [[1.0]], horizon=8, noise="none"),
    )

    fns2 = double_integrator_functions(horizon=12, seed=4)
    assert_true(isinstance(fns2, DPGFunctions))
    assert_true(isinstance(fns2.exploration, GaussianTraceNoise))
    x, u = fns2.simulate(np.array([-1.0, -1.5]), np.array([1.0, 0.0]), fns2.exploration(0.1))
    assert_shape(x, (12, 2))
    assert_shape(u, (12, 1))


TESTS: List[Tuple[str, Callable[[], None]]] = [
    ("dimensions_and_validation", test_dimensions_and_validation),
    ("simulate_shapes_and_dynamics", test_simulate_shapes_and_dynamics),
    ("reward_and_episode_cost", test_reward_and_episode_cost),
    ("autograd_gradients_match_closed_form", test_autograd_gradients_match_closed_form),
    ("q_value_at_policy_action_is_the_baseline", test_q_value_at_policy_action_is_the_baseline),
    ("optimal_gain_scalar_riccati", test_optimal_gain_scalar_riccati),
    ("optimal_gain_stabilizes_double_integrator", test_optimal_gain_stabilizes_double_integrator),
    ("factories_bundle_collaborators", test_factories_bundle_collaborators),
]


def main(argv=None) -> int:
    return run_tests(TESTS, argv=argv, suite_name="systems")


if __name__ == "__main__":
    raise SystemExit(main())
