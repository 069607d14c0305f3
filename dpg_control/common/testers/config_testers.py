from __future__ import annotations

import json
from typing import Callable, List, Tuple

import numpy as np

from dpg_control.common.testers.test_utils import (
    assert_allclose,
    assert_eq,
    assert_raises,
    assert_true,
    run_tests,
)

from dpg_control.baselines.dpg.config import CriticUpdate, DPGConfig
from dpg_control.baselines.dpg.head import DPGHead
from dpg_control.baselines.dpg.types import DPGFunctions, DPGResult, DPGState


def _noop(*args, **kwargs):
    return 0.0


def _functions(**overrides) -> DPGFunctions:
    kw = dict(policy=_noop, q_value=_noop, gradients=_noop, simulate=_noop, exploration=_noop, reward=_noop)
    kw.update(overrides)
    return DPGFunctions(**kw)


# =============================================================================
# Tests: DPGConfig
# =============================================================================
def test_config_defaults_match_documented_values():
    cfg = DPGConfig(action_dim=2)
    assert_eq(cfg.noise_scale, 1.0)
    assert_eq(cfg.actor_step, 1e-4)
    assert_eq(cfg.critic_step_w, 1e-3)
    assert_eq(cfg.critic_step_v, 1e-3)
    assert_eq(cfg.aux_step, 1e-3)
    assert_eq(cfg.gamma, 0.99)
    assert_eq(cfg.tau, 0.001)
    assert_eq(cfg.iters, 20_000)
    assert_true(cfg.critic_update is CriticUpdate.GRADIENT)
    assert_eq(cfg.rls_forgetting, 0.999)
    assert_eq(cfg.stepreduce_interval, 1000)
    assert_eq(cfg.stepreduce_factor, 0.995)
    assert_eq(cfg.hold_actor, 1000)
    assert_eq(cfg.eval_interval, 100)
    assert_eq(cfg.divergence_ratio, 1.2)
    assert_eq(cfg.init_perturbation_scale, 2.0)


def test_config_rejects_invalid_fields():
    bad = [
        dict(action_dim=0),
        dict(action_dim=1, gamma=0.0),
        dict(action_dim=1, gamma=1.5),
        dict(action_dim=1, tau=0.0),
        dict(action_dim=1, iters=0),
        dict(action_dim=1, actor_step=-1e-3),
        dict(action_dim=1, critic_step_w=float("nan")),
        dict(action_dim=1, rls_forgetting=1.01),
        dict(action_dim=1, stepreduce_interval=0),
        dict(action_dim=1, stepreduce_factor=0.0),
        dict(action_dim=1, hold_actor=-1),
        dict(action_dim=1, noise_scale=-0.5),
        dict(action_dim=1, noise_scale=np.ones((2, 3))),
        dict(action_dim=1, noise_scale=np.array([[1.0, 2.0], [0.0, 1.0]])),
        dict(action_dim=1, critic_update="newton"),
    ]
    for kw in bad:
        assert_raises(ValueError, lambda kw=kw: DPGConfig(**kw), msg=f"expected ValueError for {kw}")


def test_config_is_frozen():
    cfg = DPGConfig(action_dim=1)

    def _mutate():
        cfg.gamma = 0.5  # type: ignore[misc]

    assert_raises(Exception, _mutate)


def test_critic_update_parse_aliases():
    assert_true(CriticUpdate.parse("gradient") is CriticUpdate.GRADIENT)
    assert_true(CriticUpdate.parse("SGD") is CriticUpdate.GRADIENT)
    assert_true(CriticUpdate.parse(" RLS ") is CriticUpdate.RLS)
    assert_true(CriticUpdate.parse("Recursive-Least Squares") is CriticUpdate.RLS)
    assert_true(CriticUpdate.parse("kalman_filter") is CriticUpdate.KALMAN)
    assert_true(CriticUpdate.parse(CriticUpdate.KALMAN) is CriticUpdate.KALMAN)
    assert_raises(ValueError, lambda: CriticUpdate.parse("none"))

    cfg = DPGConfig(action_dim=1, critic_update="kalman")
    assert_true(cfg.critic_update is CriticUpdate.KALMAN)


def test_config_matrix_noise_scale_is_readonly_copy():
    sigma = np.array([[1.0, 0.2], [0.2, 0.5]])
    cfg = DPGConfig(action_dim=2, noise_scale=sigma)
    sigma[0, 0] = 99.0
    assert_eq(float(cfg.noise_scale[0, 0]), 1.0)
    assert_true(not cfg.noise_scale.flags.writeable)


def test_config_noise_matrix_must_be_positive_semidefinite():
    # symmetric but indefinite (eigenvalues 3 and -1)
    assert_raises(ValueError, lambda: DPGConfig(action_dim=2, noise_scale=np.array([[1.0, 2.0], [2.0, 1.0]])))
    cfg = DPGConfig(action_dim=2, noise_scale=np.array([[1.0, 1.0], [1.0, 1.0]]))
    assert_eq(cfg.noise_scale.shape, (2, 2))


def test_config_to_dict_is_json_serializable():
    cfg = DPGConfig(action_dim=2, noise_scale=np.eye(2), critic_update="rls")
    d = cfg.to_dict()
    assert_eq(d["critic_update"], "rls")
    assert_eq(d["noise_scale"], [[1.0, 0.0], [0.0, 1.0]])
    json.dumps(d)


# =============================================================================
# Tests: DPGFunctions / DPGState / DPGResult
# =============================================================================
def test_functions_require_callables():
    _functions()
    assert_raises(TypeError, lambda: _functions(reward=3.0))
    assert_raises(TypeError, lambda: _functions(simulate=None))


def test_state_copies_and_is_readonly():
    theta = np.array([1.0, 2.0])
    st = DPGState(theta=theta, w=[0.5, 0.5], v=[3.0])
    theta[0] = 100.0
    assert_eq(float(st.theta[0]), 1.0)
    assert_eq(st.w.dtype, np.float64)

    def _write():
        st.theta[0] = 5.0

    assert_raises(ValueError, _write)
    assert_raises(ValueError, lambda: DPGState(theta=np.ones((2, 2)), w=[1.0], v=[1.0]))


def test_state_stacked_critic_roundtrip_layout():
    st = DPGState(theta=[0.0], w=[1.0, 2.0], v=[3.0, 4.0, 5.0])
    assert_allclose(st.stacked_critic(), [3.0, 4.0, 5.0, 1.0, 2.0])

    st2 = st.with_stacked_critic([10.0, 11.0, 12.0, 13.0, 14.0])
    assert_allclose(st2.v, [10.0, 11.0, 12.0])
    assert_allclose(st2.w, [13.0, 14.0])
    assert_allclose(st.v, [3.0, 4.0, 5.0])
    assert_raises(ValueError, lambda: st.with_stacked_critic([1.0, 2.0]))


def test_state_soft_update():
    target = DPGState(theta=[0.0, 0.0], w=[1.0], v=[2.0])
    live = DPGState(theta=[1.0, -1.0], w=[3.0], v=[2.0])
    out = target.soft_update(live, 0.25)
    assert_allclose(out.theta, [0.25, -0.25])
    assert_allclose(out.w, [1.5])
    assert_allclose(out.v, [2.0])
    assert_true(target.soft_update(live, 1.0).allclose(live))


def test_state_is_finite():
    assert_true(DPGState(theta=[0.0], w=[0.0], v=[0.0]).is_finite())
    assert_true(not DPGState(theta=[np.nan], w=[0.0], v=[0.0]).is_finite())


def test_result_unpacks_as_tuple():
    res = DPGResult(cost=np.zeros(3), theta=np.ones(2), w=np.ones(2), v=np.ones(1))
    cost, theta, w, v = res
    assert_eq(cost.shape, (3,))
    assert_allclose(res.theta, theta)


# =============================================================================
# Tests: DPGHead
# =============================================================================
def test_head_snapshots_and_restore():
    st0 = DPGState(theta=[0.0], w=[0.0], v=[0.0])
    head = DPGHead(functions=_functions(), state0=st0)
    head.set_state(st0.replace(theta=[1.0]))
    head.snapshot_best()
    head.set_state(st0.replace(theta=[5.0]))
    head.soft_update_target(0.5)
    assert_allclose(head.target.theta, [2.5])

    head.restore_best()
    assert_allclose(head.state.theta, [1.0])
    assert_allclose(head.target.theta, [2.5])


def test_head_rollout_validates_shapes():
    st0 = DPGState(theta=[0.0], w=[0.0], v=[0.0])

    def simulate_bad_rows(theta, x0, noise=None):
        return np.zeros((5, 2)), np.zeros((4, 1))

    def simulate_bad_cols(theta, x0, noise=None):
        return np.zeros((5, 2)), np.zeros((5, 3))

    def simulate_ok(theta, x0, noise=None):
        assert_true(noise is None, "evaluation rollout must not receive noise")
        return np.zeros((5, 2)), np.zeros(5)

    head = DPGHead(functions=_functions(simulate=simulate_bad_rows), state0=st0, action_dim=1)
    assert_raises(ValueError, lambda: head.rollout(np.zeros(2)))

    head = DPGHead(functions=_functions(simulate=simulate_bad_cols), state0=st0, action_dim=1)
    assert_raises(ValueError, lambda: head.rollout(np.zeros(2)))

    head = DPGHead(functions=_functions(simulate=simulate_ok), state0=st0, action_dim=1)
    x, u = head.rollout(np.zeros(2))
    assert_eq(x.shape, (5, 2))
    assert_eq(u.shape, (5, 1))


def test_head_gradients_reads_vector_dmu_as_column():
    st0 = DPGState(theta=[1.0, 2.0], w=[0.0, 0.0], v=[0.0])

    def gradients(s1, s, a1, a, theta, w, v, t):
        return np.array([2.0]), np.zeros(2), np.zeros(1), np.array([1.0, 3.0])

    head = DPGHead(functions=_functions(gradients=gradients), state0=st0)
    dQ_da, dQ_dw, dQ_dv, dmu = head.gradients(np.zeros(1), np.zeros(1), np.zeros(1), np.zeros(1), 0)
    assert_eq(dmu.shape, (2, 1))
    assert_allclose(dmu @ dQ_da, [2.0, 6.0])


TESTS: List[Tuple[str, Callable[[], None]]] = [
    ("config_defaults_match_documented_values", test_config_defaults_match_documented_values),
    ("config_rejects_invalid_fields", test_config_rejects_invalid_fields),
    ("config_is_frozen", test_config_is_frozen),
    ("critic_update_parse_aliases", test_critic_update_parse_aliases),
    ("config_matrix_noise_scale_is_readonly_copy", test_config_matrix_noise_scale_is_readonly_copy),
    ("config_noise_matrix_must_be_positive_semidefinite", test_config_noise_matrix_must_be_positive_semidefinite),
    ("config_to_dict_is_json_serializable", test_config_to_dict_is_json_serializable),
    ("functions_require_callables", test_functions_require_callables),
    ("state_copies_and_is_readonly", test_state_copies_and_is_readonly),
    ("state_stacked_critic_roundtrip_layout", test_state_stacked_critic_roundtrip_layout),
    ("state_soft_update", test_state_soft_update),
    ("state_is_finite", test_state_is_finite),
    ("result_unpacks_as_tuple", test_result_unpacks_as_tuple),
    ("head_snapshots_and_restore", test_head_snapshots_and_restore),
    ("head_rollout_validates_shapes", test_head_rollout_validates_shapes),
    ("head_gradients_reads_vector_dmu_as_column", test_head_gradients_reads_vector_dmu_as_column),
]


def main(argv=None) -> int:
    return run_tests(TESTS, argv=argv, suite_name="config")


if __name__ == "__main__":
    raise SystemExit(main())
