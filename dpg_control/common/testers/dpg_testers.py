from __future__ import annotations

import io
import math
import os
from multiprocessing.pool import ThreadPool
from typing import Any, Callable, Dict, List, Tuple

import numpy as np

from dpg_control.common.testers.test_utils import (
    assert_allclose,
    assert_close,
    assert_eq,
    assert_file_exists,
    assert_finite,
    assert_raises,
    assert_true,
    mk_tmp_dir,
    run_tests,
)

from dpg_control import NumericalInstabilityError, dpg
from dpg_control.common.estimators import kalman_update, rls_update
from dpg_control.baselines.dpg import DPGConfig, DPGCore, DPGFunctions, DPGHead, DPGState
from dpg_control.common.callbacks import BaseCallback, ConsoleReportCallback, EvalHistoryCallback
from dpg_control.common.loggers import build_logger
from dpg_control.common.trainers.evaluator import episode_cost
from dpg_control.common.trainers.train_loop import train_dpg
from dpg_control.common.trainers.trainer import DPGTrainer
from dpg_control.systems import make_double_integrator, make_linear_quadratic_functions


# =============================================================================
# Scalar toy problem
# =============================================================================
# The state trajectory is the constant theta, the actor gradient is +1 per
# transition and the critic is identically zero. Every actor step increases
# theta, so the evaluation cost 5 theta^2 grows until a rollback fires.
T_TOY = 5


def _toy_functions(*, nan_above: float = math.inf, noise_calls: List[Any] = None) -> DPGFunctions:
    def policy(s, theta, t):
        return np.array([0.0])

    def q_value(s, a, v, w, theta, t):
        return 0.0

    def gradients(s1, s, a1, a, theta, w, v, t):
        return np.array([1.0]), np.zeros(1), np.zeros(1), np.array([[1.0]])

    def simulate(theta, x0, noise=None):
        return np.full((T_TOY, 1), float(theta[0])), np.zeros((T_TOY, 1))

    def exploration(noise_scale):
        if noise_calls is not None:
            noise_calls.append(noise_scale)
        return np.zeros((T_TOY, 1))

    def reward(s, a, t):
        x = float(s[0])
        return math.nan if x > nan_above else -x * x

    return DPGFunctions(
        policy=policy,
        q_value=q_value,
        gradients=gradients,
        simulate=simulate,
        exploration=exploration,
        reward=reward,
    )


def _toy_state() -> DPGState:
    return DPGState(theta=[1.0], w=[0.0], v=[0.0])


def _toy_config(**overrides) -> DPGConfig:
    kw: Dict[str, Any] = dict(
        action_dim=1,
        noise_scale=0.5,
        actor_step=10.0,
        critic_step_w=1e-2,
        critic_step_v=2e-2,
        aux_step=4e-2,
        iters=3,
        eval_interval=1,
        hold_actor=0,
    )
    kw.update(overrides)
    return DPGConfig(**kw)


class _Recorder(BaseCallback):
    """Keeps copies of what the trainer exposes at each hook."""

    def __init__(self, stop_at: int = 0) -> None:
        self.stop_at = int(stop_at)
        self.updates: List[Dict[str, Any]] = []
        self.divergences: List[Dict[str, Any]] = []
        self.last_iteration = 0

    def on_update(self, trainer, metrics=None):
        self.updates.append(dict(metrics))
        self.last_iteration = int(trainer.iteration)
        return not (self.stop_at and trainer.iteration >= self.stop_at)

    def on_divergence(self, trainer, metrics):
        self.divergences.append(
            {
                "iteration": int(trainer.iteration),
                "theta": np.array(trainer.head.state.theta),
                "best_theta": np.array(trainer.head.best.theta),
                "steps": trainer.core.steps.as_dict(),
                "noise_scale": trainer.core.noise_scale,
            }
        )
        return True


def _double_integrator_run(mode: str, *, seed: int = 0, iters: int = 30, pool: Any = None, callbacks: Any = None):
    system, fns = make_double_integrator(horizon=20, seed=seed)
    cfg = DPGConfig(
        action_dim=1,
        noise_scale=0.1,
        actor_step=1e-3,
        critic_step_w=1e-3,
        critic_step_v=1e-3,
        iters=iters,
        eval_interval=5,
        hold_actor=5,
        stepreduce_interval=10,
        critic_update=mode,
    )
    state0 = DPGState(theta=[-1.0, -1.5], w=np.zeros(system.n_w), v=np.zeros(system.n_v))
    res = dpg(cfg, fns, state0, [1.0, 0.0], seed=seed, verbose=False, pool=pool, callbacks=callbacks)
    return system, res


# =============================================================================
# Two-transition linear critic
# =============================================================================
# Q(s, a) = v s + w a, a1 = 0, so Q_target(s1, a1) = v_target s1. The actor
# gradient is zero and the rollout is the fixed pair below.
LIN_X = np.array([[1.0], [2.0], [3.0]])
LIN_U = np.array([[1.0], [-1.0], [0.0]])
LIN_V0, LIN_W0, LIN_GAMMA = 0.5, 0.25, 0.5


def _linear_critic_functions() -> DPGFunctions:
    def policy(s, theta, t):
        return np.array([0.0])

    def q_value(s, a, v, w, theta, t):
        return float(v[0] * s[0] + w[0] * a[0])

    def gradients(s1, s, a1, a, theta, w, v, t):
        return np.array([0.0]), np.array([float(a[0])]), np.array([float(s[0])]), np.array([[0.0]])

    def simulate(theta, x0, noise=None):
        return LIN_X.copy(), LIN_U.copy()

    def exploration(noise_scale):
        return np.zeros((3, 1))

    def reward(s, a, t):
        return -float(s[0]) ** 2

    return DPGFunctions(
        policy=policy,
        q_value=q_value,
        gradients=gradients,
        simulate=simulate,
        exploration=exploration,
        reward=reward,
    )


def _linear_critic_core(mode: str, **overrides) -> DPGCore:
    kw: Dict[str, Any] = dict(critic_update=mode, gamma=LIN_GAMMA, tau=0.5, critic_step_w=0.3, critic_step_v=0.6, hold_actor=10)
    kw.update(overrides)
    cfg = _toy_config(**kw)
    head = DPGHead(functions=_linear_critic_functions(), state0=DPGState(theta=[0.0], w=[LIN_W0], v=[LIN_V0]))
    return DPGCore(head=head, config=cfg)


# TD targets of the two transitions under the initial target critic:
#   t=0: r = -4, Q_target = 0.5 * 2 = 1.0  ->  y = -3.5
#   t=1: r = -9, Q_target = 0.5 * 3 = 1.5  ->  y = -8.25
LIN_TARGETS = (-3.5, -8.25)
LIN_PHI = (np.array([1.0, 1.0]), np.array([2.0, -1.0]))  # [dQ_dv, dQ_dw] at (s, a)


# =============================================================================
# Realizable quadratic critic on x1 = A x + B u
# =============================================================================
# With u = K x + e and features [x², x e, e²] the Bellman equation of the
# fixed policy K is solved exactly by the closed form in _bellman_fixed_point.
QC_A, QC_B, QC_K, QC_GAMMA, QC_T = 0.9, 1.0, -0.5, 0.1, 20


def _quadratic_critic_functions() -> DPGFunctions:
    e = np.random.default_rng(0).uniform(-1.0, 1.0, size=QC_T)
    x = np.zeros((QC_T, 1))
    u = np.zeros((QC_T, 1))
    x[0, 0] = 1.0
    for t in range(QC_T):
        u[t, 0] = QC_K * x[t, 0] + e[t]
        if t + 1 < QC_T:
            x[t + 1, 0] = QC_A * x[t, 0] + QC_B * u[t, 0]

    def policy(s, theta, t):
        return np.array([float(theta[0]) * float(s[0])])

    def q_value(s, a, v, w, theta, t):
        d = float(a[0]) - float(theta[0]) * float(s[0])
        return float(v[0] * s[0] ** 2 + w[0] * s[0] * d + w[1] * d * d)

    def gradients(s1, s, a1, a, theta, w, v, t):
        x_, d = float(s[0]), float(a[0]) - float(theta[0]) * float(s[0])
        dQ_da = np.array([w[0] * x_ + 2.0 * w[1] * d])
        return dQ_da, np.array([x_ * d, d * d]), np.array([x_ * x_]), np.array([[x_]])

    def simulate(theta, x0, noise=None):
        return x.copy(), u.copy()

    def exploration(noise_scale):
        return np.zeros((QC_T, 1))

    def reward(s, a, t):
        return -(float(s[0]) ** 2 + float(a[0]) ** 2)

    return DPGFunctions(
        policy=policy,
        q_value=q_value,
        gradients=gradients,
        simulate=simulate,
        exploration=exploration,
        reward=reward,
    )


def _bellman_fixed_point() -> np.ndarray:
    """``[v, w_xe, w_ee]`` of Q(s, a) = r(As + Ba, a) + γ V(As + Ba) with V(x) = v x²."""
    L = QC_A + QC_B * QC_K
    v = -(L * L + QC_K * QC_K) / (1.0 - QC_GAMMA * L * L)
    c = QC_GAMMA * v - 1.0
    return np.array([v, 2.0 * (c * L * QC_B - QC_K), c * QC_B * QC_B - 1.0])


def _fit_quadratic_critic(mode: str, *, iters: int = 400) -> np.ndarray:
    cfg = DPGConfig(
        action_dim=1,
        actor_step=0.0,
        critic_step_w=2.0,
        critic_step_v=2.0,
        gamma=QC_GAMMA,
        tau=1.0,
        iters=iters,
        critic_update=mode,
        stepreduce_interval=40,
        stepreduce_factor=0.5,
        hold_actor=iters,
        init_perturbation_scale=0.0,
    )
    head = DPGHead(functions=_quadratic_critic_functions(), state0=DPGState(theta=[QC_K], w=[0.0, 0.0], v=[0.0]))
    core = DPGCore(head=head, config=cfg)
    x, u = head.rollout([1.0], np.zeros((QC_T, 1)))
    for i in range(1, iters + 1):
        core.update_from_rollout(x, u, i)
        core.apply_schedule(i)
    assert_allclose(head.state.theta, [QC_K], rtol=0.0, atol=0.0)
    return head.state.stacked_critic()


class _ThetaTrace(BaseCallback):
    def __init__(self) -> None:
        self.thetas: List[float] = []
        self.actor_updated: List[float] = []

    def on_update(self, trainer, metrics=None):
        self.thetas.append(float(trainer.head.state.theta[0]))
        self.actor_updated.append(float(metrics["actor_updated"]))
        return True


class _Bar:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.n = 0
        self.postfixes: List[Dict[str, Any]] = []

    def update(self, n=1):
        self.n += int(n)

    def set_postfix(self, ordered_dict=None, refresh=True):
        if self.fail:
            raise RuntimeError("bar closed")
        self.postfixes.append(dict(ordered_dict))


# =============================================================================
# Tests: evaluation cost
# =============================================================================
def test_episode_cost_sums_negated_rewards():
    x = np.array([[1.0], [2.0], [3.0]])
    u = np.array([[0.5], [0.0], [-0.5]])

    def reward(s, a, t):
        return -(float(s[0]) ** 2 + float(a[0]) ** 2) + t

    expected = -sum(reward(x[t], u[t], t) for t in range(3))
    assert_close(episode_cost(x, u, reward), expected)

    with ThreadPool(2) as pool:
        assert_close(episode_cost(x, u, reward, pool=pool), expected)

    assert_raises(ValueError, lambda: episode_cost(np.zeros((3, 1)), np.zeros((2, 1)), reward))


# =============================================================================
# Tests: DPGCore
# =============================================================================
def test_actor_rms_step_and_target_tracking():
    cfg = _toy_config(tau=0.5)
    head = DPGHead(functions=_toy_functions(), state0=_toy_state(), action_dim=1)
    core = DPGCore(head=head, config=cfg)

    x = np.ones((T_TOY, 1))
    u = np.zeros((T_TOY, 1))
    metrics = core.update_from_rollout(x, u, 1)

    # d_theta = T - 1 = 4; g2 = 0.9 * 1000 + 0.1 * 16
    g2 = 0.9 * 1000.0 + 0.1 * 16.0
    theta1 = 1.0 + (10.0 / T_TOY) * 4.0 / (math.sqrt(g2) + 1e-5)
    assert_allclose(core.actor_sq, [g2])
    assert_allclose(head.state.theta, [theta1])
    assert_allclose(head.target.theta, [0.5 * theta1 + 0.5 * 1.0])
    assert_close(metrics["cost"], 4.0)
    assert_eq(metrics["actor_updated"], 1.0)
    assert_allclose(head.state.w, [0.0])


def test_hold_actor_freezes_theta_until_the_next_iteration():
    trace = _ThetaTrace()
    res = dpg(_toy_config(iters=6, hold_actor=3, actor_step=0.1), _toy_functions(), _toy_state(), [0.0], seed=0, verbose=False, callbacks=trace)

    assert_eq(trace.thetas[:3], [1.0, 1.0, 1.0])
    assert_eq(trace.actor_updated, [0.0, 0.0, 0.0, 1.0, 1.0, 1.0])
    assert_close(trace.thetas[3], 1.0 + (0.1 / T_TOY) * 4.0 / (math.sqrt(901.6) + 1e-5))
    assert_true(trace.thetas[3] < trace.thetas[4] < trace.thetas[5])
    assert_allclose(res.cost[:3], np.full(3, 5.0))


def test_gradient_critic_accumulates_td_errors_then_steps():
    core = _linear_critic_core("gradient")
    head = core.head
    metrics = core.update_from_rollout(LIN_X, LIN_U, 1)

    # live Q(s, a) = 0.5 s + 0.25 a is 0.75 at both transitions
    d0, d1 = LIN_TARGETS[0] - 0.75, LIN_TARGETS[1] - 0.75
    dw = d0 * 1.0 + d1 * (-1.0)
    dv = d0 * 1.0 + d1 * 2.0
    assert_close(dw, 4.75)
    assert_close(dv, -22.25)

    g2_w = 0.9 * 100.0 + 0.1 * dw**2
    g2_v = 0.9 * 100.0 + 0.1 * dv**2
    w1 = LIN_W0 + (0.3 / 3) * dw / (math.sqrt(g2_w) + 1e-6)
    v1 = LIN_V0 + (0.6 / 3) * dv / (math.sqrt(g2_v) + 1e-6)

    assert_allclose(core.critic.sq_w, [g2_w])
    assert_allclose(core.critic.sq_v, [g2_v])
    assert_allclose(head.state.w, [w1])
    assert_allclose(head.state.v, [v1])
    assert_allclose(head.state.theta, [0.0])
    assert_allclose(head.target.w, [0.5 * w1 + 0.5 * LIN_W0])
    assert_allclose(head.target.v, [0.5 * v1 + 0.5 * LIN_V0])
    assert_close(metrics["cost"], 13.0)
    assert_close(metrics["norm_grad_w"], math.sqrt(g2_w))


def test_rls_and_kalman_critics_update_every_transition():
    core = _linear_critic_core("rls")
    core.update_from_rollout(LIN_X, LIN_U, 1)
    p, P = np.array([LIN_V0, LIN_W0]), 0.1 * np.eye(2)
    for y, phi in zip(LIN_TARGETS, LIN_PHI):
        p, P = rls_update(p, y, phi, P, core.config.rls_forgetting)
    assert_allclose(core.head.state.stacked_critic(), p)
    assert_allclose(core.critic.P, P)
    assert_allclose(core.head.target.v, [0.5 * p[0] + 0.5 * LIN_V0])

    core = _linear_critic_core("kalman")
    core.update_from_rollout(LIN_X, LIN_U, 1)
    p, P = np.array([LIN_V0, LIN_W0]), 1e4 * np.eye(2)
    for y, phi in zip(LIN_TARGETS, LIN_PHI):
        p, P = kalman_update(np.outer(phi, phi), 1.0, np.zeros(2), p, y, phi, P)
    assert_allclose(core.head.state.stacked_critic(), p)
    assert_allclose(core.critic.P, P)


def test_target_gap_shrinks_by_one_minus_tau_per_iteration():
    head = DPGHead(functions=_toy_functions(), state0=_toy_state(), action_dim=1)
    head.target = DPGState(theta=[0.0], w=[0.0], v=[0.0])
    core = DPGCore(head=head, config=_toy_config(tau=0.3, hold_actor=100))

    x = np.ones((T_TOY, 1))
    u = np.zeros((T_TOY, 1))
    for k in range(1, 9):
        core.update_from_rollout(x, u, k)
        assert_allclose(head.state.theta, [1.0])
        assert_close(float(head.state.theta[0] - head.target.theta[0]), 0.7**k, rtol=1e-12, atol=1e-15)


def test_critic_modes_reach_the_same_bellman_fixed_point():
    expected = _bellman_fixed_point()
    fits = {mode: _fit_quadratic_critic(mode) for mode in ("gradient", "rls", "kalman")}

    for mode, atol in (("rls", 1e-3), ("kalman", 1e-3), ("gradient", 2e-2)):
        assert_allclose(fits[mode], expected, f"{mode}: {fits[mode]} != {expected}", atol=atol, rtol=0.0)


def test_apply_schedule_scales_all_but_aux():
    cfg = _toy_config(stepreduce_interval=3, stepreduce_factor=0.5)
    core = DPGCore(head=DPGHead(functions=_toy_functions(), state0=_toy_state()), config=cfg)

    assert_true(not core.apply_schedule(1))
    assert_true(not core.apply_schedule(2))
    assert_true(core.apply_schedule(3))
    assert_close(core.steps.actor, 5.0)
    assert_close(core.steps.critic_w, 5e-3)
    assert_close(core.steps.critic_v, 1e-2)
    assert_close(core.steps.aux, 4e-2)


# =============================================================================
# Tests: training loop
# =============================================================================
def test_divergence_rolls_back_and_shrinks_steps():
    noise_calls: List[Any] = []
    rec = _Recorder()
    hist = EvalHistoryCallback()
    res = dpg(
        _toy_config(iters=3),
        _toy_functions(noise_calls=noise_calls),
        _toy_state(),
        [0.0],
        seed=0,
        verbose=False,
        callbacks=[rec, hist],
    )

    assert_eq(len(rec.divergences), 1)
    d = rec.divergences[0]
    assert_eq(d["iteration"], 2)
    assert_allclose(d["theta"], d["best_theta"])
    assert_close(d["steps"]["actor_step"], 1.0)
    assert_close(d["steps"]["critic_step_w"], 1e-3)
    assert_close(d["steps"]["critic_step_v"], 2e-3)
    assert_close(d["steps"]["aux_step"], 4e-3)
    assert_close(d["noise_scale"], 0.25)

    assert_eq(noise_calls, [0.5, 0.5, 0.25])
    assert_eq(hist.divergences, [2])
    assert_true(res.cost[1] > 1.2 * res.cost[0])
    assert_allclose(res.theta, d["best_theta"])
    assert_close(res.cost[0], 5.0 * float(d["best_theta"][0]) ** 2)


def test_non_finite_evaluation_counts_as_divergence():
    rec = _Recorder()
    res = dpg(
        _toy_config(iters=2),
        _toy_functions(nan_above=1.4),
        _toy_state(),
        [0.0],
        seed=0,
        verbose=False,
        callbacks=rec,
    )
    assert_true(math.isfinite(res.cost[0]))
    assert_true(math.isnan(res.cost[1]))
    assert_eq(len(rec.divergences), 1)
    assert_finite(res.theta)
    assert_allclose(res.w, [0.0])
    assert_close(res.cost[0], 5.0 * float(res.theta[0]) ** 2)


def test_callback_stop_leaves_remaining_costs_zero():
    rec = _Recorder(stop_at=3)
    res = dpg(_toy_config(iters=10, actor_step=0.0), _toy_functions(), _toy_state(), [0.0], verbose=False, callbacks=rec)
    assert_eq(rec.last_iteration, 3)
    assert_eq(res.cost.shape, (10,))
    assert_allclose(res.cost[:3], [5.0, 5.0, 5.0])
    assert_allclose(res.cost[3:], np.zeros(7))


def test_progress_bar_receives_eval_postfix():
    def make_trainer() -> DPGTrainer:
        cfg = _toy_config(iters=3, actor_step=0.0)
        head = DPGHead(functions=_toy_functions(), state0=_toy_state(), action_dim=1)
        return DPGTrainer(config=cfg, functions=head.functions, head=head, core=DPGCore(head=head, config=cfg), x0=[0.0], seed=0)

    bar = _Bar()
    train_dpg(make_trainer(), bar)
    assert_eq(bar.n, 3)
    assert_eq(bar.postfixes, [{"cost": "5", "best": "5"}] * 3)

    assert_raises(RuntimeError, lambda: train_dpg(make_trainer(), _Bar(fail=True)))


def test_kalman_degenerate_innovation_propagates():
    cfg = _toy_config(critic_update="kalman", kalman_obs_noise=0.0)
    assert_raises(
        NumericalInstabilityError,
        lambda: dpg(cfg, _toy_functions(), _toy_state(), [0.0], verbose=False),
    )


def test_config_mapping_and_state_triple_are_accepted():
    cfg = dict(action_dim=1, noise_scale=0.5, actor_step=0.0, iters=2, eval_interval=1)
    res = dpg(cfg, _toy_functions(), ([1.0], [0.0], [0.0]), [0.0], verbose=False)
    cost, theta, w, v = res
    assert_allclose(cost, [5.0, 5.0])
    assert_allclose(theta, [1.0])

    assert_raises(TypeError, lambda: dpg(3, _toy_functions(), _toy_state(), [0.0], verbose=False))
    assert_raises(TypeError, lambda: dpg(cfg, _toy_functions(), [1.0], [0.0], verbose=False))
    assert_raises(ValueError, lambda: dpg(dict(cfg, gamma=2.0), _toy_functions(), _toy_state(), [0.0], verbose=False))


def test_console_report_lines():
    buf = io.StringIO()
    console = ConsoleReportCallback(file=buf)
    res = dpg(_toy_config(iters=2), _toy_functions(), _toy_state(), [0.0], verbose=False, callbacks=console)

    lines = console.lines
    assert_eq(lines[0], "=== Deterministic Policy Gradient ===")
    assert_eq(lines[1], "Training using gradient")
    assert_true(lines[2].startswith("1, cost: "), lines[2])
    assert_true("norm ∇Θ: " in lines[2] and "norm ∇w: " in lines[2] and "norm ∇v: " in lines[2], lines[2])
    assert_true(lines[3].startswith("2, cost: "), lines[3])
    assert_eq(lines[4], "Reducing stepsizes due to divergence")
    assert_eq(lines[-1], f"Done. Minimum cost: {float(np.min(res.cost))}, ({float(np.min(res.cost))})")
    assert_true("Reducing stepsizes due to divergence" in buf.getvalue())

    console = ConsoleReportCallback(file=io.StringIO())
    dpg(_toy_config(iters=1, critic_update="rls"), _toy_functions(), _toy_state(), [0.0], verbose=False, callbacks=console)
    assert_eq(console.lines[1], "Training using rls")
    assert_true("norm ∇w" not in console.lines[2], console.lines[2])


# =============================================================================
# Tests: double integrator
# =============================================================================
def test_cost_history_overwritten_at_evaluations():
    hist = EvalHistoryCallback(keep_snapshots=True)
    system, res = _double_integrator_run("gradient", iters=12, callbacks=hist)

    assert_eq(res.cost.shape, (12,))
    assert_eq(hist.iterations, [1, 6, 11])
    assert_allclose(res.cost[[0, 5, 10]], hist.costs)
    for k, st in enumerate(hist.snapshots):
        assert_close(system.episode_cost(st.theta, [1.0, 0.0]), hist.costs[k], rtol=1e-9)


def test_all_critic_modes_run_on_double_integrator():
    for mode in ("gradient", "rls", "kalman"):
        hist = EvalHistoryCallback()
        system, res = _double_integrator_run(mode, callbacks=hist)
        assert_finite(res.cost, f"{mode}: non-finite cost history")
        assert_finite(res.theta, f"{mode}: non-finite theta")
        assert_eq(res.w.shape, (system.n_w,))
        assert_eq(res.v.shape, (system.n_v,))
        assert_true(all(b2 <= b1 for b1, b2 in zip(hist.best_costs, hist.best_costs[1:])), mode)
        assert_close(min(hist.costs), hist.best_costs[-1])


def test_scalar_policy_improves_from_a_weak_gain():
    # x1 = x + u, mu = theta x, r = -x² - u²; the best gain is about -0.62
    system, fns = make_linear_quadratic_functions([[1.0]], [[1.0]], [[1.0]], [[1.0]], horizon=20, seed=0)
    cfg = DPGConfig(
        action_dim=1,
        noise_scale=0.25,
        actor_step=0.5,
        iters=50,
        critic_update="rls",
        hold_actor=0,
        eval_interval=10,
    )
    state0 = DPGState(theta=[-0.1], w=np.zeros(system.n_w), v=np.zeros(system.n_v))
    hist = EvalHistoryCallback()
    res = dpg(cfg, fns, state0, [1.0], seed=0, verbose=False, callbacks=hist)

    assert_eq(hist.iterations, [1, 11, 21, 31, 41])
    assert_true(hist.costs[0] > hist.costs[1] > hist.costs[2], f"costs {hist.costs}")
    assert_true(min(res.cost[::10]) <= res.cost[0])
    assert_true(system.episode_cost(res.theta, [1.0]) <= res.cost[0])
    assert_true(float(res.theta[0]) < -0.1, f"theta {res.theta}")


def test_same_seed_same_result():
    _, a = _double_integrator_run("rls", seed=3, iters=10)
    _, b = _double_integrator_run("rls", seed=3, iters=10)
    assert_allclose(a.cost, b.cost, rtol=0.0, atol=0.0)
    assert_allclose(a.theta, b.theta, rtol=0.0, atol=0.0)
    assert_allclose(a.w, b.w, rtol=0.0, atol=0.0)


def test_pool_matches_sequential_evaluation():
    _, seq = _double_integrator_run("gradient", seed=1, iters=11)
    with ThreadPool(2) as pool:
        _, par = _double_integrator_run("gradient", seed=1, iters=11, pool=pool)
    assert_allclose(seq.cost, par.cost, rtol=1e-12, atol=1e-12)
    assert_allclose(seq.theta, par.theta)


def test_logger_receives_train_and_eval_metrics():
    root = mk_tmp_dir()
    logger = build_logger(log_dir=root, exp_name="di", run_name="run", use_tensorboard=False)
    system, fns = make_double_integrator(horizon=10, seed=0)
    cfg = DPGConfig(action_dim=1, noise_scale=0.1, actor_step=1e-3, iters=6, eval_interval=5, hold_actor=0)
    state0 = DPGState(theta=[-1.0, -1.5], w=np.zeros(system.n_w), v=np.zeros(system.n_v))
    try:
        dpg(cfg, fns, state0, [1.0, 0.0], seed=0, verbose=False, logger=logger)
    finally:
        logger.close()

    for name in ("config.json", "metadata.json", "metrics.jsonl", "metrics_train.csv", "metrics_eval.csv", "metrics_long.csv"):
        assert_file_exists(os.path.join(logger.run_dir, name))
    assert_eq(logger.errors, [])


TESTS: List[Tuple[str, Callable[[], None]]] = [
    ("episode_cost_sums_negated_rewards", test_episode_cost_sums_negated_rewards),
    ("actor_rms_step_and_target_tracking", test_actor_rms_step_and_target_tracking),
    ("gradient_critic_accumulates_td_errors_then_steps", test_gradient_critic_accumulates_td_errors_then_steps),
    ("rls_and_kalman_critics_update_every_transition", test_rls_and_kalman_critics_update_every_transition),
    ("target_gap_shrinks_by_one_minus_tau_per_iteration", test_target_gap_shrinks_by_one_minus_tau_per_iteration),
    ("critic_modes_reach_the_same_bellman_fixed_point", test_critic_modes_reach_the_same_bellman_fixed_point),
    ("hold_actor_freezes_theta_until_the_next_iteration", test_hold_actor_freezes_theta_until_the_next_iteration),
    ("apply_schedule_scales_all_but_aux", test_apply_schedule_scales_all_but_aux),
    ("divergence_rolls_back_and_shrinks_steps", test_divergence_rolls_back_and_shrinks_steps),
    ("non_finite_evaluation_counts_as_divergence", test_non_finite_evaluation_counts_as_divergence),
    ("callback_stop_leaves_remaining_costs_zero", test_callback_stop_leaves_remaining_costs_zero),
    ("progress_bar_receives_eval_postfix", test_progress_bar_receives_eval_postfix),
    ("kalman_degenerate_innovation_propagates", test_kalman_degenerate_innovation_propagates),
    ("config_mapping_and_state_triple_are_accepted", test_config_mapping_and_state_triple_are_accepted),
    ("console_report_lines", test_console_report_lines),
    ("cost_history_overwritten_at_evaluations", test_cost_history_overwritten_at_evaluations),
    ("all_critic_modes_run_on_double_integrator", test_all_critic_modes_run_on_double_integrator),
    ("scalar_policy_improves_from_a_weak_gain", test_scalar_policy_improves_from_a_weak_gain),
    ("same_seed_same_result", test_same_seed_same_result),
    ("pool_matches_sequential_evaluation", test_pool_matches_sequential_evaluation),
    ("logger_receives_train_and_eval_metrics", test_logger_receives_train_and_eval_metrics),
]


def main(argv=None) -> int:
    return run_tests(TESTS, argv=argv, suite_name="dpg")


if __name__ == "__main__":
    raise SystemExit(main())
