import numpy as np

from dpg_control.baselines.dpg import DPGConfig, DPGState, dpg
from dpg_control.common.callbacks import EvalHistoryCallback, NaNGuardCallback
from dpg_control.common.loggers import build_logger
from dpg_control.systems import make_double_integrator

# -----------------------------
# System + collaborators
# -----------------------------
system, functions = make_double_integrator(dt=0.1, horizon=50, noise="gaussian", seed=0)

x0 = np.array([1.0, 0.0])
state0 = DPGState(
    theta=np.array([-1.0, -1.5]),  # u = K x, stabilizing start
    w=np.zeros(system.n_w),
    v=np.zeros(system.n_v),
)

# -----------------------------
# Hyperparameters
# -----------------------------
config = DPGConfig(
    action_dim=system.action_dim,
    noise_scale=0.1,
    actor_step=1e-2,
    critic_step_w=1e-2,
    critic_step_v=1e-2,
    iters=2_000,
    critic_update="rls",
    hold_actor=100,
    eval_interval=100,
)

logger = build_logger(log_dir="./runs", exp_name="double_integrator", use_tensorboard=True)
history = EvalHistoryCallback()

result = dpg(
    config,
    functions,
    state0,
    x0,
    seed=0,
    callbacks=[history, NaNGuardCallback()],
    logger=logger,
    show_progress=True,
)
logger.close()

K_lqr = system.optimal_gain().reshape(-1)
print("learned gain:", result.theta, "cost:", system.episode_cost(result.theta, x0))
print("LQR gain:    ", K_lqr, "cost:", system.episode_cost(K_lqr, x0))
