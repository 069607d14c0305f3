from __future__ import annotations

from typing import Any, Dict, Tuple, Union

import numpy as np

from dpg_control.common.estimators import kalman_update, rls_update
from dpg_control.common.utils.common_utils import _sqrt_sum

from .config import CriticUpdate, DPGConfig
from .head import DPGHead


# =============================================================================
# RMS-normalized step
# =============================================================================
def rms_step(
    param: np.ndarray,
    grad: np.ndarray,
    sq_avg: np.ndarray,
    *,
    step: float,
    horizon: int,
    decay: float,
    eps: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    One RMSProp-style ascent step.

    ::

        g²  <- decay * g² + (1 - decay) * d²
        p   <- p + (step / T) * d / (sqrt(g²) + eps)

    Returns
    -------
    param_new, sq_avg_new : np.ndarray
        Fresh arrays; inputs are not modified.
    """
    sq_avg_new = decay * sq_avg + (1.0 - decay) * np.square(grad)
    param_new = param + (float(step) / float(horizon)) * grad / (np.sqrt(sq_avg_new) + float(eps))
    return param_new, sq_avg_new


# =============================================================================
# Critic updaters (one per CriticUpdate member)
# =============================================================================
class GradientCriticUpdater:
    """
    Batched TD-gradient critic update.

    During a rollout each step adds ``δ ∇_w Q`` and ``δ ∇_v Q`` with
    ``δ = y − Q(s, a)``; :meth:`finish_episode` applies one RMS step per block.
    """

    mode = CriticUpdate.GRADIENT

    def __init__(self, cfg: DPGConfig, *, n_w: int, n_v: int) -> None:
        self.decay = float(cfg.rms_decay)
        self.eps = float(cfg.critic_rms_eps)
        self.sq_w = np.full(int(n_w), float(cfg.critic_rms_init), dtype=np.float64)
        self.sq_v = np.full(int(n_v), float(cfg.critic_rms_init), dtype=np.float64)
        self.start_episode(n_w=n_w, n_v=n_v)

    def start_episode(self, *, n_w: int, n_v: int) -> None:
        self.dw = np.zeros(int(n_w), dtype=np.float64)
        self.dv = np.zeros(int(n_v), dtype=np.float64)

    def observe(self, head: DPGHead, *, s: Any, a: Any, t: int, y: float, grad_w: np.ndarray, grad_v: np.ndarray) -> None:
        delta = float(y) - head.q_values(s, a, t)
        self.dw = self.dw + delta * grad_w
        self.dv = self.dv + delta * grad_v

    def finish_episode(self, head: DPGHead, *, step_w: float, step_v: float, horizon: int) -> None:
        st = head.state
        w, self.sq_w = rms_step(st.w, self.dw, self.sq_w, step=step_w, horizon=horizon, decay=self.decay, eps=self.eps)
        v, self.sq_v = rms_step(st.v, self.dv, self.sq_v, step=step_v, horizon=horizon, decay=self.decay, eps=self.eps)
        head.set_state(st.replace(w=w, v=v))

    def diagnostics(self) -> Dict[str, float]:
        return {
            "norm_grad_w": _sqrt_sum(self.sq_w),
            "norm_grad_v": _sqrt_sum(self.sq_v),
        }


class RLSCriticUpdater:
    """Per-step recursive least squares on ``[v; w]`` with regressor ``[∇_v Q; ∇_w Q]``."""

    mode = CriticUpdate.RLS

    def __init__(self, cfg: DPGConfig, *, n_w: int, n_v: int) -> None:
        self.lam = float(cfg.rls_forgetting)
        self.P = float(cfg.rls_init_cov) * np.eye(int(n_w) + int(n_v), dtype=np.float64)

    def start_episode(self, *, n_w: int, n_v: int) -> None:
        return None

    def observe(self, head: DPGHead, *, s: Any, a: Any, t: int, y: float, grad_w: np.ndarray, grad_v: np.ndarray) -> None:
        phi = np.concatenate([grad_v, grad_w])
        vw, self.P = rls_update(head.state.stacked_critic(), y, phi, self.P, self.lam)
        head.set_state(head.state.with_stacked_critic(vw))

    def finish_episode(self, head: DPGHead, *, step_w: float, step_v: float, horizon: int) -> None:
        return None

    def diagnostics(self) -> Dict[str, float]:
        return {"trace_P": float(np.trace(self.P))}


class KalmanCriticUpdater:
    """
    Per-step Kalman filtering of ``[v; w]``.

    The process noise is ``R1 = φφᵀ`` for the current regressor ``φ``, so the
    covariance only grows along the direction of the incoming observation.
    """

    mode = CriticUpdate.KALMAN

    def __init__(self, cfg: DPGConfig, *, n_w: int, n_v: int) -> None:
        d = int(n_w) + int(n_v)
        self.P = float(cfg.kalman_init_cov) * np.eye(d, dtype=np.float64)
        self.R2 = float(cfg.kalman_obs_noise)
        self.R12 = np.full(d, float(cfg.kalman_cross_noise), dtype=np.float64)

    def start_episode(self, *, n_w: int, n_v: int) -> None:
        return None

    def observe(self, head: DPGHead, *, s: Any, a: Any, t: int, y: float, grad_w: np.ndarray, grad_v: np.ndarray) -> None:
        phi = np.concatenate([grad_v, grad_w])
        vw, self.P = kalman_update(np.outer(phi, phi), self.R2, self.R12, head.state.stacked_critic(), y, phi, self.P)
        head.set_state(head.state.with_stacked_critic(vw))

    def finish_episode(self, head: DPGHead, *, step_w: float, step_v: float, horizon: int) -> None:
        return None

    def diagnostics(self) -> Dict[str, float]:
        return {"trace_P": float(np.trace(self.P))}


CriticUpdater = Union[GradientCriticUpdater, RLSCriticUpdater, KalmanCriticUpdater]


def build_critic_updater(cfg: DPGConfig, *, n_w: int, n_v: int) -> CriticUpdater:
    """
    Construct the updater owning the state of ``cfg.critic_update``.

    Raises
    ------
    ValueError
        For a mode without an updater (unreachable once the config validated).
    """
    mode = CriticUpdate.parse(cfg.critic_update)
    if mode is CriticUpdate.GRADIENT:
        return GradientCriticUpdater(cfg, n_w=n_w, n_v=n_v)
    if mode is CriticUpdate.RLS:
        return RLSCriticUpdater(cfg, n_w=n_w, n_v=n_v)
    if mode is CriticUpdate.KALMAN:
        return KalmanCriticUpdater(cfg, n_w=n_w, n_v=n_v)
    raise ValueError(f"No critic updater for mode {mode!r}")
