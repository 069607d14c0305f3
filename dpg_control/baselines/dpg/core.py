from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

import numpy as np

from dpg_control.common.utils.common_utils import _sqrt_sum

from .config import CriticUpdate, DPGConfig
from .critic import CriticUpdater, build_critic_updater, rms_step
from .head import DPGHead


@dataclass
class StepSizes:
    """Mutable step sizes of the four parameter groups (``aux`` drives no update)."""

    actor: float
    critic_w: float
    critic_v: float
    aux: float

    def scale(self, factor: float, *, include_aux: bool) -> None:
        self.actor *= factor
        self.critic_w *= factor
        self.critic_v *= factor
        if include_aux:
            self.aux *= factor

    def as_dict(self) -> Dict[str, float]:
        return {
            "actor_step": float(self.actor),
            "critic_step_w": float(self.critic_w),
            "critic_step_v": float(self.critic_v),
            "aux_step": float(self.aux),
        }


class DPGCore:
    """
    DPG update engine.

    Given one exploratory rollout, accumulates the deterministic policy
    gradient, updates the critic with the configured strategy, takes the
    RMS-normalized actor step and moves the target snapshot.

    Expected head interface
    -----------------------
    :class:`~dpg_control.baselines.dpg.head.DPGHead` (``act``, ``reward``,
    ``gradients``, ``q_values``, ``q_values_target``, ``state``/``set_state``,
    ``soft_update_target``, ``restore_best``).

    Parameters
    ----------
    head : DPGHead
        Head holding collaborators and parameter snapshots.
    config : DPGConfig
        Hyperparameters.

    Attributes
    ----------
    steps : StepSizes
        Current step sizes (decayed by the schedule, cut on divergence).
    noise_scale : float or np.ndarray
        Current exploration covariance.
    actor_sq : np.ndarray
        Running squared-gradient estimate of the actor.
    critic : CriticUpdater
        Mode-specific critic state.
    """

    def __init__(self, *, head: DPGHead, config: DPGConfig) -> None:
        self.head = head
        self.config = config

        self.gamma = float(config.gamma)
        self.tau = float(config.tau)
        self.hold_actor = int(config.hold_actor)

        # Minimal sanity checks (config already validated; guard hand-built heads)
        if not callable(getattr(self.head, "q_values_target", None)):
            raise ValueError("DPGCore requires head.q_values_target(s, a, t).")
        if not callable(getattr(self.head, "gradients", None)):
            raise ValueError("DPGCore requires head.gradients(s1, s, a1, a, t).")

        self.steps = StepSizes(
            actor=float(config.actor_step),
            critic_w=float(config.critic_step_w),
            critic_v=float(config.critic_step_v),
            aux=float(config.aux_step),
        )
        ns = config.noise_scale
        self.noise_scale: Any = np.array(ns, dtype=np.float64) if isinstance(ns, np.ndarray) else float(ns)

        st = head.state
        self.n_theta = int(st.theta.shape[0])
        self.n_w = int(st.w.shape[0])
        self.n_v = int(st.v.shape[0])

        self.actor_sq = np.full(self.n_theta, float(config.actor_rms_init), dtype=np.float64)
        self.critic: CriticUpdater = build_critic_updater(config, n_w=self.n_w, n_v=self.n_v)

    @property
    def mode(self) -> CriticUpdate:
        return self.critic.mode

    # =============================================================================
    # Update
    # =============================================================================
    def update_from_rollout(self, x: np.ndarray, u: np.ndarray, iteration: int) -> Dict[str, float]:
        """
        Run one DPG update from an exploratory trajectory.

        Parameters
        ----------
        x : np.ndarray, shape (T, n)
            State trajectory.
        u : np.ndarray, shape (T, m)
            Action trajectory.
        iteration : int
            1-based iteration index; the actor moves only once it exceeds
            ``hold_actor``.

        Returns
        -------
        metrics : Dict[str, float]
            ``cost`` (negated accumulated reward over transitions),
            ``horizon``, ``actor_updated``, ``norm_grad_theta`` plus the
            critic updater's diagnostics.

        Notes
        -----
        For each transition ``t = 0 .. T-2``:

        - ``a1 = μ(s1, θ, t)`` and ``r = reward(s1, a, t)``
        - ``dθ += ∇_θ μ · ∇_a Q``
        - ``y = r + γ Q_target(s1, a1, t)``
        - one critic updater step toward ``y``

        A one-row trajectory has no transitions: nothing accumulates but the
        post-rollout steps still run with zero gradients.
        """
        head = self.head
        T = int(x.shape[0])

        d_theta = np.zeros(self.n_theta, dtype=np.float64)
        self.critic.start_episode(n_w=self.n_w, n_v=self.n_v)
        cost = 0.0

        for t in range(T - 1):
            s = x[t]
            s1 = x[t + 1]
            a = u[t]

            a1 = head.act(s1, t)
            r = head.reward(s1, a, t)
            cost -= r

            dQ_da, dQ_dw, dQ_dv, dmu_dtheta = head.gradients(s1, s, a1, a, t)
            d_theta += dmu_dtheta @ dQ_da

            y = r + self.gamma * head.q_values_target(s1, a1, t)
            self.critic.observe(head, s=s, a=a, t=t, y=y, grad_w=dQ_dw, grad_v=dQ_dv)

        actor_updated = int(iteration) > self.hold_actor
        if actor_updated:
            theta, self.actor_sq = rms_step(
                head.state.theta,
                d_theta,
                self.actor_sq,
                step=self.steps.actor,
                horizon=T,
                decay=float(self.config.rms_decay),
                eps=float(self.config.actor_rms_eps),
            )
            head.set_state(head.state.replace(theta=theta))

        self.critic.finish_episode(head, step_w=self.steps.critic_w, step_v=self.steps.critic_v, horizon=T)
        head.soft_update_target(self.tau)

        out: Dict[str, float] = {
            "cost": float(cost),
            "horizon": float(T),
            "actor_updated": float(actor_updated),
            "norm_grad_theta": _sqrt_sum(self.actor_sq),
        }
        out.update(self.critic.diagnostics())
        return out

    # =============================================================================
    # Schedules / recovery
    # =============================================================================
    def apply_schedule(self, iteration: int) -> bool:
        """
        Decay actor and critic steps every ``stepreduce_interval`` iterations.

        Returns
        -------
        applied : bool
            True when the decay fired at this iteration.
        """
        if int(iteration) % int(self.config.stepreduce_interval) != 0:
            return False
        self.steps.scale(float(self.config.stepreduce_factor), include_aux=False)
        return True

    def recover_from_divergence(self) -> None:
        """
        Slow down and roll back after a divergent evaluation.

        All four step sizes are divided by ``divergence_step_divisor``, the
        noise scale by ``divergence_noise_divisor``, and the live parameters
        are reset to the best snapshot.
        """
        self.steps.scale(1.0 / float(self.config.divergence_step_divisor), include_aux=True)
        self.noise_scale = self.noise_scale / float(self.config.divergence_noise_divisor)
        self.head.restore_best()

    def state_dict(self) -> Dict[str, Any]:
        """Read-only summary of the mutable optimizer state (used by callbacks and logging)."""
        out: Dict[str, Any] = dict(self.steps.as_dict())
        out["noise_scale"] = self.noise_scale
        out["norm_grad_theta"] = _sqrt_sum(self.actor_sq)
        out.update(self.critic.diagnostics())
        return out
