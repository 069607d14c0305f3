from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Callable, NamedTuple, Optional

import numpy as np

from dpg_control.common.utils.common_utils import _readonly, _to_vector


# =============================================================================
# Collaborator interface
# =============================================================================
@dataclass(frozen=True)
class DPGFunctions:
    """
    The caller-supplied functions the optimizer is driven by.

    Parameters
    ----------
    policy : callable
        ``policy(state, theta, t) -> action`` of shape (m,).
    q_value : callable
        ``q_value(state, action, v, w, theta, t) -> float``.
    gradients : callable
        ``gradients(state1, state, action1, action, theta, w, v, t)`` returning
        ``(dQ_da, dQ_dw, dQ_dv, dmu_dtheta)`` with shapes
        ``(m,), (Pw,), (Pv,), (Ptheta, m)``.
    simulate : callable
        ``simulate(theta, x0, noise=None) -> (x, u)`` with ``x`` of shape
        (T, n) and ``u`` of shape (T, m). Called with two arguments for
        noise-free rollouts.
    exploration : callable
        ``exploration(noise_scale) -> noise`` handed unchanged to ``simulate``.
    reward : callable
        ``reward(state, action, t) -> float``.

    Raises
    ------
    TypeError
        If any field is not callable.

    Notes
    -----
    Time steps ``t`` are 0-based. The optimizer never inspects the internals
    of these functions and propagates their exceptions unchanged.
    """

    policy: Callable[..., Any]
    q_value: Callable[..., Any]
    gradients: Callable[..., Any]
    simulate: Callable[..., Any]
    exploration: Callable[..., Any]
    reward: Callable[..., Any]

    def __post_init__(self) -> None:
        for f in fields(self):
            if not callable(getattr(self, f.name)):
                raise TypeError(f"DPGFunctions.{f.name} must be callable, got {type(getattr(self, f.name)).__name__}")


# =============================================================================
# Parameter snapshot
# =============================================================================
@dataclass(frozen=True, eq=False)
class DPGState:
    """
    Immutable snapshot of actor and critic parameters.

    Parameters
    ----------
    theta : array-like, shape (Ptheta,)
        Actor parameters.
    w : array-like, shape (Pw,)
        Advantage (compatible-feature) weights of the critic.
    v : array-like, shape (Pv,)
        Value-baseline weights of the critic.

    Notes
    -----
    Each field is stored as a read-only float64 copy, so live, target and
    best snapshots never alias each other. Every operation returns a new
    snapshot.
    """

    theta: np.ndarray
    w: np.ndarray
    v: np.ndarray

    def __post_init__(self) -> None:
        for name in ("theta", "w", "v"):
            vec = np.asarray(getattr(self, name))
            if vec.ndim != 1:
                raise ValueError(f"DPGState.{name} must be 1-D, got shape={vec.shape}")
            object.__setattr__(self, name, _readonly(_to_vector(vec, name=f"DPGState.{name}")))

    def replace(
        self,
        *,
        theta: Optional[Any] = None,
        w: Optional[Any] = None,
        v: Optional[Any] = None,
    ) -> "DPGState":
        """Copy with the given fields swapped."""
        return DPGState(
            theta=self.theta if theta is None else theta,
            w=self.w if w is None else w,
            v=self.v if v is None else v,
        )

    def stacked_critic(self) -> np.ndarray:
        """Critic parameters stacked as ``[v; w]`` (the recursive estimators' layout)."""
        return np.concatenate([self.v, self.w])

    def with_stacked_critic(self, vw: Any) -> "DPGState":
        """
        Inverse of :meth:`stacked_critic`.

        Raises
        ------
        ValueError
            If ``vw`` does not have length ``len(v) + len(w)``.
        """
        vw = np.asarray(vw, dtype=np.float64).reshape(-1)
        pv, pw = self.v.shape[0], self.w.shape[0]
        if vw.shape[0] != pv + pw:
            raise ValueError(f"stacked critic must have length {pv + pw}, got {vw.shape[0]}")
        return self.replace(v=vw[:pv], w=vw[pv:])

    def soft_update(self, source: "DPGState", tau: float) -> "DPGState":
        """
        Return ``tau * source + (1 - tau) * self`` field-wise.

        This is the target-network tracking rule.
        """
        tau = float(tau)
        return DPGState(
            theta=tau * source.theta + (1.0 - tau) * self.theta,
            w=tau * source.w + (1.0 - tau) * self.w,
            v=tau * source.v + (1.0 - tau) * self.v,
        )

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.theta)) and np.all(np.isfinite(self.w)) and np.all(np.isfinite(self.v)))

    def allclose(self, other: "DPGState", *, rtol: float = 1e-9, atol: float = 0.0) -> bool:
        """Field-wise ``np.allclose`` (shape mismatch compares unequal)."""
        for a, b in ((self.theta, other.theta), (self.w, other.w), (self.v, other.v)):
            if a.shape != b.shape or not np.allclose(a, b, rtol=rtol, atol=atol):
                return False
        return True


# =============================================================================
# Result
# =============================================================================
class DPGResult(NamedTuple):
    """
    Output of :func:`~dpg_control.baselines.dpg.dpg.dpg`.

    ``cost`` has one entry per iteration: the training-rollout cost, except at
    evaluation iterations where it holds the noise-free evaluation cost.
    ``theta``, ``w``, ``v`` are the best snapshot's parameters.
    """

    cost: np.ndarray
    theta: np.ndarray
    w: np.ndarray
    v: np.ndarray
