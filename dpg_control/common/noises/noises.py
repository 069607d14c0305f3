from __future__ import annotations

from typing import Any, Optional

import math

import torch as th

from .base_noise import TraceNoise
from ..utils.noise_utils import _scale_factor


class GaussianTraceNoise(TraceNoise):
    """
    White Gaussian trace: rows are i.i.d. ``N(0, Σ)``.

    ``Σ`` is the covariance passed at call time (scalar ``c`` means ``c·I``),
    so the trace follows the noise scale as the training loop halves it
    after a divergence.

    Examples
    --------
    >>> noise = GaussianTraceNoise(horizon=50, action_dim=2, seed=0)
    >>> noise(0.25).shape
    (50, 2)
    """

    def sample(self, noise_scale: Any) -> th.Tensor:
        L = _scale_factor(noise_scale, self.action_dim, dtype=self.dtype)
        eps = self._randn(self.horizon, self.action_dim)
        return eps @ L.T


class OrnsteinUhlenbeckTraceNoise(TraceNoise):
    """
    Temporally correlated trace from an Euler-discretized OU process.

        n[0]   = 0
        n[k+1] = n[k] - theta * n[k] * dt + sqrt(dt) * L eps[k]

    with ``L Lᵀ = Σ`` and ``eps[k] ~ N(0, I)``. Each call starts a fresh
    process at zero.

    Parameters
    ----------
    horizon, action_dim, seed, dtype
        See :class:`TraceNoise`.
    theta : float, default=0.15
        Mean-reversion speed (>= 0).
    dt : float, default=1e-2
        Time step (> 0).
    """

    def __init__(
        self,
        horizon: int,
        action_dim: int,
        *,
        theta: float = 0.15,
        dt: float = 1e-2,
        seed: Optional[int] = None,
        dtype: th.dtype = th.float64,
    ) -> None:
        if theta < 0.0:
            raise ValueError(f"theta must be >= 0, got {theta}")
        if dt <= 0.0:
            raise ValueError(f"dt must be > 0, got {dt}")
        self.theta = float(theta)
        self.dt = float(dt)
        super().__init__(horizon, action_dim, seed=seed, dtype=dtype)

    def sample(self, noise_scale: Any) -> th.Tensor:
        L = _scale_factor(noise_scale, self.action_dim, dtype=self.dtype)
        eps = self._randn(self.horizon, self.action_dim) @ L.T

        out = th.zeros(self.horizon, self.action_dim, dtype=self.dtype)
        state = th.zeros(self.action_dim, dtype=self.dtype)
        sqrt_dt = math.sqrt(self.dt)
        for k in range(1, self.horizon):
            state = state - self.theta * state * self.dt + sqrt_dt * eps[k - 1]
            out[k] = state
        return out
