from __future__ import annotations

from typing import Any, Optional, Tuple

import numpy as np
import torch as th

from dpg_control.baselines.dpg.types import DPGFunctions
from dpg_control.common.noises import build_exploration
from dpg_control.common.utils.common_utils import _to_matrix, _to_vector


def _quadratic_features(s: th.Tensor) -> th.Tensor:
    """Upper-triangular products ``s_i s_j`` (i <= j) followed by a constant 1."""
    n = s.shape[0]
    iu = th.triu_indices(n, n)
    outer = th.outer(s, s)
    return th.cat([outer[iu[0], iu[1]], th.ones(1, dtype=s.dtype)])


class LinearQuadraticSystem:
    """
    Discrete-time linear system with a quadratic cost and a linear policy.

    ::

        x[t+1] = A x[t] + B u[t]
        u[t]   = K x[t] + noise[t],      K = theta.reshape(m, n)
        reward = -(xᵀ Q x + uᵀ R u)

    The critic is the compatible one for this actor,

    ::

        Q(s, a) = (∇_θ μ(s) (a - μ(s)))ᵀ w + vᵀ ψ(s)

    with ``ψ`` the quadratic monomials of ``s`` plus a constant, so
    ``len(w) == len(theta) == m * n`` and ``len(v) == n (n + 1) / 2 + 1``.
    All derivatives are taken with torch autograd.

    Parameters
    ----------
    A : array-like, shape (n, n)
    B : array-like, shape (n, m)
    Q : array-like, shape (n, n)
        State cost weight (symmetric PSD).
    R : array-like, shape (m, m)
        Action cost weight (symmetric PD).
    horizon : int
        Rollout length T (number of rows of ``x`` and ``u``).
    """

    def __init__(self, A: Any, B: Any, Q: Any, R: Any, horizon: int) -> None:
        self.A = _to_matrix(A, name="A")
        self.B = _to_matrix(B, name="B")
        self.Q = _to_matrix(Q, name="Q")
        self.R = _to_matrix(R, name="R")

        n = self.A.shape[0]
        m = self.B.shape[1]
        if self.A.shape != (n, n):
            raise ValueError(f"A must be square, got {self.A.shape}")
        if self.B.shape[0] != n:
            raise ValueError(f"B must have {n} rows, got {self.B.shape}")
        if self.Q.shape != (n, n) or self.R.shape != (m, m):
            raise ValueError(f"Q must be ({n}, {n}) and R ({m}, {m}), got {self.Q.shape} and {self.R.shape}")
        if int(horizon) < 1:
            raise ValueError(f"horizon must be >= 1, got {horizon}")

        self.state_dim = int(n)
        self.action_dim = int(m)
        self.horizon = int(horizon)

    @property
    def n_theta(self) -> int:
        return self.action_dim * self.state_dim

    @property
    def n_w(self) -> int:
        return self.n_theta

    @property
    def n_v(self) -> int:
        return self.state_dim * (self.state_dim + 1) // 2 + 1

    def gain(self, theta: Any) -> np.ndarray:
        return _to_vector(theta, name="theta").reshape(self.action_dim, self.state_dim)

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------
    def policy(self, state: Any, theta: Any, t: int) -> np.ndarray:
        return self.gain(theta) @ _to_vector(state, name="state")

    def reward(self, state: Any, action: Any, t: int) -> float:
        s = _to_vector(state, name="state")
        a = _to_vector(action, name="action")
        return -float(s @ self.Q @ s + a @ self.R @ a)

    def simulate(self, theta: Any, x0: Any, noise: Optional[Any] = None) -> Tuple[np.ndarray, np.ndarray]:
        K = self.gain(theta)
        T = self.horizon
        if noise is None:
            eps = np.zeros((T, self.action_dim), dtype=np.float64)
        else:
            eps = np.asarray(noise, dtype=np.float64).reshape(T, self.action_dim)

        x = np.zeros((T, self.state_dim), dtype=np.float64)
        u = np.zeros((T, self.action_dim), dtype=np.float64)
        x[0] = _to_vector(x0, name="x0")
        for t in range(T):
            u[t] = K @ x[t] + eps[t]
            if t + 1 < T:
                x[t + 1] = self.A @ x[t] + self.B @ u[t]
        return x, u

    def _mu(self, s: th.Tensor, theta: th.Tensor) -> th.Tensor:
        return theta.reshape(self.action_dim, self.state_dim) @ s

    def _dmu_dtheta(self, s: th.Tensor, theta: th.Tensor) -> th.Tensor:
        # (m, Ptheta) jacobian, transposed to (Ptheta, m)
        return th.autograd.functional.jacobian(lambda p: self._mu(s, p), theta).T

    def _q(self, s: th.Tensor, a: th.Tensor, v: th.Tensor, w: th.Tensor, theta: th.Tensor) -> th.Tensor:
        phi = self._dmu_dtheta(s, theta) @ (a - self._mu(s, theta))
        return phi @ w + v @ _quadratic_features(s)

    def q_value(self, state: Any, action: Any, v: Any, w: Any, theta: Any, t: int) -> float:
        with th.no_grad():
            q = self._q(_tensor(state), _tensor(action), _tensor(v), _tensor(w), _tensor(theta))
        return float(q)

    def gradients(
        self,
        state1: Any,
        state: Any,
        action1: Any,
        action: Any,
        theta: Any,
        w: Any,
        v: Any,
        t: int,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """
        Derivatives at the transition's first state.

        Returns
        -------
        dQ_da : (m,)
            ``∇_a Q(s, a)``; constant in ``a`` for the compatible critic.
        dQ_dw : (Pw,)
            ``∇_w Q(s, a)``, the compatible features.
        dQ_dv : (Pv,)
            ``∇_v Q(s, a)``, the baseline features.
        dmu_dtheta : (Ptheta, m)
            ``∇_θ μ(s)``.
        """
        s = _tensor(state)
        a = _tensor(action).requires_grad_(True)
        w_ = _tensor(w).requires_grad_(True)
        v_ = _tensor(v).requires_grad_(True)
        theta_ = _tensor(theta)

        q = self._q(s, a, v_, w_, theta_)
        dQ_da, dQ_dw, dQ_dv = th.autograd.grad(q, (a, w_, v_))
        dmu = self._dmu_dtheta(s, theta_)
        return _numpy(dQ_da), _numpy(dQ_dw), _numpy(dQ_dv), _numpy(dmu)

    # ------------------------------------------------------------------
    # Closed forms
    # ------------------------------------------------------------------
    def episode_cost(self, theta: Any, x0: Any) -> float:
        """Noise-free cost ``Σ_t xᵀQx + uᵀRu`` of a rollout from ``x0``."""
        x, u = self.simulate(theta, x0)
        return float(sum(-self.reward(x[t], u[t], t) for t in range(self.horizon)))

    def optimal_gain(self, *, iters: int = 10_000, tol: float = 1e-12) -> np.ndarray:
        """
        Infinite-horizon LQR gain from Riccati value iteration.

        Returned with the sign convention ``u = K x`` of this class, shape (m, n).
        """
        P = np.array(self.Q, copy=True)
        A, B, Q, R = self.A, self.B, self.Q, self.R
        K = np.zeros((self.action_dim, self.state_dim), dtype=np.float64)
        for _ in range(int(iters)):
            K = -np.linalg.solve(R + B.T @ P @ B, B.T @ P @ A)
            P_next = Q + A.T @ P @ (A + B @ K)
            P_next = 0.5 * (P_next + P_next.T)
            if np.max(np.abs(P_next - P)) <= tol * max(1.0, float(np.max(np.abs(P)))):
                P = P_next
                break
            P = P_next
        return K

    def functions(self, exploration: Any) -> DPGFunctions:
        """Bundle the bound methods with an ``exploration`` callable."""
        return DPGFunctions(
            policy=self.policy,
            q_value=self.q_value,
            gradients=self.gradients,
            simulate=self.simulate,
            exploration=exploration,
            reward=self.reward,
        )


def _tensor(x: Any) -> th.Tensor:
    return th.as_tensor(_to_vector(x), dtype=th.float64)


def _numpy(x: th.Tensor) -> np.ndarray:
    return x.detach().cpu().numpy().astype(np.float64)


def make_linear_quadratic_functions(
    A: Any,
    B: Any,
    Q: Any,
    R: Any,
    *,
    horizon: int,
    noise: str = "gaussian",
    seed: Optional[int] = None,
    **noise_kwargs: Any,
) -> Tuple[LinearQuadraticSystem, DPGFunctions]:
    """
    Build a :class:`LinearQuadraticSystem` and its :class:`DPGFunctions`.

    Parameters
    ----------
    A, B, Q, R : array-like
        System and cost matrices.
    horizon : int
        Rollout length.
    noise : str, default="gaussian"
        Exploration kind for :func:`~dpg_control.common.noises.build_exploration`.
    seed : int, optional
        Seed of the exploration generator.
    **noise_kwargs : Any
        Extra arguments for the exploration builder (e.g. ``ou_theta``).

    Returns
    -------
    system, functions : LinearQuadraticSystem, DPGFunctions
    """
    system = LinearQuadraticSystem(A, B, Q, R, horizon)
    exploration = build_exploration(
        kind=noise,
        horizon=system.horizon,
        action_dim=system.action_dim,
        seed=seed,
        **noise_kwargs,
    )
    if exploration is None:
        raise ValueError("make_linear_quadratic_functions requires an exploration kind, got none")
    return system, system.functions(exploration)


def make_double_integrator(
    *,
    dt: float = 0.1,
    horizon: int = 50,
    noise: str = "gaussian",
    seed: Optional[int] = None,
) -> Tuple[LinearQuadraticSystem, DPGFunctions]:
    """Position/velocity double integrator with unit state cost and action cost 0.1."""
    A = np.array([[1.0, dt], [0.0, 1.0]])
    B = np.array([[0.5 * dt * dt], [dt]])
    Q = np.eye(2)
    R = 0.1 * np.eye(1)
    return make_linear_quadratic_functions(A, B, Q, R, horizon=horizon, noise=noise, seed=seed)


def double_integrator_functions(**kwargs: Any) -> DPGFunctions:
    """Collaborators of :func:`make_double_integrator`; usable as a ``"module:factory"`` entrypoint."""
    return make_double_integrator(**kwargs)[1]
