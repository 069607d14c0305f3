from __future__ import annotations

from typing import Any, Optional, Tuple

import numpy as np

from dpg_control.common.utils.common_utils import _require_scalar, _to_matrix, _to_numpy, _to_vector

from .types import DPGFunctions, DPGState


# =============================================================================
# DPGHead
# =============================================================================
class DPGHead:
    """
    DPG head (collaborators + live / target / best parameter snapshots).

    Responsibilities
    ----------------
    - Owns the caller's :class:`DPGFunctions` and exposes them with the
      parameter plumbing filled in (``act``, ``q_values``, ``gradients``...).
    - Holds three :class:`DPGState` snapshots:
        * ``state``  : live parameters being trained
        * ``target`` : slowly tracking copy used for TD targets
        * ``best``   : parameters with the lowest evaluation cost so far
    - Validates rollout output shapes.

    The update rules live in :class:`~dpg_control.baselines.dpg.core.DPGCore`;
    this class only evaluates functions and swaps snapshots.

    Parameters
    ----------
    functions : DPGFunctions
        Caller-supplied collaborators.
    state0 : DPGState
        Initial parameters. Target and best start as the same values.
    action_dim : int, optional
        If given, rollouts whose action trajectory has a different width
        are rejected.
    """

    def __init__(self, *, functions: DPGFunctions, state0: DPGState, action_dim: Optional[int] = None) -> None:
        if not isinstance(functions, DPGFunctions):
            raise TypeError(f"functions must be DPGFunctions, got {type(functions).__name__}")
        if not isinstance(state0, DPGState):
            raise TypeError(f"state0 must be DPGState, got {type(state0).__name__}")

        self.functions = functions
        self.action_dim = None if action_dim is None else int(action_dim)

        self.state: DPGState = state0
        self.target: DPGState = state0
        self.best: DPGState = state0

    # ---------------------------------------------------------------------
    # Function evaluation
    # ---------------------------------------------------------------------
    def act(self, s: Any, t: int, *, theta: Optional[np.ndarray] = None) -> np.ndarray:
        """Deterministic action ``μ(s, θ, t)`` with the live ``θ`` unless overridden."""
        th_ = self.state.theta if theta is None else theta
        return _to_vector(self.functions.policy(s, th_, int(t)), name="policy output")

    def q_values(self, s: Any, a: Any, t: int) -> float:
        """``Q(s, a)`` under the live parameters."""
        st = self.state
        return _require_scalar(self.functions.q_value(s, a, st.v, st.w, st.theta, int(t)), name="q_value output")

    def q_values_target(self, s: Any, a: Any, t: int) -> float:
        """``Q(s, a)`` under the target parameters."""
        tg = self.target
        return _require_scalar(self.functions.q_value(s, a, tg.v, tg.w, tg.theta, int(t)), name="q_value output")

    def reward(self, s: Any, a: Any, t: int) -> float:
        return _require_scalar(self.functions.reward(s, a, int(t)), name="reward output")

    def gradients(
        self,
        s1: Any,
        s: Any,
        a1: Any,
        a: Any,
        t: int,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """
        Evaluate the caller's gradient function at the live parameters.

        Returns
        -------
        dQ_da : np.ndarray, shape (m,)
        dQ_dw : np.ndarray, shape (Pw,)
        dQ_dv : np.ndarray, shape (Pv,)
        dmu_dtheta : np.ndarray, shape (Ptheta, m)
            A 1-D return of length ``Ptheta`` is read as a single action column.
        """
        st = self.state
        out = self.functions.gradients(s1, s, a1, a, st.theta, st.w, st.v, int(t))
        try:
            dQ_da, dQ_dw, dQ_dv, dmu_dtheta = out
        except (TypeError, ValueError) as e:
            raise ValueError("gradients must return a 4-tuple (dQ_da, dQ_dw, dQ_dv, dmu_dtheta)") from e

        dmu = np.asarray(_to_numpy(dmu_dtheta), dtype=np.float64)
        if dmu.ndim == 1:
            dmu = dmu.reshape(-1, 1)

        return (
            _to_vector(dQ_da, name="dQ_da"),
            _to_vector(dQ_dw, name="dQ_dw"),
            _to_vector(dQ_dv, name="dQ_dv"),
            dmu,
        )

    # ---------------------------------------------------------------------
    # Rollouts
    # ---------------------------------------------------------------------
    def rollout(self, x0: Any, noise: Any = None, *, theta: Optional[np.ndarray] = None) -> Tuple[np.ndarray, np.ndarray]:
        """
        Simulate one trajectory with the live actor (or ``theta``).

        ``noise=None`` calls ``simulate(theta, x0)`` with two arguments, which
        is the noise-free evaluation contract.

        Returns
        -------
        x : np.ndarray, shape (T, n)
        u : np.ndarray, shape (T, m)

        Raises
        ------
        ValueError
            If the trajectories are not 2-D, are empty, have different row
            counts, or ``u`` does not have ``action_dim`` columns.
        """
        th_ = self.state.theta if theta is None else theta
        if noise is None:
            out = self.functions.simulate(th_, x0)
        else:
            out = self.functions.simulate(th_, x0, noise)

        try:
            x, u = out
        except (TypeError, ValueError) as e:
            raise ValueError("simulate must return a pair (x, u)") from e

        x = _to_matrix(x, name="state trajectory x")
        u = _to_matrix(u, name="action trajectory u")
        if x.shape[0] != u.shape[0]:
            raise ValueError(f"x and u must have the same number of rows, got {x.shape[0]} and {u.shape[0]}")
        if self.action_dim is not None and u.shape[1] != self.action_dim:
            raise ValueError(f"u must have {self.action_dim} columns (action_dim), got {u.shape[1]}")
        return x, u

    # ---------------------------------------------------------------------
    # Snapshot management
    # ---------------------------------------------------------------------
    def set_state(self, state: DPGState) -> None:
        self.state = state

    def soft_update_target(self, tau: float) -> None:
        """``target <- tau * live + (1 - tau) * target``."""
        self.target = self.target.soft_update(self.state, tau)

    def snapshot_best(self) -> None:
        """Remember the live parameters as the best ones."""
        self.best = self.state

    def restore_best(self) -> None:
        """Reset the live parameters to the best snapshot (targets are left as they are)."""
        self.state = self.best
