from __future__ import annotations

from typing import Any, Callable, List, Optional, Tuple

import numpy as np

from ..utils.common_utils import _require_scalar, _to_matrix


def episode_cost(
    x: Any,
    u: Any,
    reward: Callable[[np.ndarray, np.ndarray, int], Any],
    *,
    pool: Optional[Any] = None,
) -> float:
    """
    Cost of a trajectory: the negated sum of per-step rewards.

    ::

        J = - sum_{t=0}^{T-1} reward(x[t], u[t], t)

    Parameters
    ----------
    x : array-like, shape (T, n)
        State trajectory. A 1-D array is read as one state per row.
    u : array-like, shape (T, m)
        Action trajectory.
    reward : callable
        ``reward(state, action, t) -> float`` with 0-based ``t``.
    pool : object with ``starmap``, optional
        When given, rewards are computed through ``pool.starmap`` (e.g.
        ``multiprocessing.pool.ThreadPool`` or ``ray.util.multiprocessing.Pool``)
        and summed here. The result equals the sequential sum up to
        floating-point reassociation.

    Returns
    -------
    cost : float

    Raises
    ------
    ValueError
        If ``x`` and ``u`` have different numbers of rows or a reward is not
        scalar-like. Errors raised by ``reward`` propagate.
    """
    xs = _to_matrix(x, name="x")
    us = _to_matrix(u, name="u")
    if xs.shape[0] != us.shape[0]:
        raise ValueError(f"x and u must have the same number of rows, got {xs.shape[0]} and {us.shape[0]}")

    args: List[Tuple[np.ndarray, np.ndarray, int]] = [(xs[t], us[t], t) for t in range(xs.shape[0])]

    if pool is None:
        rewards = [reward(s, a, t) for s, a, t in args]
    else:
        rewards = list(pool.starmap(reward, args))

    return -float(sum(_require_scalar(r, name="reward output") for r in rewards))


class Evaluator:
    """
    Noise-free evaluation of the live actor.

    Parameters
    ----------
    head : DPGHead
        Head whose ``rollout(x0)`` simulates without noise.
    reward : callable
        Reward function used for the cost.
    pool : object with ``starmap``, optional
        Forwarded to :func:`episode_cost`.

    Notes
    -----
    The evaluator never changes parameters; the trainer decides what to do
    with the returned cost (snapshot, rollback).
    """

    def __init__(self, *, head: Any, reward: Callable[..., Any], pool: Optional[Any] = None) -> None:
        self.head = head
        self.reward = reward
        self.pool = pool
        self.n_evals = 0

    def evaluate(self, x0: Any) -> float:
        x, u = self.head.rollout(x0)
        self.n_evals += 1
        return episode_cost(x, u, self.reward, pool=self.pool)
