from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence, Union

from dpg_control.common.callbacks import BaseCallback, CallbackList, ConsoleReportCallback
from dpg_control.common.trainers.trainer import DPGTrainer

from .config import DPGConfig
from .core import DPGCore
from .head import DPGHead
from .types import DPGFunctions, DPGResult, DPGState


def _as_config(config: Union[DPGConfig, Mapping[str, Any]]) -> DPGConfig:
    if isinstance(config, DPGConfig):
        return config
    if isinstance(config, Mapping):
        return DPGConfig(**dict(config))
    raise TypeError(f"config must be DPGConfig or a mapping, got {type(config).__name__}")


def _as_state(state0: Any) -> DPGState:
    if isinstance(state0, DPGState):
        return state0
    try:
        theta, w, v = state0
    except (TypeError, ValueError) as e:
        raise TypeError("state0 must be DPGState or a (theta, w, v) triple") from e
    return DPGState(theta=theta, w=w, v=v)


def _as_callbacks(callbacks: Any, *, verbose: bool) -> Optional[CallbackList]:
    items: list = []
    if verbose:
        items.append(ConsoleReportCallback())
    if callbacks is None:
        pass
    elif isinstance(callbacks, CallbackList):
        items.extend(callbacks.callbacks)
    elif isinstance(callbacks, BaseCallback):
        items.append(callbacks)
    elif isinstance(callbacks, Sequence):
        items.extend(callbacks)
    else:
        raise TypeError(f"callbacks must be a BaseCallback or a sequence of them, got {type(callbacks).__name__}")
    return CallbackList(items) if items else None


def dpg(
    config: Union[DPGConfig, Mapping[str, Any]],
    functions: DPGFunctions,
    state0: Union[DPGState, Sequence[Any]],
    x0: Any,
    *,
    seed: Optional[int] = None,
    callbacks: Optional[Any] = None,
    logger: Optional[Any] = None,
    verbose: bool = True,
    show_progress: bool = False,
    pool: Optional[Any] = None,
) -> DPGResult:
    """
    Optimize a deterministic policy with an actor-critic DPG loop.

    Each iteration perturbs the start state, rolls out an exploratory
    trajectory, accumulates the deterministic policy gradient, updates the
    critic (TD gradient, RLS or Kalman filter), moves the target copies and,
    every ``eval_interval`` iterations, evaluates the noise-free cost. An
    evaluation that is worse than ``divergence_ratio`` times the best cost
    rolls the live parameters back to the best snapshot and shrinks the step
    sizes and exploration.

    Parameters
    ----------
    config : DPGConfig or mapping
        Hyperparameters; a mapping is passed to ``DPGConfig(**config)`` and
        therefore validated before any iteration.
    functions : DPGFunctions
        Caller collaborators (policy, critic, gradients, simulator,
        exploration, reward).
    state0 : DPGState or (theta, w, v)
        Initial parameters.
    x0 : array-like, shape (n,)
        Nominal initial state.
    seed : int, optional
        Seed of the start-state perturbations.
    callbacks : BaseCallback, CallbackList or sequence, optional
        Observers of the run. A hook returning False stops training after
        the current iteration.
    logger : Logger, optional
        Receives ``train/*`` and ``eval/*`` metrics and the config.
    verbose : bool, default=True
        Prepend a :class:`ConsoleReportCallback` (banner, evaluation lines,
        divergence notices, final summary).
    show_progress : bool, default=False
        Render a tqdm progress bar.
    pool : object with ``starmap``, optional
        Parallel map used for the per-step reward sum of evaluations.

    Returns
    -------
    result : DPGResult
        ``(cost, theta, w, v)``: the per-iteration cost history (evaluation
        entries overwritten by the noise-free cost) and the best parameters.

    Raises
    ------
    ValueError
        Invalid configuration, initial state or trajectory shapes.
    TypeError
        Non-callable collaborators or malformed arguments.
    NumericalInstabilityError
        A recursive critic update hit a degenerate innovation variance.
    """
    cfg = _as_config(config)
    if not isinstance(functions, DPGFunctions):
        raise TypeError(f"functions must be DPGFunctions, got {type(functions).__name__}")
    state = _as_state(state0)

    head = DPGHead(functions=functions, state0=state, action_dim=cfg.action_dim)
    core = DPGCore(head=head, config=cfg)

    trainer = DPGTrainer(
        config=cfg,
        functions=functions,
        head=head,
        core=core,
        x0=x0,
        seed=seed,
        callbacks=_as_callbacks(callbacks, verbose=bool(verbose)),
        logger=logger,
        pool=pool,
        show_progress=bool(show_progress),
    )
    return trainer.train()
