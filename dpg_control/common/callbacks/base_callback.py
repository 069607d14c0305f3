from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


# =============================================================================
# Callback base
# =============================================================================
class BaseCallback:
    """
    Base callback interface for the DPG training loop.

    Callbacks are observers invoked by :class:`DPGTrainer` at lifecycle
    events. They are used for console reporting, history recording,
    numerical guards and early stopping; the optimizer itself never prints.

    Design
    ------
    - Hooks are optional and are no-ops by default.
    - Each hook returns a boolean control signal:

      - ``True``  : continue training
      - ``False`` : request a stop after the current iteration

    - The ``trainer`` argument is duck-typed. Callbacks only rely on what
      they access, typically ``iteration``, ``cost``, ``best_cost``,
      ``config``, ``head`` and ``core``.

    Hook order within one iteration
    -------------------------------
    ``on_update`` -> (evaluation iterations) ``on_eval_end`` ->
    (divergent evaluations, after the rollback) ``on_divergence``.
    """

    def on_train_start(self, trainer: Any) -> bool:
        """
        Called once before the first iteration.

        Returns
        -------
        bool
            True to continue, False to skip training entirely.
        """
        return True

    def on_update(self, trainer: Any, metrics: Optional[Dict[str, Any]] = None) -> bool:
        """
        Called after every iteration's parameter update.

        Parameters
        ----------
        trainer:
            Trainer object (duck-typed).
        metrics:
            Rollout metrics from ``DPGCore.update_from_rollout`` (``cost``,
            ``horizon``, ``actor_updated``, ``norm_grad_theta``, critic
            diagnostics, ``stepreduce``).
        """
        return True

    def on_eval_end(self, trainer: Any, metrics: Dict[str, Any]) -> bool:
        """
        Called after every noise-free evaluation, before any rollback.

        Parameters
        ----------
        metrics:
            ``iteration``, ``cost``, ``best_cost``, ``improved``, ``diverged``
            plus the optimizer state summary (step sizes, noise scale, norms).
        """
        return True

    def on_divergence(self, trainer: Any, metrics: Dict[str, Any]) -> bool:
        """
        Called after a divergent evaluation triggered the rollback.

        ``metrics`` carries the reduced step sizes and noise scale.
        """
        return True

    def on_train_end(self, trainer: Any) -> bool:
        """
        Called once after training ends (normal completion or early stop).

        The return value is ignored; kept for symmetry.
        """
        return True

    def log(
        self,
        trainer: Any,
        metrics: Dict[str, Any],
        *,
        step: int,
        prefix: str = "",
    ) -> None:
        """
        Best-effort logger dispatch.

        Calls ``trainer.logger.log(metrics, step=step, prefix=prefix)`` if a
        logger is attached. Missing loggers and logging failures are ignored
        so that observers never crash training.
        """
        logger = getattr(trainer, "logger", None)
        if logger is None:
            return

        fn = getattr(logger, "log", None)
        if not callable(fn):
            return

        try:
            fn(metrics, step=step, prefix=prefix)
        except Exception:
            return


# =============================================================================
# Callback composition
# =============================================================================
class CallbackList(BaseCallback):
    """
    Compose and dispatch multiple callbacks in order (short-circuit).

    If any callback returns ``False``, dispatch stops immediately and the hook
    returns ``False`` to the trainer. ``on_train_end`` is always delivered to
    every callback.

    Parameters
    ----------
    callbacks:
        Sequence of callbacks. ``None`` entries are ignored.

    Notes
    -----
    Exceptions raised by contained callbacks propagate.
    """

    def __init__(self, callbacks: Sequence[Optional[BaseCallback]]) -> None:
        self.callbacks: List[BaseCallback] = [cb for cb in callbacks if cb is not None]

        for i, cb in enumerate(self.callbacks):
            if not isinstance(cb, BaseCallback):
                raise TypeError(f"callbacks[{i}] must be a BaseCallback, got: {type(cb).__name__}")

    def on_train_start(self, trainer: Any) -> bool:
        for cb in self.callbacks:
            if not cb.on_train_start(trainer):
                return False
        return True

    def on_update(self, trainer: Any, metrics: Optional[Dict[str, Any]] = None) -> bool:
        for cb in self.callbacks:
            if not cb.on_update(trainer, metrics):
                return False
        return True

    def on_eval_end(self, trainer: Any, metrics: Dict[str, Any]) -> bool:
        for cb in self.callbacks:
            if not cb.on_eval_end(trainer, metrics):
                return False
        return True

    def on_divergence(self, trainer: Any, metrics: Dict[str, Any]) -> bool:
        for cb in self.callbacks:
            if not cb.on_divergence(trainer, metrics):
                return False
        return True

    def on_train_end(self, trainer: Any) -> bool:
        ok = True
        for cb in self.callbacks:
            ok = bool(cb.on_train_end(trainer)) and ok
        return ok
