from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

import math

import numpy as np

from ..utils.callback_utils import IntervalGate
from ..utils.common_utils import _to_vector
from ..utils.train_utils import _make_pbar, _make_rng, _maybe_call, _set_random_seed

from .evaluator import Evaluator
from .train_loop import train_dpg

if TYPE_CHECKING:  # pragma: no cover
    from dpg_control.baselines.dpg.types import DPGResult


class DPGTrainer:
    """
    Trainer for the DPG optimizer.

    This class is a thin orchestrator: it owns the run state (cost history,
    best cost, iteration counter, RNG) and delegates

      - the iteration loop to ``train_loop.train_dpg``
      - parameter updates to ``core`` (:class:`DPGCore`)
      - noise-free evaluation to :class:`Evaluator`

    Parameters
    ----------
    config : DPGConfig
        Validated hyperparameters.
    functions : DPGFunctions
        Caller collaborators.
    head : DPGHead
        Snapshot holder.
    core : DPGCore
        Update engine.
    x0 : array-like, shape (n,)
        Nominal initial state.
    seed : int, optional
        Seed of the start-state perturbation generator. When given, the
        global Python/NumPy/torch RNGs are seeded too at the start of
        :meth:`train`. None draws fresh entropy.
    rng : numpy.random.Generator, optional
        Explicit generator (takes precedence over ``seed``).
    callbacks : Any, optional
        Callback or :class:`CallbackList`.
    logger : Any, optional
        :class:`Logger`-like object with ``log(metrics, step=, prefix=)``.
    pool : object with ``starmap``, optional
        Forwarded to the evaluator's cost computation.
    show_progress : bool, default=False
        Render a tqdm progress bar.

    Callback contract
    -----------------
    callbacks may provide:
      - on_train_start(trainer) -> bool
      - on_update(trainer, metrics=...) -> bool
      - on_eval_end(trainer, metrics=...) -> bool
      - on_divergence(trainer, metrics=...) -> bool
      - on_train_end(trainer) -> bool
    """

    def __init__(
        self,
        *,
        config: Any,
        functions: Any,
        head: Any,
        core: Any,
        x0: Any,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
        callbacks: Optional[Any] = None,
        logger: Optional[Any] = None,
        pool: Optional[Any] = None,
        show_progress: bool = False,
    ) -> None:
        self.config = config
        self.functions = functions
        self.head = head
        self.core = core
        self.callbacks = callbacks
        self.logger = logger
        self.show_progress = bool(show_progress)

        self.x0 = _to_vector(x0, name="x0")
        if not np.all(np.isfinite(self.x0)):
            raise ValueError("x0 must be finite")

        self.seed = seed
        self.rng = rng if rng is not None else _make_rng(seed)

        self.evaluator = Evaluator(head=head, reward=functions.reward, pool=pool)
        self.eval_gate = IntervalGate(every=int(config.eval_interval), offset=1)

        # ---- run state ----
        self.cost = np.zeros(int(config.iters), dtype=np.float64)
        self.best_cost = math.inf
        self.iteration = 0
        self.n_divergences = 0
        self._stop_training = False

    def __enter__(self) -> "DPGTrainer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None

    def request_stop(self) -> None:
        self._stop_training = True

    # =============================================================================
    # Training entrypoint
    # =============================================================================
    def train(self) -> "DPGResult":
        """
        Run all iterations (or until a callback requests a stop).

        Returns
        -------
        result : DPGResult
            Cost history and the best snapshot.
        """
        if self.seed is not None:
            _set_random_seed(int(self.seed))

        if self.logger is not None:
            _maybe_call(self.logger, "bind_trainer", self)
            _maybe_call(self.logger, "dump_config", self.config.to_dict())

        if self.callbacks is not None:
            if _maybe_call(self.callbacks, "on_train_start", self) is False:
                return self.result()

        pbar = _make_pbar(total=int(self.config.iters), enabled=self.show_progress, unit="iter")
        try:
            train_dpg(self, pbar)
        finally:
            pbar.close()
            _maybe_call(self.callbacks, "on_train_end", self)
            if self.logger is not None:
                _maybe_call(self.logger, "flush")

        return self.result()

    def result(self) -> "DPGResult":
        """Snapshot of the outputs: a copy of the cost history and the best parameters."""
        from dpg_control.baselines.dpg.types import DPGResult

        best = self.head.best
        return DPGResult(
            cost=self.cost.copy(),
            theta=np.array(best.theta, copy=True),
            w=np.array(best.w, copy=True),
            v=np.array(best.v, copy=True),
        )
