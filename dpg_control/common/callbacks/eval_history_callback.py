from __future__ import annotations

from typing import Any, Dict, List

import numpy as np

from .base_callback import BaseCallback


class EvalHistoryCallback(BaseCallback):
    """
    Record the evaluation trace of a run in memory.

    Attributes
    ----------
    iterations : list of int
        Evaluation iterations (1-based).
    costs : list of float
        Noise-free evaluation costs.
    best_costs : list of float
        Running best cost after each evaluation.
    divergences : list of int
        Iterations at which a rollback happened.
    snapshots : list of DPGState
        Live parameters right after each evaluation (after any rollback),
        kept only when ``keep_snapshots=True``.
    """

    def __init__(self, *, keep_snapshots: bool = False) -> None:
        self.keep_snapshots = bool(keep_snapshots)
        self.iterations: List[int] = []
        self.costs: List[float] = []
        self.best_costs: List[float] = []
        self.divergences: List[int] = []
        self.snapshots: List[Any] = []
        self._pending_snapshot = False

    def on_eval_end(self, trainer: Any, metrics: Dict[str, Any]) -> bool:
        self.iterations.append(int(metrics["iteration"]))
        self.costs.append(float(metrics["cost"]))
        self.best_costs.append(float(metrics["best_cost"]))
        if self.keep_snapshots:
            if float(metrics.get("diverged", 0.0)) > 0.0:
                self._pending_snapshot = True
            else:
                self.snapshots.append(trainer.head.state)
        return True

    def on_divergence(self, trainer: Any, metrics: Dict[str, Any]) -> bool:
        self.divergences.append(int(metrics["iteration"]))
        if self._pending_snapshot:
            self.snapshots.append(trainer.head.state)
            self._pending_snapshot = False
        return True

    def as_arrays(self) -> Dict[str, np.ndarray]:
        return {
            "iterations": np.asarray(self.iterations, dtype=np.int64),
            "costs": np.asarray(self.costs, dtype=np.float64),
            "best_costs": np.asarray(self.best_costs, dtype=np.float64),
            "divergences": np.asarray(self.divergences, dtype=np.int64),
        }
