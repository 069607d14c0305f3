from __future__ import annotations

import sys
from typing import Any, Dict, List, Optional, TextIO

import numpy as np
from tqdm import tqdm

from .base_callback import BaseCallback


def _r5(x: Any) -> float:
    return round(float(x), 5)


class ConsoleReportCallback(BaseCallback):
    """
    Human-readable status lines for a DPG run.

    Emits:

    - at start: a banner and the selected critic mode
    - at every evaluation::

        <i>, cost: <c> norm ∇Θ: <a> [norm ∇w: <b> norm ∇v: <c>]

      (critic norms only in gradient mode; a norm is the square root of the
      summed running squared-gradient estimate)
    - on divergence: a notice that step sizes were reduced
    - at the end: ``Done. Minimum cost: <min at eval iterations>, (<min overall>)``

    Lines go through ``tqdm.write`` so they interleave cleanly with a
    progress bar.

    Parameters
    ----------
    file:
        Output stream (default: ``sys.stdout`` at write time).

    Attributes
    ----------
    lines : list of str
        Every emitted line, in order.
    """

    def __init__(self, *, file: Optional[TextIO] = None) -> None:
        self.file = file
        self.lines: List[str] = []

    def _emit(self, msg: str) -> None:
        self.lines.append(msg)
        tqdm.write(msg, file=self.file if self.file is not None else sys.stdout)

    def on_train_start(self, trainer: Any) -> bool:
        mode = getattr(getattr(trainer, "config", None), "critic_update", None)
        self._emit("=== Deterministic Policy Gradient ===")
        self._emit(f"Training using {getattr(mode, 'value', mode)}")
        return True

    def on_eval_end(self, trainer: Any, metrics: Dict[str, Any]) -> bool:
        i = int(metrics.get("iteration", getattr(trainer, "iteration", 0)))
        msg = f"{i}, cost: {_r5(metrics['cost'])} norm ∇Θ: {_r5(metrics.get('norm_grad_theta', float('nan')))}"
        if "norm_grad_w" in metrics and "norm_grad_v" in metrics:
            msg += f" norm ∇w: {_r5(metrics['norm_grad_w'])} norm ∇v: {_r5(metrics['norm_grad_v'])}"
        self._emit(msg)
        return True

    def on_divergence(self, trainer: Any, metrics: Dict[str, Any]) -> bool:
        self._emit("Reducing stepsizes due to divergence")
        return True

    def on_train_end(self, trainer: Any) -> bool:
        cost = np.asarray(getattr(trainer, "cost", []), dtype=np.float64)
        if cost.size == 0:
            return True
        every = int(getattr(getattr(trainer, "config", None), "eval_interval", 100))
        self._emit(f"Done. Minimum cost: {float(np.min(cost[::every]))}, ({float(np.min(cost))})")
        return True
