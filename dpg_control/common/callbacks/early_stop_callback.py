from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from .base_callback import BaseCallback
from ..utils.callback_utils import _infer_iteration, _to_finite_float


class EarlyStopCallback(BaseCallback):
    """
    Early stopping on evaluation-cost stagnation.

    Watches ``metrics[metric_key]`` at every :meth:`on_eval_end`. After
    ``patience`` consecutive evaluations without improvement it returns
    ``False``, and the trainer stops after the current iteration.

    Parameters
    ----------
    metric_key:
        Key in the evaluation metrics, ``"cost"`` by default.
    patience:
        Number of consecutive non-improving evaluations tolerated (>= 1).
    min_delta:
        Minimum improvement magnitude (>= 0).
    mode:
        ``"min"`` (default, lower cost is better) or ``"max"``.
    log_prefix:
        Logger namespace of the ``early_stop/*`` scalars.

    Notes
    -----
    - Non-finite metric values are ignored (no state change); divergence
      handling is the trainer's job.
    - An early stop leaves the remaining cost-history entries at 0.
    """

    def __init__(
        self,
        metric_key: str = "cost",
        patience: int = 10,
        min_delta: float = 0.0,
        mode: Literal["max", "min"] = "min",
        *,
        log_prefix: str = "sys/",
    ) -> None:
        self.metric_key = str(metric_key)
        self.patience = int(patience)
        self.min_delta = float(min_delta)
        self.mode: Literal["max", "min"] = mode
        self.log_prefix = str(log_prefix)

        if self.patience < 1:
            raise ValueError(f"patience must be >= 1, got {self.patience}")
        if self.min_delta < 0.0:
            raise ValueError(f"min_delta must be >= 0, got {self.min_delta}")
        if self.mode not in ("max", "min"):
            raise ValueError(f"mode must be 'max' or 'min', got {self.mode}")

        self.best: Optional[float] = None
        self.bad_count: int = 0
        self.last: Optional[float] = None
        self.triggered: bool = False

    def _is_improved(self, val: float, best: float) -> bool:
        if self.mode == "max":
            return val > (best + self.min_delta)
        return val < (best - self.min_delta)

    def on_eval_end(self, trainer: Any, metrics: Dict[str, Any]) -> bool:
        if not isinstance(metrics, dict):
            return True

        val = _to_finite_float(metrics.get(self.metric_key, None))
        if val is None:
            return True

        self.last = val

        if self.best is None or self._is_improved(val, self.best):
            self.best = val
            self.bad_count = 0
            return True

        self.bad_count += 1
        if self.bad_count < self.patience:
            return True

        self.triggered = True
        self.log(
            trainer,
            {
                "early_stop/triggered": 1.0,
                "early_stop/best": float(self.best),
                "early_stop/last": float(val),
                "early_stop/bad_count": float(self.bad_count),
                "early_stop/patience": float(self.patience),
            },
            step=_infer_iteration(trainer),
            prefix=self.log_prefix,
        )
        return False
