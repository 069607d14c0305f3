from __future__ import annotations

import math
import zlib
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Sequence

import numpy as np
import torch as th

from .base_callback import BaseCallback
from ..utils.callback_utils import _infer_iteration


@dataclass(frozen=True)
class NonFiniteDetector:
    """
    Best-effort recursive detector for NaN/Inf values.

    Checks scalars, numpy arrays, torch tensors, dicts (values) and
    lists/tuples, recursing at most ``max_depth`` levels. Unknown objects
    count as finite.
    """

    max_depth: int = 3

    def __call__(self, x: Any, *, depth: int = 0) -> bool:
        if isinstance(x, np.ndarray):
            try:
                return bool((~np.isfinite(x)).any())
            except TypeError:
                return False

        if isinstance(x, th.Tensor):
            return bool((~th.isfinite(x)).any().item())

        try:
            return not math.isfinite(float(x))
        except (TypeError, ValueError):
            pass

        if depth >= self.max_depth:
            return False

        if isinstance(x, dict):
            return any(self(v, depth=depth + 1) for v in x.values())
        if isinstance(x, (list, tuple)):
            return any(self(v, depth=depth + 1) for v in x)
        return False


class NaNGuardCallback(BaseCallback):
    """
    Request a stop when NaN/Inf shows up in update metrics or live parameters.

    The loop recovers from *cost* divergence on its own (rollback at the next
    evaluation), but non-finite parameters poison every later rollout, so this
    tripwire stops the run immediately instead of waiting for evaluation.

    Parameters
    ----------
    keys:
        If provided, only these update-metric keys are inspected.
    check_params:
        Also inspect ``trainer.head.state`` (theta, w, v) after every update.
    log_prefix:
        Logger namespace of the ``nan_guard/*`` scalars.
    max_key_len:
        Logged key strings are truncated to this length.

    Attributes
    ----------
    triggered_at : int or None
        Iteration at which the guard fired.
    where : str or None
        ``"metrics"`` or ``"params"``.
    key : str or None
        Offending metric key or parameter block name.
    """

    def __init__(
        self,
        keys: Optional[Sequence[str]] = None,
        *,
        check_params: bool = True,
        log_prefix: str = "sys/",
        max_key_len: int = 120,
        max_depth: int = 3,
    ) -> None:
        self.keys = None if keys is None else tuple(str(k) for k in keys)
        self.check_params = bool(check_params)
        self.log_prefix = str(log_prefix)
        self.max_key_len = int(max_key_len)
        self._detect = NonFiniteDetector(max_depth=int(max_depth))

        self.triggered_at: Optional[int] = None
        self.where: Optional[str] = None
        self.key: Optional[str] = None

    @staticmethod
    def _key_code_crc32(k: Any) -> int:
        """Stable numeric id of a key (CRC32), for dashboards that only take scalars."""
        return int(zlib.crc32(str(k).encode("utf-8", errors="ignore")) & 0xFFFFFFFF)

    def _truncate_key(self, k: Any) -> str:
        s = str(k)
        if self.max_key_len <= 0:
            return ""
        return s if len(s) <= self.max_key_len else s[: self.max_key_len] + "..."

    def _iter_metric_items(self, metrics: Dict[str, Any]) -> Iterable:
        if self.keys is None:
            return metrics.items()
        return ((k, metrics[k]) for k in self.keys if k in metrics)

    def _trigger(self, trainer: Any, *, where: str, key: str, value: Any) -> bool:
        step = _infer_iteration(trainer)
        self.triggered_at = step
        self.where = where
        self.key = self._truncate_key(key)

        payload: Dict[str, Any] = {
            "nan_guard/triggered": 1.0,
            "nan_guard/where_params": 1.0 if where == "params" else 0.0,
            "nan_guard/key_code": float(self._key_code_crc32(key)),
        }
        try:
            payload["nan_guard/value"] = float(value)
        except (TypeError, ValueError):
            pass
        self.log(trainer, payload, step=step, prefix=self.log_prefix)
        return False

    def on_update(self, trainer: Any, metrics: Optional[Dict[str, Any]] = None) -> bool:
        if isinstance(metrics, dict):
            for k, v in self._iter_metric_items(metrics):
                if self._detect(v):
                    return self._trigger(trainer, where="metrics", key=k, value=v)

        if self.check_params:
            head = getattr(trainer, "head", None)
            state = getattr(head, "state", None)
            if state is not None:
                for name in ("theta", "w", "v"):
                    if self._detect(getattr(state, name)):
                        return self._trigger(trainer, where="params", key=name, value=None)

        return True
