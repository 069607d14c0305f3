from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional
import math


# =============================================================================
# Safe iteration accessors (trainer-agnostic)
# =============================================================================
def _safe_first_int_attr(trainer: Any, keys: Iterable[str], default: int = 0) -> int:
    """
    Read the first available integer-like attribute from a prioritized key list.

    Parameters
    ----------
    trainer : Any
        Trainer-like object.
    keys : Iterable[str]
        Attribute names tried in order. The first that exists, is not None and
        is int-castable wins.
    default : int, default=0
        Fallback value.

    Returns
    -------
    out : int
        First int-cast attribute value, otherwise ``default``.
    """
    for k in keys:
        try:
            v = getattr(trainer, k, None)
            if v is None:
                continue
            return int(v)
        except Exception:
            continue
    return int(default)


def _infer_iteration(trainer: Any, default: int = 0) -> int:
    """
    Best-effort current iteration of a trainer-like object.

    ``DPGTrainer`` exposes ``iteration``; the other names cover stub trainers
    used in tests.
    """
    return _safe_first_int_attr(trainer, ("iteration", "iter", "step", "global_step"), default=default)


# =============================================================================
# Scheduling gate
# =============================================================================
@dataclass
class IntervalGate:
    """
    Interval trigger on a monotonically increasing counter.

    Parameters
    ----------
    every : int
        Trigger interval. ``every <= 0`` disables the gate.
    offset : int, default=0
        The gate fires when ``(counter - offset) % every == 0``. Evaluation
        uses ``offset=1`` so that iterations 1, 1 + every, ... trigger.

    Examples
    --------
    >>> gate = IntervalGate(every=100, offset=1)
    >>> [gate.ready(i) for i in (1, 2, 100, 101)]
    [True, False, False, True]
    """
    every: int
    offset: int = 0

    def ready(self, counter: int) -> bool:
        e = int(self.every)
        if e <= 0:
            return False
        return ((int(counter) - int(self.offset)) % e) == 0


# =============================================================================
# Scalar coercion utilities (metrics/logging)
# =============================================================================
def _to_finite_float(x: Any) -> Optional[float]:
    """
    Convert an object to a finite Python float, else return None.

    Notes
    -----
    Accepts anything implementing ``__float__`` (numpy/torch scalars included).
    NaN and Inf map to None.
    """
    try:
        v = float(x)
        if math.isfinite(v):
            return v
    except Exception:
        pass
    return None


def _coerce_scalar_mapping(m: Mapping[str, Any]) -> Dict[str, float]:
    """Keep only the entries of ``m`` that convert to finite floats."""
    out: Dict[str, float] = {}
    for k, v in m.items():
        fv = _to_finite_float(v)
        if fv is not None:
            out[str(k)] = fv
    return out
