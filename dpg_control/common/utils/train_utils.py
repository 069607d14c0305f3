from __future__ import annotations

from typing import Any, Optional

import random

import numpy as np
import torch as th
from tqdm import tqdm


# =============================================================================
# Progress bar
# =============================================================================
def _make_pbar(*, total: int, enabled: bool = True, **kwargs: Any) -> tqdm:
    """
    Create the iteration progress bar.

    Parameters
    ----------
    total : int
        Number of training iterations.
    enabled : bool, default=True
        When False the bar is created with ``disable=True``; it keeps the
        tqdm interface but renders nothing.
    **kwargs : Any
        Forwarded to ``tqdm(...)``.
    """
    kwargs.setdefault("desc", "dpg")
    kwargs.setdefault("dynamic_ncols", True)
    kwargs.setdefault("leave", False)
    return tqdm(total=int(total), disable=not bool(enabled), **kwargs)


def _maybe_call(obj: Any, method: str, *args: Any, **kwargs: Any) -> Any:
    """
    Call ``obj.<method>(*args, **kwargs)`` if that attribute is callable.

    Exceptions raised by the method propagate.
    """
    fn = getattr(obj, method, None)
    if callable(fn):
        return fn(*args, **kwargs)
    return None


# =============================================================================
# RNG seeding
# =============================================================================
def _set_random_seed(seed: int, *, deterministic: bool = False) -> None:
    """
    Seed Python/NumPy/PyTorch global RNGs.

    The DPG loop itself draws start-state perturbations from its own
    ``numpy.random.Generator``; this helper covers collaborators that sample
    from global state (e.g. a user-written ``exploration``).
    """
    seed = int(seed)

    random.seed(seed)
    np.random.seed(seed)
    th.manual_seed(seed)

    if deterministic:
        try:
            th.use_deterministic_algorithms(True)
        except Exception:
            pass


def _make_rng(seed: Optional[int]) -> np.random.Generator:
    """Fresh ``numpy.random.Generator`` (entropy-seeded when ``seed`` is None)."""
    return np.random.default_rng(None if seed is None else int(seed))
