from __future__ import annotations

from typing import Optional, Union

import torch as th

from .noises import GaussianTraceNoise, OrnsteinUhlenbeckTraceNoise
from ..utils.common_utils import _normalize_kind


NoiseObj = Union[GaussianTraceNoise, OrnsteinUhlenbeckTraceNoise]

_SUPPORTED_KINDS = ("gaussian", "ou", "ornstein_uhlenbeck")


def build_exploration(
    *,
    kind: Optional[str],
    horizon: int,
    action_dim: int,
    seed: Optional[int] = None,
    ou_theta: float = 0.15,
    ou_dt: float = 1e-2,
    dtype: th.dtype = th.float64,
) -> Optional[NoiseObj]:
    """
    Construct an exploration-trace generator usable as ``DPGFunctions.exploration``.

    Parameters
    ----------
    kind : str or None
        ``"gaussian"``, ``"ou"`` / ``"ornstein_uhlenbeck"``. ``None`` or
        ``"none"`` returns None.
    horizon, action_dim : int
        Trace shape; ``horizon`` must match the rollout length the
        ``simulate`` collaborator expects.
    seed : int, optional
        Generator seed.
    ou_theta, ou_dt : float
        OU parameters (ignored for Gaussian).
    dtype : torch.dtype, default=torch.float64
        Sampling dtype.

    Raises
    ------
    ValueError
        If ``kind`` is unknown.
    """
    k = _normalize_kind(kind)
    if k is None:
        return None

    if k == "gaussian":
        return GaussianTraceNoise(horizon, action_dim, seed=seed, dtype=dtype)
    if k in ("ou", "ornstein_uhlenbeck"):
        return OrnsteinUhlenbeckTraceNoise(
            horizon, action_dim, theta=float(ou_theta), dt=float(ou_dt), seed=seed, dtype=dtype
        )

    raise ValueError(f"Unknown exploration kind: {kind!r}. Supported: {_SUPPORTED_KINDS}")
