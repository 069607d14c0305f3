from __future__ import annotations

from typing import Any, Tuple

import numpy as np
import torch as th


# =============================================================================
# Normalization helpers
# =============================================================================
def _normalize_trace_shape(horizon: int, action_dim: int) -> Tuple[int, int]:
    """
    Validate a noise-trace shape ``(horizon, action_dim)``.

    Raises
    ------
    ValueError
        If either dimension is not a positive integer.

    Examples
    --------
    >>> _normalize_trace_shape(50, 2)
    (50, 2)
    """
    shape = (horizon, action_dim)
    if any((not isinstance(s, (int, np.integer))) or int(s) <= 0 for s in shape):
        raise ValueError(f"horizon and action_dim must be positive ints, got {shape}")
    return int(horizon), int(action_dim)


def _scale_factor(noise_scale: Any, dim: int, *, dtype: th.dtype = th.float64) -> th.Tensor:
    """
    Convert a noise covariance into a lower-triangular factor ``L`` with ``L Lᵀ = Σ``.

    Parameters
    ----------
    noise_scale : float or array-like of shape (dim, dim)
        Exploration covariance. A scalar ``c`` means ``Σ = c·I``; a matrix is
        used as ``Σ`` directly and must be symmetric positive semi-definite.
    dim : int
        Action dimension.
    dtype : torch.dtype, default=torch.float64
        Dtype of the returned factor.

    Returns
    -------
    L : torch.Tensor, shape (dim, dim)
        Cholesky-like factor. For a scalar covariance this is ``√c·I``.

    Raises
    ------
    ValueError
        If the scale is negative, non-finite, or a matrix of the wrong shape.

    Notes
    -----
    Semi-definite matrices (e.g. after shrinking a rank-deficient covariance)
    are factored through an eigen-decomposition with negative round-off
    eigenvalues clipped to zero, since ``torch.linalg.cholesky`` requires
    strict positive definiteness.
    """
    arr = np.asarray(noise_scale, dtype=np.float64)

    if arr.ndim == 0 or arr.size == 1:
        c = float(arr.reshape(-1)[0])
        if not np.isfinite(c) or c < 0.0:
            raise ValueError(f"noise_scale must be a finite scalar >= 0, got {c}")
        return float(np.sqrt(c)) * th.eye(int(dim), dtype=dtype)

    if arr.shape != (int(dim), int(dim)):
        raise ValueError(f"noise_scale matrix must have shape ({dim}, {dim}), got {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise ValueError("noise_scale matrix must be finite")

    sigma = th.as_tensor(0.5 * (arr + arr.T), dtype=dtype)
    L, info = th.linalg.cholesky_ex(sigma)
    if int(info) == 0:
        return L

    evals, evecs = th.linalg.eigh(sigma)
    if float(evals.min()) < -1e-9 * max(1.0, float(evals.abs().max())):
        raise ValueError("noise_scale matrix must be positive semi-definite")
    return evecs @ th.diag(th.sqrt(th.clamp(evals, min=0.0)))
