from __future__ import annotations

from typing import Any, Optional

import math

import numpy as np
import torch as th


# =============================================================================
# NumPy / Torch conversion utilities
# =============================================================================
def _to_numpy(x: Any, *, ensure_1d: bool = False) -> np.ndarray:
    """
    Convert an input to a NumPy array on CPU.

    Parameters
    ----------
    x : Any
        Input object. Common cases include:
        - ``np.ndarray``
        - ``torch.Tensor``
        - Python scalars, lists, tuples
    ensure_1d : bool, default=False
        If True and the resulting array is a scalar (0-d), it is converted to a
        1D array of shape (1,). Collaborators frequently return a bare float
        for one-dimensional actions.

    Returns
    -------
    arr : np.ndarray
        NumPy array on CPU. Dtype is not forced.

    Notes
    -----
    - If ``x`` is a ``torch.Tensor``, it is detached and moved to CPU before
      converting via ``.numpy()``.
    - For non-array inputs, ``np.asarray`` is used (may create a view).
    """
    if isinstance(x, np.ndarray):
        arr = x
    elif th.is_tensor(x):
        arr = x.detach().cpu().numpy()
    else:
        arr = np.asarray(x)

    if ensure_1d and arr.shape == ():
        arr = np.asarray([arr])

    return arr


def _to_vector(x: Any, *, name: str = "x", copy: bool = True) -> np.ndarray:
    """
    Convert an input to a real-valued float64 vector of shape (D,).

    Parameters
    ----------
    x : Any
        Vector-like input (array, tensor, list) or a scalar.
    name : str, default="x"
        Name used in error messages.
    copy : bool, default=True
        If True, always return a fresh array that does not alias ``x``.

    Returns
    -------
    vec : np.ndarray, shape (D,)
        Float64 vector. Scalars are promoted to shape (1,).

    Raises
    ------
    ValueError
        If the input is complex-valued or has more than one non-singleton axis.
    """
    arr = _to_numpy(x, ensure_1d=True)
    if np.iscomplexobj(arr):
        raise ValueError(f"{name} must be real-valued, got dtype={arr.dtype}")

    if arr.ndim != 1:
        squeezed = np.squeeze(arr)
        if squeezed.ndim > 1:
            raise ValueError(f"{name} must be a vector, got shape={arr.shape}")
        arr = np.atleast_1d(squeezed)

    return np.array(arr, dtype=np.float64, copy=True) if copy else arr.astype(np.float64, copy=False)


def _to_matrix(x: Any, *, name: str = "x") -> np.ndarray:
    """
    Convert an input to a float64 array with exactly two dimensions.

    A 1-D input of length T is interpreted as T rows of one column, which is
    how scalar-state trajectories are usually returned.

    Raises
    ------
    ValueError
        If the input has more than two dimensions or is empty.
    """
    arr = np.asarray(_to_numpy(x), dtype=np.float64)
    if arr.ndim == 1:
        arr = arr.reshape(-1, 1)
    if arr.ndim != 2:
        raise ValueError(f"{name} must be a 2-D array (T, dim), got shape={arr.shape}")
    if arr.shape[0] < 1:
        raise ValueError(f"{name} must contain at least one row, got shape={arr.shape}")
    return arr


def _to_scalar(x: Any) -> Optional[float]:
    """
    Convert a scalar-like input to a Python float.

    Parameters
    ----------
    x : Any
        Input value.

    Returns
    -------
    s : float or None
        Python float if convertible, else None.

    Accepted inputs
    ---------------
    - Python scalars: int/float/bool
    - NumPy scalars (np.number)
    - 0-d NumPy arrays or 1-element arrays
    - 0-d torch tensors or 1-element tensors

    Notes
    -----
    This is intentionally conservative: tensors/arrays with more than one element
    return None to avoid silently discarding data.
    """
    if th.is_tensor(x):
        if x.numel() == 1:
            return float(x.detach().cpu().item())
        return None

    if isinstance(x, (bool, int, float, np.number)):
        return float(x)

    try:
        arr = np.asarray(x)
        if arr.shape == () or arr.size == 1:
            return float(arr.reshape(-1)[0])
    except Exception:
        return None

    return None


def _require_scalar(x: Any, *, name: str) -> float:
    """
    Convert a collaborator output to a float, raising when it is not scalar-like.

    Raises
    ------
    ValueError
        If ``x`` holds more than one element or cannot be converted.
    """
    val = _to_scalar(x)
    if val is None:
        raise ValueError(f"{name} must be scalar-like, got {type(x).__name__} with shape {np.shape(x)}")
    return val


def _readonly(arr: np.ndarray) -> np.ndarray:
    """Mark an array as read-only and return it."""
    arr.setflags(write=False)
    return arr


def _sqrt_sum(x: np.ndarray) -> float:
    """
    Square root of the sum of entries.

    Used to summarize running squared-gradient estimates as a single norm.
    """
    return float(math.sqrt(max(float(np.sum(x)), 0.0)))


# =============================================================================
# Kind-string normalization
# =============================================================================
def _normalize_kind(kind: Optional[str]) -> Optional[str]:
    """
    Normalize a "kind" string into a canonical snake_case identifier.

    Parameters
    ----------
    kind : str or None
        Input kind specifier.

    Returns
    -------
    norm : str or None
        Normalized kind string, or None if `kind` is None/empty/"none"/"null".

    Notes
    -----
    Normalization steps:
      1) strip and lowercase
      2) map {"", "none", "null"} -> None
      3) unify separators: "-" and whitespace -> "_"
      4) collapse repeated underscores

    Examples
    --------
    >>> _normalize_kind(" Ornstein-Uhlenbeck ")
    'ornstein_uhlenbeck'
    >>> _normalize_kind("Recursive Least-Squares")
    'recursive_least_squares'
    """
    if kind is None:
        return None

    s = str(kind).strip().lower()
    if s in ("", "none", "null"):
        return None

    s = s.replace("-", "_").replace(" ", "_")
    while "__" in s:
        s = s.replace("__", "_")

    return s
