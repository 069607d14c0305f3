from __future__ import annotations

from typing import Any, Tuple

import math

import numpy as np


# Smallest admissible magnitude of an innovation variance / RLS denominator.
MIN_DENOMINATOR: float = 1e-12


class NumericalInstabilityError(FloatingPointError):
    """
    Raised when a recursive estimator hits a degenerate denominator.

    The RLS normalizer ``λ + φᵀPφ`` and the Kalman innovation variance
    ``φᵀPφ + R2`` must be finite and bounded away from zero; otherwise the
    gain is undefined and the update is refused.
    """


def _check_denominator(value: float, *, what: str) -> float:
    """
    Return ``value`` as float, raising if it is non-finite or near zero.

    Raises
    ------
    NumericalInstabilityError
        If ``|value| <= MIN_DENOMINATOR`` or ``value`` is NaN/Inf.
    """
    v = float(value)
    if (not math.isfinite(v)) or abs(v) <= MIN_DENOMINATOR:
        raise NumericalInstabilityError(f"{what} is degenerate: {v!r}")
    return v


def _as_estimator_inputs(p: Any, phi: Any, P: Any) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Coerce ``(p, phi, P)`` to float64 and check their shapes agree.

    Parameters
    ----------
    p : array-like, shape (D,)
        Current parameter estimate.
    phi : array-like, shape (D,)
        Regressor (observation vector).
    P : array-like, shape (D, D)
        Covariance matrix.

    Returns
    -------
    p, phi, P : np.ndarray
        Fresh float64 copies; the caller's arrays are never mutated.

    Raises
    ------
    ValueError
        On any shape disagreement.
    """
    p_arr = np.array(p, dtype=np.float64, copy=True).reshape(-1)
    phi_arr = np.array(phi, dtype=np.float64, copy=True).reshape(-1)
    P_arr = np.array(P, dtype=np.float64, copy=True)

    d = p_arr.shape[0]
    if phi_arr.shape != (d,):
        raise ValueError(f"phi must have shape ({d},), got {phi_arr.shape}")
    if P_arr.shape != (d, d):
        raise ValueError(f"P must have shape ({d}, {d}), got {P_arr.shape}")
    return p_arr, phi_arr, P_arr
