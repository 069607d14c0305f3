from __future__ import annotations

from typing import Any, Tuple

import numpy as np

from ..utils.estimator_utils import _as_estimator_inputs, _check_denominator


def kalman_update(
    R1: Any,
    R2: float,
    R12: Any,
    p: Any,
    y: float,
    phi: Any,
    P: Any,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    One Kalman-filter step for a random-walk parameter model.

    Model::

        p_{k+1} = p_k + e_k,        cov(e) = R1
        y_k     = φ_kᵀ p_k + n_k,   var(n) = R2,  cov(e, n) = R12

    Update::

        S  = φᵀ P φ + R2
        K  = (P φ + R12) / S
        p' = p + K (y − φᵀ p)
        P' = P + R1 − K S Kᵀ

    Parameters
    ----------
    R1 : array-like, shape (D, D)
        Process-noise covariance.
    R2 : float
        Observation-noise variance.
    R12 : array-like, shape (D,)
        Cross covariance between process and observation noise.
    p : array-like, shape (D,)
        Current parameter estimate.
    y : float
        Scalar observation.
    phi : array-like, shape (D,)
        Observation vector.
    P : array-like, shape (D, D)
        Current covariance.

    Returns
    -------
    p_new : np.ndarray, shape (D,)
    P_new : np.ndarray, shape (D, D)
        Same output contract as :func:`rls_update`.

    Raises
    ------
    ValueError
        On shape mismatches.
    NumericalInstabilityError
        If the innovation variance ``S`` is non-finite or numerically zero.

    Notes
    -----
    - ``P'`` is symmetrized as ``(P' + P'ᵀ)/2`` to stop round-off asymmetry
      from accumulating over long runs.
    - With ``R1 = 0``, ``R12 = 0`` and ``R2 = 1`` this coincides with
      :func:`rls_update` at ``λ = 1``.
    """
    p, phi, P = _as_estimator_inputs(p, phi, P)
    d = p.shape[0]

    R1_arr = np.asarray(R1, dtype=np.float64)
    if R1_arr.shape != (d, d):
        raise ValueError(f"R1 must have shape ({d}, {d}), got {R1_arr.shape}")
    R12_arr = np.asarray(R12, dtype=np.float64).reshape(-1)
    if R12_arr.shape != (d,):
        raise ValueError(f"R12 must have shape ({d},), got {R12_arr.shape}")

    Pphi = P @ phi
    S = _check_denominator(float(phi @ Pphi) + float(R2), what="Kalman innovation variance")

    K = (Pphi + R12_arr) / S
    innovation = float(y) - float(phi @ p)

    p_new = p + K * innovation
    P_new = P + R1_arr - S * np.outer(K, K)
    P_new = 0.5 * (P_new + P_new.T)
    return p_new, P_new
