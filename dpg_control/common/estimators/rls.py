from __future__ import annotations

from typing import Any, Tuple

import numpy as np

from ..utils.estimator_utils import _as_estimator_inputs, _check_denominator


def rls_update(p: Any, y: float, phi: Any, P: Any, lam: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    One step of exponentially-weighted recursive least squares.

    Fits ``y ≈ φᵀp`` online, discounting past observations by ``λ`` per step::

        gain = P φ / (λ + φᵀ P φ)
        p'   = p + gain (y − φᵀ p)
        P'   = (P − gain φᵀ P) / λ

    Parameters
    ----------
    p : array-like, shape (D,)
        Current parameter estimate.
    y : float
        Scalar observation (the TD target when used as a critic update).
    phi : array-like, shape (D,)
        Regressor. For the critic this is ``[∇_v Q; ∇_w Q]``.
    P : array-like, shape (D, D)
        Current covariance (inverse information) matrix.
    lam : float
        Forgetting factor in (0, 1]. ``lam == 1`` gives ordinary RLS, which
        reproduces batch least squares on the same data when started from a
        large ``P``.

    Returns
    -------
    p_new : np.ndarray, shape (D,)
        Updated parameters.
    P_new : np.ndarray, shape (D, D)
        Updated covariance.

    Raises
    ------
    ValueError
        On shape mismatches or ``lam`` outside (0, 1].
    NumericalInstabilityError
        If ``λ + φᵀPφ`` is non-finite or numerically zero.

    Notes
    -----
    Inputs are copied; neither ``p`` nor ``P`` is modified in place.
    """
    lam = float(lam)
    if not (0.0 < lam <= 1.0):
        raise ValueError(f"lam must be in (0, 1], got {lam}")

    p, phi, P = _as_estimator_inputs(p, phi, P)

    Pphi = P @ phi
    denom = _check_denominator(lam + float(phi @ Pphi), what="RLS normalizer (lam + phi' P phi)")

    gain = Pphi / denom
    innovation = float(y) - float(phi @ p)

    p_new = p + gain * innovation
    P_new = (P - np.outer(gain, phi @ P)) / lam
    return p_new, P_new
