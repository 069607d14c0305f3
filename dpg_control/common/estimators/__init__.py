"""
Estimators
====================

Recursive estimators used as alternative critic updates.

- :func:`rls_update`    exponentially-weighted recursive least squares
- :func:`kalman_update` Kalman filter for a random-walk parameter model

Both take the current estimate ``p`` and covariance ``P`` and return fresh
``(p', P')`` arrays, so either can be swapped in without changing call sites.
"""

from __future__ import annotations

from ..utils.estimator_utils import NumericalInstabilityError
from .kalman import kalman_update
from .rls import rls_update

__all__ = ["NumericalInstabilityError", "kalman_update", "rls_update"]
