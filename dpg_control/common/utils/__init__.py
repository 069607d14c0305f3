"""
Utils
====================

Small, reusable helpers used across the codebase.

Modules included
----------------
- callback_utils
    Interval gates and trainer-iteration inspection helpers for callbacks.
- common_utils
    NumPy/Torch conversion helpers, vector/matrix coercion, kind normalization.
- estimator_utils
    Shared checks for the recursive estimators and ``NumericalInstabilityError``.
- logger_utils
    Run-directory management and lightweight CSV/JSON serialization helpers.
- noise_utils
    Trace-shape validation and covariance factorization for exploration noise.
- ray_utils
    Ray gating and entrypoint helpers for multi-seed runs.
- train_utils
    Progress bar, seeding and RNG construction for the training loop.

Design policy
-------------
Functions prefixed with '_' are semi-private: importable for internal use but
not a stable public API.
"""

from __future__ import annotations

from .callback_utils import IntervalGate, _coerce_scalar_mapping, _infer_iteration, _to_finite_float
from .common_utils import (
    _normalize_kind,
    _readonly,
    _require_scalar,
    _sqrt_sum,
    _to_matrix,
    _to_numpy,
    _to_scalar,
    _to_vector,
)
from .estimator_utils import MIN_DENOMINATOR, NumericalInstabilityError
from .logger_utils import META_KEYS
from .noise_utils import _normalize_trace_shape, _scale_factor
from .ray_utils import _require_ray
from .train_utils import _make_pbar, _make_rng, _set_random_seed

__all__ = [
    # callback
    "IntervalGate",
    "_coerce_scalar_mapping",
    "_infer_iteration",
    "_to_finite_float",
    # common
    "_normalize_kind",
    "_readonly",
    "_require_scalar",
    "_sqrt_sum",
    "_to_matrix",
    "_to_numpy",
    "_to_scalar",
    "_to_vector",
    # estimators
    "MIN_DENOMINATOR",
    "NumericalInstabilityError",
    # logger
    "META_KEYS",
    # noise
    "_normalize_trace_shape",
    "_scale_factor",
    # ray
    "_require_ray",
    # train
    "_make_pbar",
    "_make_rng",
    "_set_random_seed",
]
