"""
Noises
====================

Exploration-noise traces for DPG rollouts.

A trace generator is called with the current noise covariance and returns a
``(horizon, action_dim)`` array, i.e. it satisfies the
``exploration(noise_scale)`` collaborator contract.

Public API
----------
- :class:`TraceNoise`                   base interface
- :class:`GaussianTraceNoise`           white ``N(0, Σ)`` rows
- :class:`OrnsteinUhlenbeckTraceNoise`  temporally correlated rows
- :func:`build_exploration`             factory from a kind string

Examples
--------
>>> from dpg_control.common.noises import build_exploration
>>> exploration = build_exploration(kind="ou", horizon=100, action_dim=1, seed=3)
>>> trace = exploration(0.5)
"""

from __future__ import annotations

from .base_noise import TraceNoise
from .noise_builder import build_exploration
from .noises import GaussianTraceNoise, OrnsteinUhlenbeckTraceNoise

__all__ = [
    "TraceNoise",
    "GaussianTraceNoise",
    "OrnsteinUhlenbeckTraceNoise",
    "build_exploration",
]
