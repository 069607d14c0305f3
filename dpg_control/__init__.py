"""
dpg_control

Top-level package initializer.

Usage
-----
from dpg_control import dpg, DPGConfig, DPGFunctions, DPGState

result = dpg(DPGConfig(action_dim=1), functions, DPGState(theta, w, v), x0)
cost, theta, w, v = result
"""

from __future__ import annotations

from .baselines.dpg import CriticUpdate, DPGConfig, DPGFunctions, DPGResult, DPGState, dpg
from .common.estimators import NumericalInstabilityError

__all__ = [
    "dpg",
    "CriticUpdate",
    "DPGConfig",
    "DPGFunctions",
    "DPGResult",
    "DPGState",
    "NumericalInstabilityError",
]

__version__ = "0.1.0"
