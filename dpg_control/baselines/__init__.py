"""
Baselines
====================

Algorithm packages. Each one follows the head / core / builder split.
"""

from __future__ import annotations

from .dpg import CriticUpdate, DPGConfig, DPGFunctions, DPGResult, DPGState, dpg

__all__ = ["CriticUpdate", "DPGConfig", "DPGFunctions", "DPGResult", "DPGState", "dpg"]
