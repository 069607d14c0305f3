"""
DPG
=======

Deterministic Policy Gradient actor-critic optimizer for parametric
controllers, composed the same way as the other algorithms of the library:

- **Head** (:class:`DPGHead`): caller collaborators plus the live, target and
  best parameter snapshots
- **Core** (:class:`DPGCore`): the per-rollout update (policy gradient,
  critic update, RMS steps, target tracking), step schedule and divergence
  recovery
- **Builder** (:func:`dpg`): validates the config, wires head + core into a
  :class:`~dpg_control.common.trainers.DPGTrainer` and runs it

Critic updates are selected by :class:`CriticUpdate` (``gradient``, ``rls``,
``kalman``); each mode keeps its own state object (see ``critic.py``).
"""

from __future__ import annotations

from .config import CriticUpdate, DPGConfig
from .core import DPGCore, StepSizes
from .critic import (
    GradientCriticUpdater,
    KalmanCriticUpdater,
    RLSCriticUpdater,
    build_critic_updater,
    rms_step,
)
from .dpg import dpg
from .head import DPGHead
from .types import DPGFunctions, DPGResult, DPGState

__all__ = [
    "CriticUpdate",
    "DPGConfig",
    "DPGFunctions",
    "DPGState",
    "DPGResult",
    "DPGHead",
    "DPGCore",
    "StepSizes",
    "GradientCriticUpdater",
    "RLSCriticUpdater",
    "KalmanCriticUpdater",
    "build_critic_updater",
    "rms_step",
    "dpg",
]
