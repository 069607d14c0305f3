"""
Trainers
====================

Orchestration of a DPG run.

- :class:`DPGTrainer`      run state + callbacks + logging around the loop
- :func:`train_dpg`        the iteration loop (rollout, update, schedule, evaluation)
- :func:`episode_cost`     trajectory cost ``-sum_t reward(x[t], u[t], t)``
- :class:`Evaluator`       noise-free evaluation of the live actor
- :func:`train_seeds_ray`  independent seeded runs as Ray tasks (optional extra)

Notes
-----
Ray is imported lazily through ``ray_utils``; importing this package never
requires Ray.
"""

from __future__ import annotations

from .evaluator import Evaluator, episode_cost
from .train_loop import train_dpg
from .train_ray import train_seeds_ray
from .trainer import DPGTrainer

__all__ = [
    "DPGTrainer",
    "Evaluator",
    "episode_cost",
    "train_dpg",
    "train_seeds_ray",
]
