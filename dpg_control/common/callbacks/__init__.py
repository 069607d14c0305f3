"""
Callbacks
====================

Observer hooks for :class:`~dpg_control.common.trainers.trainer.DPGTrainer`.

Public API
----------
Base
    - :class:`BaseCallback`
    - :class:`CallbackList`

Reporting
    - :class:`ConsoleReportCallback`  status lines (banner, evaluations, divergence, summary)
    - :class:`EvalHistoryCallback`    in-memory evaluation trace

Guards
    - :class:`NaNGuardCallback`       stop on non-finite metrics or parameters
    - :class:`EarlyStopCallback`      stop when the evaluation cost stagnates

Notes
-----
A hook returning ``False`` requests a stop after the current iteration.
"""

from __future__ import annotations

from .base_callback import BaseCallback, CallbackList
from .console_report_callback import ConsoleReportCallback
from .early_stop_callback import EarlyStopCallback
from .eval_history_callback import EvalHistoryCallback
from .nan_guard_callback import NaNGuardCallback, NonFiniteDetector

__all__ = [
    "BaseCallback",
    "CallbackList",
    "ConsoleReportCallback",
    "EarlyStopCallback",
    "EvalHistoryCallback",
    "NaNGuardCallback",
    "NonFiniteDetector",
]
