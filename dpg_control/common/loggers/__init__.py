"""
Loggers
====================

Scalar metric logging for DPG runs.

- :class:`Logger` frontend (run directory, step inference, error policy)
- writer backends: CSV (per-group wide tables and a long table), JSONL,
  TensorBoard
- :func:`build_logger` to wire a logger with selected backends

Typical usage
-------------
>>> from dpg_control.common.loggers import build_logger
>>> logger = build_logger(log_dir="./runs", exp_name="lq", use_tensorboard=False)
>>> result = dpg(config, functions, state0, x0, logger=logger)
>>> logger.close()
"""

from __future__ import annotations

from .base_writer import SafeWriter, Writer
from .csv_writer import CSVWriter
from .jsonl_writer import JSONLWriter
from .logger import Logger
from .logger_builder import build_logger
from .tensorboard_writer import TensorBoardWriter

__all__ = [
    "Logger",
    "Writer",
    "SafeWriter",
    "CSVWriter",
    "JSONLWriter",
    "TensorBoardWriter",
    "build_logger",
]
