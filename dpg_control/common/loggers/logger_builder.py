from __future__ import annotations

from typing import Any, Dict, List, Optional

from .base_writer import SafeWriter, Writer
from .csv_writer import CSVWriter
from .jsonl_writer import JSONLWriter
from .logger import Logger
from .tensorboard_writer import TensorBoardWriter


def build_logger(
    *,
    log_dir: str = "./runs",
    exp_name: str = "dpg",
    run_name: Optional[str] = None,
    overwrite: bool = False,
    use_tensorboard: bool = True,
    use_csv: bool = True,
    use_jsonl: bool = True,
    csv_kwargs: Optional[Dict[str, Any]] = None,
    jsonl_kwargs: Optional[Dict[str, Any]] = None,
    tensorboard_kwargs: Optional[Dict[str, Any]] = None,
    safe_writers: bool = False,
    console_every: int = 0,
    flush_every: int = 200,
    drop_non_finite: bool = False,
    strict: bool = False,
) -> Logger:
    """
    Construct a :class:`Logger` and attach the selected writer backends.

    The logger is created first because it resolves ``run_dir``; writers are
    then opened inside that directory.

    Parameters
    ----------
    log_dir, exp_name, run_name, overwrite
        Run directory resolution, see :class:`Logger`.
    use_tensorboard, use_csv, use_jsonl : bool
        Backend switches.
    csv_kwargs, jsonl_kwargs, tensorboard_kwargs : dict, optional
        Extra keyword arguments for the corresponding writer.
    safe_writers : bool, default=False
        Wrap every writer in :class:`SafeWriter`, so backend failures are
        recorded on the wrapper instead of reaching the logger.
    console_every, flush_every, drop_non_finite, strict
        Forwarded to :class:`Logger`.

    Returns
    -------
    Logger
    """
    logger = Logger(
        log_dir=str(log_dir),
        exp_name=str(exp_name),
        run_name=run_name,
        overwrite=bool(overwrite),
        writers=None,
        console_every=int(console_every),
        flush_every=int(flush_every),
        drop_non_finite=bool(drop_non_finite),
        strict=bool(strict),
    )

    writers: List[Writer] = []
    if use_tensorboard:
        writers.append(TensorBoardWriter(logger.run_dir, **dict(tensorboard_kwargs or {})))
    if use_csv:
        writers.append(CSVWriter(logger.run_dir, **dict(csv_kwargs or {})))
    if use_jsonl:
        writers.append(JSONLWriter(logger.run_dir, **dict(jsonl_kwargs or {})))

    if safe_writers:
        writers = [SafeWriter(w) for w in writers]

    logger.add_writers(writers)
    return logger
