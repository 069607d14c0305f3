from __future__ import annotations

import json
import os
import socket
import sys
import time
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import numpy as np
import torch as th

from .base_writer import Writer
from ..utils.common_utils import _to_scalar
from ..utils.logger_utils import META_KEYS, _make_run_dir


class Logger:
    """
    Scalar-first experiment logger (frontend).

    The logger owns the run directory, the step policy, key normalization
    and the strict/best-effort error policy. Writers own serialization and
    I/O.

    Parameters
    ----------
    log_dir : str, default="./runs"
        Root directory for runs.
    exp_name : str, default="dpg"
        Experiment subdirectory under ``log_dir``.
    run_name : str, optional
        Explicit run directory name. A timestamped id is used when omitted.
    overwrite : bool, default=False
        Reuse ``run_name`` even if it already exists. Otherwise a suffix
        ``_1``, ``_2``, ... is appended.
    writers : iterable of Writer, optional
        Initial writer backends.
    console_every : int, default=0
        Print a compact line every N calls to :meth:`log`. Disabled when
        ``<= 0``; DPG status lines are produced by
        :class:`~dpg_control.common.callbacks.ConsoleReportCallback`.
    flush_every : int, default=200
        Flush writers every N calls to :meth:`log` (disabled when ``<= 0``).
    drop_non_finite : bool, default=False
        Drop NaN/Inf values instead of forwarding them. Off by default since
        a non-finite evaluation cost is a meaningful divergence signal.
    strict : bool, default=False
        Re-raise writer and metadata errors. Otherwise they are collected in
        ``errors`` and logging continues.

    Notes
    -----
    Step inference order:

    1. explicit ``step`` argument
    2. callable installed with :meth:`set_step_fn`
    3. ``iteration`` of a trainer bound with :meth:`bind_trainer`
    4. ``0``
    """

    def __init__(
        self,
        *,
        log_dir: str = "./runs",
        exp_name: str = "dpg",
        run_name: Optional[str] = None,
        overwrite: bool = False,
        writers: Optional[Iterable[Writer]] = None,
        console_every: int = 0,
        flush_every: int = 200,
        drop_non_finite: bool = False,
        strict: bool = False,
    ) -> None:
        self.strict = bool(strict)
        self._errors: List[str] = []

        self.run_dir = _make_run_dir(log_dir, exp_name, run_name=run_name, overwrite=bool(overwrite))
        os.makedirs(self.run_dir, exist_ok=True)

        self.console_every = int(console_every)
        self.flush_every = int(flush_every)
        self.drop_non_finite = bool(drop_non_finite)

        self._start_time = time.time()
        self._log_calls = 0

        self._step_fn: Optional[Callable[[], int]] = None
        self._trainer_ref: Optional[Any] = None

        self._buffer: Dict[str, List[float]] = defaultdict(list)
        self._writers: List[Writer] = list(writers) if writers is not None else []

        try:
            self.dump_metadata()
        except Exception as e:
            self._handle_exception(e, "dump_metadata")

    def __enter__(self) -> "Logger":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def errors(self) -> List[str]:
        """Errors collected in best-effort mode (copy)."""
        return list(self._errors)

    @property
    def writers(self) -> List[Writer]:
        return list(self._writers)

    # ------------------------------------------------------------------
    # Step inference
    # ------------------------------------------------------------------
    def set_step_fn(self, fn: Optional[Callable[[], int]]) -> None:
        self._step_fn = fn

    def bind_trainer(self, trainer: Any) -> None:
        """Use ``trainer.iteration`` as the default step."""
        self._trainer_ref = trainer

    def _infer_step(self, step: Optional[int]) -> int:
        if step is not None:
            return int(step)
        if self._step_fn is not None:
            try:
                return int(self._step_fn())
            except Exception:
                return 0
        if self._trainer_ref is not None:
            try:
                return int(getattr(self._trainer_ref, "iteration", 0))
            except Exception:
                return 0
        return 0

    def _handle_exception(self, err: BaseException, context: str) -> None:
        self._errors.append(f"[{self.__class__.__name__}] {context}: {type(err).__name__}: {err}")
        if self.strict:
            raise err

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------
    @staticmethod
    def _norm_prefix(prefix: str) -> str:
        p = str(prefix).strip().replace("\\", "/").strip("/")
        return p + "/" if p else ""

    @staticmethod
    def _norm_key(key: Any) -> str:
        return str(key).strip().replace("\\", "/").lstrip("/")

    def _join_name(self, prefix: str, key: Any) -> str:
        return f"{self._norm_prefix(prefix)}{self._norm_key(key)}"

    def _coerce(self, value: Any) -> Optional[float]:
        val = _to_scalar(value)
        if val is None:
            return None
        if self.drop_non_finite and not np.isfinite(val):
            return None
        return float(val)

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    def log(
        self,
        metrics: Mapping[str, Any],
        step: Optional[int] = None,
        *,
        pbar: Optional[Any] = None,
        prefix: str = "",
    ) -> None:
        """
        Write one row of scalar metrics to every writer.

        Parameters
        ----------
        metrics : Mapping[str, Any]
            Values convertible by ``_to_scalar``; others are skipped.
        step : int, optional
            Explicit step. Inferred when omitted.
        pbar : tqdm, optional
            If given, console lines go to its description instead of stdout.
        prefix : str, default=""
            Prefix joined to every key (``"eval"`` gives ``"eval/cost"``).
        """
        s = self._infer_step(step)
        self._log_calls += 1

        row: Dict[str, float] = {}
        for k, v in metrics.items():
            fval = self._coerce(v)
            if fval is not None:
                row[self._join_name(prefix, k)] = fval

        now = time.time()
        row["step"] = float(s)
        row["wall_time"] = float(now - self._start_time)
        row["timestamp"] = float(now)

        for w in self._writers:
            try:
                w.write(row)
            except Exception as e:
                self._handle_exception(e, f"writer.write({w.__class__.__name__})")

        if self.console_every > 0 and (self._log_calls % self.console_every == 0):
            self._print_console(row, pbar=pbar)

        if self.flush_every > 0 and (self._log_calls % self.flush_every == 0):
            self.flush()

    def record(self, metrics: Mapping[str, Any], *, prefix: str = "") -> None:
        """Buffer metrics for a later :meth:`dump`; writers are not called."""
        for k, v in metrics.items():
            fval = self._coerce(v)
            if fval is not None:
                self._buffer[self._join_name(prefix, k)].append(fval)

    def dump(self, step: Optional[int] = None, *, agg: str = "mean", clear: bool = True) -> None:
        """
        Aggregate the buffer per key and emit one row via :meth:`log`.

        ``agg`` is one of ``mean``, ``min``, ``max``, ``std``.
        """
        op = str(agg).lower().strip()
        reducers = {"mean": np.mean, "min": np.min, "max": np.max, "std": np.std}
        if op not in reducers:
            raise ValueError(f"Unknown agg={agg!r}. Use mean|min|max|std.")

        out = {k: float(reducers[op](np.asarray(v, dtype=np.float64))) for k, v in self._buffer.items() if v}
        if clear:
            self._buffer.clear()
        if out:
            self.log(out, step=step)

    # ------------------------------------------------------------------
    # Config / metadata
    # ------------------------------------------------------------------
    def dump_config(self, config: Mapping[str, Any], filename: str = "config.json") -> None:
        path = os.path.join(self.run_dir, filename)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(dict(config), f, indent=2, ensure_ascii=False, default=str)

    def dump_metadata(self, filename: str = "metadata.json") -> None:
        """Host, interpreter and library versions of this run."""
        meta: Dict[str, Any] = {
            "run_dir": self.run_dir,
            "start_time_unix": float(self._start_time),
            "start_time_iso": datetime.fromtimestamp(self._start_time).isoformat(),
            "host": socket.gethostname(),
            "pid": os.getpid(),
            "python": sys.version.replace("\n", " "),
            "platform": sys.platform,
            "numpy": str(np.__version__),
            "torch": str(getattr(th, "__version__", "unknown")),
        }
        path = os.path.join(self.run_dir, filename)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(meta, f, indent=2, ensure_ascii=False, default=str)

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------
    def add_writer(self, writer: Writer) -> None:
        self._writers.append(writer)

    def add_writers(self, writers: Iterable[Writer]) -> None:
        for w in writers:
            self.add_writer(w)

    def flush(self) -> None:
        for w in self._writers:
            try:
                w.flush()
            except Exception as e:
                self._handle_exception(e, f"writer.flush({w.__class__.__name__})")

    def close(self) -> None:
        try:
            self.flush()
        finally:
            for w in self._writers:
                try:
                    w.close()
                except Exception as e:
                    self._handle_exception(e, f"writer.close({w.__class__.__name__})")

    @staticmethod
    def _print_console(row: Mapping[str, float], *, pbar: Optional[Any] = None) -> None:
        step = int(row.get("step", 0.0))
        wall = float(row.get("wall_time", 0.0))

        preferred = (
            "eval/cost",
            "eval/best_cost",
            "train/cost",
            "train/norm_grad_theta",
            "train/norm_grad_w",
            "train/norm_grad_v",
        )
        shown = [f"{k}={row[k]:.4g}" for k in preferred if k in row]
        if not shown:
            shown = [f"{k}={v:.4g}" for k, v in row.items() if k not in META_KEYS][:6]

        msg = f"[iter={step} | t={wall:.1f}s] " + " ".join(shown)
        if pbar is not None:
            try:
                pbar.set_description_str(msg, refresh=True)
                return
            except Exception:
                pass
        print(msg)
