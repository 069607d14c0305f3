from __future__ import annotations

import csv
import os
from typing import Any, Dict, List, Mapping, Optional, TextIO

from .base_writer import Writer
from ..utils.logger_utils import (
    META_KEYS,
    _metric_group,
    _open_append,
    _read_csv_header,
    _safe_call,
    _safe_file_size,
)


class _WideTable:
    """One wide CSV file with a schema frozen at its first row."""

    def __init__(self, path: str, *, encoding: str) -> None:
        self.path = path
        self.encoding = encoding
        self.file: Optional[TextIO] = _open_append(path, newline="", encoding=encoding)
        self.writer: Optional[csv.DictWriter] = None
        self.fieldnames: List[str] = []

    def write(self, row: Mapping[str, float]) -> None:
        if self.file is None:
            raise ValueError(f"CSV table is closed: {self.path}")
        if self.writer is None:
            self._prepare_schema(row)
        assert self.writer is not None
        self.writer.writerow({k: row.get(k, "") for k in self.fieldnames})

    def _prepare_schema(self, first_row: Mapping[str, float]) -> None:
        assert self.file is not None
        header = _read_csv_header(self.path, encoding=self.encoding) if _safe_file_size(self.file) > 0 else None

        if header:
            # resumed file: keep the existing columns, ignore new keys
            self.fieldnames = [h for h in header if h]
            self.writer = csv.DictWriter(self.file, fieldnames=self.fieldnames)
            return

        self.fieldnames = [k for k in META_KEYS if k in first_row]
        self.fieldnames += [k for k in first_row.keys() if k not in META_KEYS]
        self.writer = csv.DictWriter(self.file, fieldnames=self.fieldnames)
        self.writer.writeheader()

    def flush(self) -> None:
        _safe_call(self.file, "flush")

    def close(self) -> None:
        _safe_call(self.file, "close")
        self.file = None
        self.writer = None


class CSVWriter(Writer):
    """
    CSV backend with one wide table per metric group and a lossless long table.

    DPG emits two kinds of rows: per-iteration ``train/*`` rows and
    per-evaluation ``eval/*`` rows. A single frozen-schema table would
    drop whichever kind came second, so the wide output is split by the
    group of each row's first metric key (the text before ``/``):

    - ``metrics_train.csv``: one row per logged iteration
    - ``metrics_eval.csv``: one row per evaluation
    - ``metrics_long.csv``: ``step, wall_time, timestamp, key, value``

    Parameters
    ----------
    run_dir : str
        Output directory.
    wide : bool, default=True
        Enable the per-group wide tables.
    long : bool, default=True
        Enable the long table.
    wide_prefix : str, default="metrics"
        Wide tables are named ``{wide_prefix}_{group}.csv``.
    long_filename : str, default="metrics_long.csv"
        File name of the long table.
    encoding : str, default="utf-8"
        Text encoding for all files.

    Notes
    -----
    Each wide table freezes its columns on its first row (or, when
    appending to an existing file, on that file's header). Keys outside the
    frozen schema still reach the long table.
    """

    def __init__(
        self,
        run_dir: str,
        *,
        wide: bool = True,
        long: bool = True,
        wide_prefix: str = "metrics",
        long_filename: str = "metrics_long.csv",
        encoding: str = "utf-8",
    ) -> None:
        self.run_dir = str(run_dir)
        self.wide = bool(wide)
        self.long = bool(long)
        self.wide_prefix = str(wide_prefix)
        self.encoding = str(encoding)

        self._tables: Dict[str, _WideTable] = {}

        self._long_path = os.path.join(self.run_dir, long_filename)
        self._long_file: Optional[TextIO] = (
            _open_append(self._long_path, newline="", encoding=self.encoding) if self.long else None
        )
        self._long_writer: Optional[Any] = None
        self._closed = False

    @property
    def paths(self) -> Dict[str, str]:
        """Paths of the files opened so far, keyed by group (``"long"`` for the long table)."""
        out = {g: t.path for g, t in self._tables.items()}
        if self.long:
            out["long"] = self._long_path
        return out

    def write(self, row: Mapping[str, float]) -> None:
        if self._closed:
            raise ValueError(f"CSVWriter is closed: {self.run_dir}")
        if self.wide:
            self._write_wide(row)
        if self._long_file is not None:
            self._write_long(row)

    def flush(self) -> None:
        for t in self._tables.values():
            t.flush()
        _safe_call(self._long_file, "flush")

    def close(self) -> None:
        try:
            self.flush()
        finally:
            for t in self._tables.values():
                t.close()
            _safe_call(self._long_file, "close")
            self._long_file = None
            self._long_writer = None
            self._closed = True

    # ------------------------------------------------------------------
    # Wide
    # ------------------------------------------------------------------
    def _write_wide(self, row: Mapping[str, float]) -> None:
        metric_keys = [k for k in row.keys() if k not in META_KEYS]
        if not metric_keys:
            return
        group = _metric_group(metric_keys[0])
        table = self._tables.get(group)
        if table is None:
            path = os.path.join(self.run_dir, f"{self.wide_prefix}_{group}.csv")
            table = _WideTable(path, encoding=self.encoding)
            self._tables[group] = table
        table.write(row)

    # ------------------------------------------------------------------
    # Long
    # ------------------------------------------------------------------
    def _write_long(self, row: Mapping[str, float]) -> None:
        assert self._long_file is not None
        if self._long_writer is None:
            size = _safe_file_size(self._long_file)
            self._long_writer = csv.writer(self._long_file)
            if size == 0:
                self._long_writer.writerow(["step", "wall_time", "timestamp", "key", "value"])

        step = row.get("step", "")
        wall_time = row.get("wall_time", "")
        timestamp = row.get("timestamp", "")
        for k, v in row.items():
            if k in META_KEYS:
                continue
            self._long_writer.writerow([step, wall_time, timestamp, str(k), repr(float(v))])
