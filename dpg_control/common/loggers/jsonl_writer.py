from __future__ import annotations

import math
import os
from typing import Any, Dict, Mapping, Optional, TextIO

from .base_writer import Writer
from ..utils.logger_utils import _json_dumps, _open_append, _safe_call


class JSONLWriter(Writer):
    """
    JSON Lines writer: one JSON object per ``write()`` call.

    ``{"step": 101, "eval/cost": 12.3, ...}\\n``

    Parameters
    ----------
    run_dir : str
        Directory of the output file (created if missing).
    filename : str, default="metrics.jsonl"
        File name inside ``run_dir``.

    Notes
    -----
    - Append-only, so a reused run directory keeps its previous lines.
    - NaN/Inf are written as ``null`` to keep every line strict JSON; a
      divergent evaluation cost is therefore visible as a missing value.
    """

    def __init__(self, run_dir: str, filename: str = "metrics.jsonl") -> None:
        self._path = os.path.join(run_dir, filename)
        self._f: Optional[TextIO] = _open_append(self._path)

    @property
    def path(self) -> str:
        return self._path

    @staticmethod
    def _encode(row: Mapping[str, Any]) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for k, v in row.items():
            if isinstance(v, float) and not math.isfinite(v):
                out[str(k)] = None
            else:
                out[str(k)] = v
        return out

    def write(self, row: Mapping[str, float]) -> None:
        if self._f is None:
            raise ValueError(f"JSONLWriter is closed: {self._path}")
        self._f.write(_json_dumps(self._encode(row)) + "\n")

    def flush(self) -> None:
        _safe_call(self._f, "flush")

    def close(self) -> None:
        _safe_call(self._f, "close")
        self._f = None
