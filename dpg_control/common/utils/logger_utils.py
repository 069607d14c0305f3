from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, TextIO, Tuple
import csv
import json
import os
import uuid


# =============================================================================
# Metadata convention
# =============================================================================
# Keys injected by `Logger.log` into every row. Writers treat them as indices
# rather than as metric series.
META_KEYS: Tuple[str, str, str] = ("step", "wall_time", "timestamp")


# =============================================================================
# Run directory utilities
# =============================================================================
def _generate_run_id() -> str:
    """
    Generate a sortable, filesystem-safe run id.

    Returns
    -------
    run_id : str
        ``"{YYYY-mm-dd_HH-MM-SS}_{8-hex}"``, e.g. ``"2026-03-02_09-41-07_1f0c2a9e"``.
    """
    ts = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    return f"{ts}_{uuid.uuid4().hex[:8]}"


def _make_run_dir(
    log_dir: str,
    exp_name: str,
    *,
    run_name: Optional[str] = None,
    overwrite: bool = False,
) -> str:
    """
    Resolve ``{log_dir}/{exp_name}/{run_name or auto id}``.

    Parameters
    ----------
    log_dir : str
        Root logging directory (e.g. ``"./runs"``).
    exp_name : str
        Experiment name (subdirectory under ``log_dir``).
    run_name : str, optional
        Explicit run identifier. A timestamped id is generated when omitted.
    overwrite : bool, default=False
        If True, reuse the directory even if it exists. Otherwise the first
        free ``{path}_{k}`` is returned so repeated launches never share files.

    Returns
    -------
    run_dir : str
        Resolved path. The directory itself is not created here.
    """
    base = os.path.join(str(log_dir), str(exp_name))
    path = os.path.join(base, str(run_name or _generate_run_id()))

    if overwrite or (not os.path.exists(path)):
        return path

    k = 1
    while os.path.exists(f"{path}_{k}"):
        k += 1
    return f"{path}_{k}"


# =============================================================================
# Metric row helpers
# =============================================================================
def _split_meta(row: Mapping[str, Any]) -> Tuple[Dict[str, float], Dict[str, float]]:
    """
    Split a row into ``(meta, metrics)`` using :data:`META_KEYS`.

    Values are cast with ``float``; a non-castable value raises.
    """
    meta = {k: float(row[k]) for k in META_KEYS if k in row}
    metrics = {str(k): float(v) for k, v in row.items() if k not in META_KEYS}
    return meta, metrics


def _get_step(row: Mapping[str, Any]) -> int:
    """Best-effort integer ``step`` of a row (0 when missing or malformed)."""
    try:
        return int(float(row.get("step", 0)))
    except Exception:
        return 0


def _metric_group(key: str) -> str:
    """
    Return the group of a metric key, i.e. the part before the first ``/``.

    Examples
    --------
    >>> _metric_group("eval/cost")
    'eval'
    >>> _metric_group("cost")
    'misc'
    """
    k = str(key)
    if "/" not in k:
        return "misc"
    head = k.split("/", 1)[0].strip()
    return head or "misc"


def _json_dumps(obj: Any) -> str:
    """JSON-encode for log lines (unicode kept, unknown objects via ``str``)."""
    return json.dumps(obj, ensure_ascii=False, default=str)


# =============================================================================
# Filesystem helpers for writers
# =============================================================================
def _open_append(path: str, *, newline: Optional[str] = None, encoding: str = "utf-8") -> TextIO:
    """
    Open ``path`` in append mode, creating its parent directory if needed.

    Notes
    -----
    For CSV output pass ``newline=""`` so ``csv`` controls line endings.
    The caller owns the returned handle.
    """
    dirpath = os.path.dirname(path)
    if dirpath:
        os.makedirs(dirpath, exist_ok=True)
    return open(path, "a", newline=newline, encoding=encoding)


def _safe_call(obj: Optional[Any], method: str) -> None:
    """
    Call ``obj.<method>()`` if it exists, ignoring all errors.

    Used for ``flush``/``close`` on handles that may already be closed.
    """
    if obj is None:
        return
    try:
        fn = getattr(obj, method, None)
        if callable(fn):
            fn()
    except Exception:
        pass


def _safe_file_size(f: TextIO) -> int:
    """Size of an open file in bytes via seek/tell (0 on failure). Leaves the pointer at EOF."""
    try:
        f.seek(0, os.SEEK_END)
        return int(f.tell())
    except Exception:
        return 0


def _read_csv_header(path: str, *, encoding: str = "utf-8") -> Optional[List[str]]:
    """
    Read the first row of an existing CSV file.

    Returns
    -------
    header : list[str] or None
        Column names, or None when the file is missing, empty or unreadable.
    """
    try:
        with open(path, "r", newline="", encoding=encoding) as rf:
            header = next(csv.reader(rf), None)
    except Exception:
        return None
    if not header:
        return None
    return [str(h) for h in header]
