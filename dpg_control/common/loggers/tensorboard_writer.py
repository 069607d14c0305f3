from __future__ import annotations

from typing import Mapping

try:
    from torch.utils.tensorboard import SummaryWriter  # type: ignore
except Exception:  # pragma: no cover
    SummaryWriter = None  # type: ignore[assignment]

from .base_writer import Writer
from ..utils.logger_utils import _get_step, _split_meta


class TensorBoardWriter(Writer):
    """
    TensorBoard backend: each metric of a row becomes one scalar.

    The row's ``step`` meta key is used as ``global_step`` (the DPG
    iteration), and metric keys such as ``eval/cost`` map directly to
    TensorBoard tags, so ``train/`` and ``eval/`` show up as separate groups.

    Parameters
    ----------
    run_dir : str
        Event-file directory.
    flush_secs : int, default=30
        Forwarded to ``SummaryWriter``.

    Raises
    ------
    RuntimeError
        If ``torch.utils.tensorboard`` cannot be imported.
    """

    def __init__(self, run_dir: str, *, flush_secs: int = 30) -> None:
        if SummaryWriter is None:
            raise RuntimeError("TensorBoard is not available (install the `tensorboard` package).")
        self._tb = SummaryWriter(log_dir=run_dir, flush_secs=int(flush_secs))

    def write(self, row: Mapping[str, float]) -> None:
        step = _get_step(row)
        _, metrics = _split_meta(row)
        for k, v in metrics.items():
            self._tb.add_scalar(str(k), float(v), global_step=int(step))

    def flush(self) -> None:
        self._tb.flush()

    def close(self) -> None:
        self._tb.close()
