from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Mapping, Optional


class Writer(ABC):
    """
    Abstract base class for metric writer backends.

    A writer consumes flat rows of ``{name: float}`` produced by
    :meth:`Logger.log` and owns its own buffering and persistence.

    Contract
    --------
    - ``write(row)`` accepts a mapping of metric names to floats. Rows carry
      the meta keys ``step``, ``wall_time`` and ``timestamp``.
    - ``flush()`` and ``close()`` should be idempotent.
    - Implementations raise on failure; the :class:`Logger` strict policy (or
      :class:`SafeWriter`) decides whether that reaches the caller.
    """

    @abstractmethod
    def write(self, row: Mapping[str, float]) -> None:
        raise NotImplementedError

    @abstractmethod
    def flush(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError


class SafeWriter(Writer):
    """
    Exception-isolating wrapper for a :class:`Writer`.

    Failures of the wrapped writer never propagate. Unlike a silent wrapper,
    the last errors are kept in ``errors`` (bounded by ``max_errors``) so
    that a run can be inspected afterwards.

    Parameters
    ----------
    inner : Writer
        Wrapped writer.
    name : str, optional
        Identifier used in recorded error messages.
    max_errors : int, default=100
        Maximum number of error messages retained.
    """

    def __init__(self, inner: Writer, *, name: Optional[str] = None, max_errors: int = 100) -> None:
        self._inner = inner
        self._name = name or inner.__class__.__name__
        self._max_errors = int(max_errors)
        self.errors: List[str] = []

    def _record(self, op: str, err: Exception) -> None:
        if len(self.errors) < self._max_errors:
            self.errors.append(f"[{self._name}] {op}: {type(err).__name__}: {err}")

    def write(self, row: Mapping[str, float]) -> None:
        try:
            self._inner.write(row)
        except Exception as e:
            self._record("write", e)

    def flush(self) -> None:
        try:
            self._inner.flush()
        except Exception as e:
            self._record("flush", e)

    def close(self) -> None:
        try:
            self._inner.close()
        except Exception as e:
            self._record("close", e)
