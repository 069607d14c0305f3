from __future__ import annotations

from typing import Any, Callable
import importlib

try:
    import ray  # type: ignore
except Exception:
    ray = None  # type: ignore


# =============================================================================
# Ray gating
# =============================================================================
def _require_ray() -> None:
    """
    Raise a clear error if Ray features are requested but Ray is not installed.

    Raises
    ------
    RuntimeError
        If Ray is not importable in the current environment.

    Notes
    -----
    Called at the boundary where Ray-only code paths are entered
    (``train_seeds_ray``), so a missing install fails before any task is built.
    """
    if ray is None:
        raise RuntimeError(
            "Ray is not installed, but train_seeds_ray was requested. "
            "Install Ray (e.g., `pip install 'dpg-control[ray]'`) or call dpg() per seed."
        )


# =============================================================================
# Entrypoint helpers
# =============================================================================
def _make_entrypoint(fn: Callable[..., Any]) -> str:
    """
    Convert a top-level function into a ``"module:qualname"`` string.

    Ray workers re-import factories by name instead of unpickling closures.

    Raises
    ------
    ValueError
        If ``fn`` is a lambda or a nested function.
    """
    mod = getattr(fn, "__module__", None)
    qualname = getattr(fn, "__qualname__", None)
    if not mod or not qualname:
        raise ValueError("Factory must be a top-level function with __module__ and __qualname__.")
    if "<locals>" in qualname or "<lambda>" in qualname:
        raise ValueError(f"Factory must be a top-level function, got {qualname!r}.")
    return f"{mod}:{qualname}"


def _resolve_entrypoint(entrypoint: str) -> Callable[..., Any]:
    """
    Import the callable named by ``"package.module:function_name"``.

    Raises
    ------
    ValueError
        If the string is malformed or the attribute is not callable.
    """
    if ":" not in entrypoint:
        raise ValueError(f"Entrypoint must look like 'pkg.module:fn', got {entrypoint!r}")
    mod_name, attr = entrypoint.split(":", 1)
    obj: Any = importlib.import_module(mod_name)
    for part in attr.split("."):
        obj = getattr(obj, part)
    if not callable(obj):
        raise ValueError(f"Entrypoint {entrypoint!r} does not resolve to a callable.")
    return obj
