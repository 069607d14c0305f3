from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from ..noises.base_noise import TraceNoise
from ..utils import ray_utils
from ..utils.ray_utils import _require_ray, _resolve_entrypoint


def _reseed_exploration(functions: Any, seed: int) -> bool:
    """
    Restart a :class:`TraceNoise` exploration generator from ``seed``.

    Tasks receive copies of the same collaborators, generator state included;
    after reseeding, runs with different seeds draw different traces. Other
    exploration callables are left untouched.

    Returns
    -------
    reseeded : bool
    """
    exploration = getattr(functions, "exploration", None)
    if isinstance(exploration, TraceNoise):
        exploration.reseed(int(seed))
        return True
    return False


def _run_one_seed(
    config: Any,
    functions: Union[Any, str],
    functions_kwargs: Optional[Mapping[str, Any]],
    state0: Any,
    x0: Any,
    seed: int,
) -> Any:
    """
    Worker body: build collaborators if needed and run one seeded optimization.

    ``functions`` is either a ready :class:`DPGFunctions` (shipped by
    cloudpickle) or a ``"pkg.module:factory"`` entrypoint called with
    ``functions_kwargs`` inside the worker. The exploration generator is
    reseeded from ``seed`` in both cases.
    """
    from dpg_control.baselines.dpg.dpg import dpg

    if isinstance(functions, str):
        functions = _resolve_entrypoint(functions)(**dict(functions_kwargs or {}))
    _reseed_exploration(functions, seed)
    return dpg(config, functions, state0, x0, seed=int(seed), verbose=False)


def train_seeds_ray(
    *,
    config: Any,
    functions: Union[Any, str, Callable[..., Any]],
    state0: Any,
    x0: Any,
    seeds: Sequence[int],
    functions_kwargs: Optional[Mapping[str, Any]] = None,
    num_cpus_per_run: float = 1.0,
    ray_init_kwargs: Optional[Dict[str, Any]] = None,
) -> List[Any]:
    """
    Run independent DPG optimizations for several seeds as Ray tasks.

    Each task keeps its own strictly sequential parameter trajectory; Ray
    only parallelizes across seeds.

    Parameters
    ----------
    config : DPGConfig
        Shared hyperparameters.
    functions : DPGFunctions or str or callable
        Collaborators, a ``"pkg.module:factory"`` entrypoint, or a top-level
        factory function (converted to its entrypoint). Factories are called
        with ``functions_kwargs`` on the worker.
    state0 : DPGState
        Shared initial parameters.
    x0 : array-like
        Shared nominal initial state.
    seeds : Sequence[int]
        One run per seed.
    functions_kwargs : Mapping[str, Any], optional
        Keyword arguments of the factory.
    num_cpus_per_run : float, default=1.0
        Ray CPU reservation per task.
    ray_init_kwargs : dict, optional
        Passed to ``ray.init`` when Ray is not initialized yet.

    Returns
    -------
    results : list[DPGResult]
        In the order of ``seeds``.

    Raises
    ------
    RuntimeError
        If Ray is not installed.
    ValueError
        If ``seeds`` is empty.
    """
    _require_ray()
    ray = ray_utils.ray

    seeds = [int(s) for s in seeds]
    if not seeds:
        raise ValueError("seeds must be non-empty")

    if callable(functions) and not hasattr(functions, "policy"):
        functions = ray_utils._make_entrypoint(functions)

    if not ray.is_initialized():
        ray.init(**dict(ray_init_kwargs or {}))

    task = ray.remote(num_cpus=float(num_cpus_per_run))(_run_one_seed)
    refs = [task.remote(config, functions, functions_kwargs, state0, x0, s) for s in seeds]
    return list(ray.get(refs))
