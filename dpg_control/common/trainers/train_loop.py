from __future__ import annotations

from typing import Any, Dict, Mapping

import math

import numpy as np

from ..utils.train_utils import _maybe_call


def train_dpg(trainer: Any, pbar: Any) -> None:
    """
    Iteration loop of the DPG optimizer.

    For ``i = 1 .. iters``:

    1) Perturb the start state: ``x0 + scale * N(0, I)`` from ``trainer.rng``.
    2) Sample exploration noise with the current noise scale.
    3) Roll out with the live actor and run ``core.update_from_rollout``.
    4) Apply the step-size schedule.
    5) Callbacks ``on_update`` / periodic ``train/`` logging.
    6) At evaluation iterations, overwrite ``cost[i]`` with the noise-free
       cost, snapshot on improvement, roll back on divergence.

    Parameters
    ----------
    trainer : Any
        :class:`~dpg_control.common.trainers.trainer.DPGTrainer` (duck-typed):
        ``config``, ``functions``, ``head``, ``core``, ``evaluator``, ``rng``,
        ``x0``, ``cost``, ``best_cost``, ``iteration``, ``eval_gate``,
        ``callbacks``, ``logger``.
    pbar : Any
        tqdm-like bar with ``update`` and ``set_postfix``.

    Notes
    -----
    A callback returning False (or ``trainer.request_stop()``) ends the run
    after the current iteration; untouched cost entries stay 0.
    """
    cfg = trainer.config
    core = trainer.core
    head = trainer.head
    x0 = trainer.x0
    n = int(x0.shape[0])
    scale = float(cfg.init_perturbation_scale)

    for i in range(int(trainer.iteration) + 1, int(cfg.iters) + 1):
        trainer.iteration = i

        # ------------------------------------------------------------------
        # 1-3) Exploratory rollout + update
        # ------------------------------------------------------------------
        x0i = x0 + scale * trainer.rng.standard_normal(n)
        noise = trainer.functions.exploration(core.noise_scale)
        x, u = head.rollout(x0i, noise)

        metrics = core.update_from_rollout(x, u, i)
        trainer.cost[i - 1] = metrics["cost"]

        # ------------------------------------------------------------------
        # 4) Step-size schedule
        # ------------------------------------------------------------------
        metrics["stepreduce"] = float(core.apply_schedule(i))

        # ------------------------------------------------------------------
        # 5) Observers
        # ------------------------------------------------------------------
        if trainer.callbacks is not None:
            if _maybe_call(trainer.callbacks, "on_update", trainer, metrics=metrics) is False:
                trainer.request_stop()

        _maybe_log(trainer, metrics, prefix="train/", every=int(cfg.log_every))

        # ------------------------------------------------------------------
        # 6) Evaluation, snapshot, rollback
        # ------------------------------------------------------------------
        if trainer.eval_gate.ready(i):
            _evaluate_and_checkpoint(trainer, i, pbar)

        pbar.update(1)

        if trainer._stop_training:
            break


# =============================================================================
# Internal helpers
# =============================================================================
def _evaluate_and_checkpoint(trainer: Any, i: int, pbar: Any) -> None:
    """
    Noise-free evaluation at iteration ``i`` followed by snapshot or rollback.

    A non-finite evaluation cost counts as a divergence.
    """
    cfg = trainer.config
    core = trainer.core

    c = float(trainer.evaluator.evaluate(trainer.x0))
    trainer.cost[i - 1] = c

    improved = math.isfinite(c) and c < trainer.best_cost
    diverged = False
    if improved:
        trainer.best_cost = c
        trainer.head.snapshot_best()
    elif (not math.isfinite(c)) or c > float(cfg.divergence_ratio) * trainer.best_cost:
        diverged = True

    metrics: Dict[str, float] = {
        "iteration": float(i),
        "cost": c,
        "best_cost": float(trainer.best_cost),
        "improved": float(improved),
        "diverged": float(diverged),
    }
    metrics.update(_numeric_items(core.state_dict()))

    if trainer.callbacks is not None:
        if _maybe_call(trainer.callbacks, "on_eval_end", trainer, metrics=metrics) is False:
            trainer.request_stop()

    if diverged:
        core.recover_from_divergence()
        trainer.n_divergences += 1
        div_metrics = dict(metrics)
        div_metrics.update(_numeric_items(core.state_dict()))
        div_metrics["n_divergences"] = float(trainer.n_divergences)
        if trainer.callbacks is not None:
            if _maybe_call(trainer.callbacks, "on_divergence", trainer, metrics=div_metrics) is False:
                trainer.request_stop()
        metrics = div_metrics

    _maybe_log(trainer, metrics, prefix="eval/", every=1)

    pbar.set_postfix({"cost": f"{c:.5g}", "best": f"{trainer.best_cost:.5g}"}, refresh=False)


def _maybe_log(trainer: Any, metrics: Mapping[str, Any], *, prefix: str, every: int) -> None:
    logger = getattr(trainer, "logger", None)
    if logger is None or every <= 0:
        return
    i = int(trainer.iteration)
    if prefix == "train/" and (i % every) != 0:
        return
    logger.log(dict(metrics), step=i, prefix=prefix)


def _numeric_items(d: Mapping[str, Any]) -> Dict[str, float]:
    """Scalar entries of ``d`` as floats; a matrix noise scale is summarized by its trace."""
    out: Dict[str, float] = {}
    for k, v in d.items():
        arr = np.asarray(v, dtype=np.float64)
        if arr.ndim == 0:
            out[k] = float(arr)
        elif arr.ndim == 2 and arr.shape[0] == arr.shape[1]:
            out[f"{k}_trace"] = float(np.trace(arr))
    return out
