from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
import torch as th

from dpg_control.common.testers.test_utils import (
    assert_eq,
    assert_raises,
    assert_true,
    run_tests,
)

from dpg_control.baselines.dpg.types import DPGState
from dpg_control.common.callbacks import (
    BaseCallback,
    CallbackList,
    EarlyStopCallback,
    EvalHistoryCallback,
    NaNGuardCallback,
    NonFiniteDetector,
)
from dpg_control.common.utils.callback_utils import IntervalGate, _coerce_scalar_mapping, _infer_iteration


class _Head:
    def __init__(self, state: DPGState) -> None:
        self.state = state


class _Trainer:
    def __init__(self, state: Optional[DPGState] = None) -> None:
        self.iteration = 0
        self.logger = _Sink()
        self.head = _Head(state or DPGState(theta=[0.0], w=[0.0], v=[0.0]))


class _Sink:
    def __init__(self) -> None:
        self.calls: List[Tuple[Dict[str, Any], int, str]] = []

    def log(self, metrics, step=None, *, prefix=""):
        self.calls.append((dict(metrics), step, prefix))


class _Voter(BaseCallback):
    def __init__(self, name: str, answer: bool, seen: List[str]) -> None:
        self.name = name
        self.answer = answer
        self.seen = seen

    def on_update(self, trainer, metrics=None):
        self.seen.append(f"update:{self.name}")
        return self.answer

    def on_train_end(self, trainer):
        self.seen.append(f"end:{self.name}")
        return self.answer


# =============================================================================
# Tests: composition
# =============================================================================
def test_callback_list_short_circuits_but_always_ends():
    seen: List[str] = []
    cbs = CallbackList([_Voter("a", True, seen), None, _Voter("b", False, seen), _Voter("c", True, seen)])
    assert_eq(len(cbs.callbacks), 3)

    assert_true(cbs.on_update(_Trainer(), {}) is False)
    assert_eq(seen, ["update:a", "update:b"])

    seen.clear()
    assert_true(cbs.on_train_end(_Trainer()) is False)
    assert_eq(seen, ["end:a", "end:b", "end:c"])

    assert_true(CallbackList([]).on_eval_end(_Trainer(), {}) is True)
    assert_raises(TypeError, lambda: CallbackList([object()]))


def test_base_callback_log_ignores_missing_or_broken_logger():
    class _NoLogger:
        iteration = 1

    class _Broken:
        def log(self, *args, **kwargs):
            raise RuntimeError("boom")

    cb = BaseCallback()
    cb.log(_NoLogger(), {"x": 1.0}, step=1)

    tr = _Trainer()
    tr.logger = _Broken()
    cb.log(tr, {"x": 1.0}, step=1)


# =============================================================================
# Tests: gates and helpers
# =============================================================================
def test_interval_gate_offsets():
    gate = IntervalGate(every=100, offset=1)
    assert_eq([gate.ready(i) for i in (1, 2, 100, 101, 201)], [True, False, False, True, True])
    assert_eq([IntervalGate(every=1, offset=1).ready(i) for i in (1, 2, 3)], [True, True, True])
    assert_true(not IntervalGate(every=0).ready(0))


def test_iteration_inference_and_scalar_coercion():
    class _T:
        iteration = None
        step = "7"

    assert_eq(_infer_iteration(_T()), 7)
    assert_eq(_infer_iteration(object(), default=3), 3)
    out = _coerce_scalar_mapping({"a": 1, "b": float("nan"), "c": "x", "d": np.float32(2.5)})
    assert_eq(out, {"a": 1.0, "d": 2.5})


# =============================================================================
# Tests: early stop
# =============================================================================
def test_early_stop_after_patience():
    tr = _Trainer()
    cb = EarlyStopCallback(patience=2, min_delta=0.5)
    for it, cost in ((1, 10.0), (2, 9.0), (3, 8.8)):
        tr.iteration = it
        assert_true(cb.on_eval_end(tr, {"cost": cost}))
    assert_eq(cb.best, 9.0)
    assert_eq(cb.bad_count, 1)

    tr.iteration = 4
    assert_true(cb.on_eval_end(tr, {"cost": float("nan")}), "non-finite costs are ignored")
    tr.iteration = 5
    assert_true(cb.on_eval_end(tr, {"cost": 9.5}) is False)
    assert_true(cb.triggered)

    metrics, step, prefix = tr.logger.calls[-1]
    assert_eq(step, 5)
    assert_eq(prefix, "sys/")
    assert_eq(metrics["early_stop/best"], 9.0)

    assert_raises(ValueError, lambda: EarlyStopCallback(patience=0))
    assert_raises(ValueError, lambda: EarlyStopCallback(mode="median"))


def test_early_stop_max_mode():
    cb = EarlyStopCallback(metric_key="score", patience=1, mode="max")
    tr = _Trainer()
    assert_true(cb.on_eval_end(tr, {"score": 1.0}))
    assert_true(cb.on_eval_end(tr, {"score": 2.0}))
    assert_true(cb.on_eval_end(tr, {"other": 0.0}))
    assert_true(cb.on_eval_end(tr, {"score": 1.5}) is False)


# =============================================================================
# Tests: NaN guard
# =============================================================================
def test_non_finite_detector():
    det = NonFiniteDetector()
    assert_true(det(float("inf")))
    assert_true(det(np.array([1.0, np.nan])))
    assert_true(det(th.tensor([0.0, float("nan")])))
    assert_true(det({"a": [1.0, {"b": float("nan")}]}))
    assert_true(not det({"a": [1.0, 2.0]}))
    assert_true(not det("text"))
    assert_true(not NonFiniteDetector(max_depth=0)([float("nan")]))


def test_nan_guard_on_metrics_and_params():
    tr = _Trainer()
    tr.iteration = 4
    cb = NaNGuardCallback(keys=["cost"])
    assert_true(cb.on_update(tr, {"cost": 1.0, "norm_grad_w": float("nan")}))
    assert_true(cb.on_update(tr, {"cost": float("inf")}) is False)
    assert_eq((cb.triggered_at, cb.where, cb.key), (4, "metrics", "cost"))

    tr = _Trainer(DPGState(theta=[0.0], w=[np.nan], v=[0.0]))
    tr.iteration = 9
    cb = NaNGuardCallback()
    assert_true(cb.on_update(tr, {"cost": 1.0}) is False)
    assert_eq((cb.triggered_at, cb.where, cb.key), (9, "params", "w"))
    metrics, _, _ = tr.logger.calls[-1]
    assert_eq(metrics["nan_guard/where_params"], 1.0)

    assert_true(NaNGuardCallback(check_params=False).on_update(tr, {"cost": 1.0}))


# =============================================================================
# Tests: history
# =============================================================================
def test_eval_history_records_trace_and_rollbacks():
    tr = _Trainer(DPGState(theta=[1.0], w=[0.0], v=[0.0]))
    hist = EvalHistoryCallback(keep_snapshots=True)

    hist.on_eval_end(tr, {"iteration": 1, "cost": 5.0, "best_cost": 5.0, "diverged": 0.0})
    tr.head.state = DPGState(theta=[2.0], w=[0.0], v=[0.0])
    hist.on_eval_end(tr, {"iteration": 2, "cost": 9.0, "best_cost": 5.0, "diverged": 1.0})
    tr.head.state = DPGState(theta=[1.0], w=[0.0], v=[0.0])
    hist.on_divergence(tr, {"iteration": 2})

    arrays = hist.as_arrays()
    assert_eq(arrays["iterations"].tolist(), [1, 2])
    assert_eq(arrays["costs"].tolist(), [5.0, 9.0])
    assert_eq(arrays["best_costs"].tolist(), [5.0, 5.0])
    assert_eq(arrays["divergences"].tolist(), [2])
    assert_eq([float(s.theta[0]) for s in hist.snapshots], [1.0, 1.0])


TESTS: List[Tuple[str, Callable[[], None]]] = [
    ("callback_list_short_circuits_but_always_ends", test_callback_list_short_circuits_but_always_ends),
    ("base_callback_log_ignores_missing_or_broken_logger", test_base_callback_log_ignores_missing_or_broken_logger),
    ("interval_gate_offsets", test_interval_gate_offsets),
    ("iteration_inference_and_scalar_coercion", test_iteration_inference_and_scalar_coercion),
    ("early_stop_after_patience", test_early_stop_after_patience),
    ("early_stop_max_mode", test_early_stop_max_mode),
    ("non_finite_detector", test_non_finite_detector),
    ("nan_guard_on_metrics_and_params", test_nan_guard_on_metrics_and_params),
    ("eval_history_records_trace_and_rollbacks", test_eval_history_records_trace_and_rollbacks),
]


def main(argv=None) -> int:
    return run_tests(TESTS, argv=argv, suite_name="callbacks")


if __name__ == "__main__":
    raise SystemExit(main())
