from __future__ import annotations

import csv
import json
import os
from typing import Callable, List, Mapping, Tuple

from dpg_control.common.testers.test_utils import (
    TestSkip,
    assert_eq,
    assert_file_exists,
    assert_in,
    assert_raises,
    assert_true,
    mk_tmp_dir,
    read_text,
    run_tests,
)

from dpg_control.common.loggers import (
    CSVWriter,
    JSONLWriter,
    Logger,
    SafeWriter,
    TensorBoardWriter,
    Writer,
    build_logger,
)
from dpg_control.common.loggers import tensorboard_writer as tb_mod


class _MemoryWriter(Writer):
    def __init__(self) -> None:
        self.rows: List[dict] = []
        self.closed = False

    def write(self, row: Mapping[str, float]) -> None:
        self.rows.append(dict(row))

    def flush(self) -> None:
        return None

    def close(self) -> None:
        self.closed = True


class _BrokenWriter(Writer):
    def write(self, row: Mapping[str, float]) -> None:
        raise IOError("disk full")

    def flush(self) -> None:
        raise IOError("disk full")

    def close(self) -> None:
        return None


class _FakeTrainer:
    iteration = 42


def _read_csv(path: str) -> List[dict]:
    with open(path, "r", encoding="utf-8", newline="") as f:
        return list(csv.DictReader(f))


# =============================================================================
# Tests: writers
# =============================================================================
def test_jsonl_writer_maps_non_finite_to_null():
    run_dir = mk_tmp_dir()
    w = JSONLWriter(run_dir)
    w.write({"step": 1.0, "eval/cost": float("nan"), "eval/best_cost": 3.0})
    w.write({"step": 2.0, "eval/cost": float("inf"), "eval/best_cost": 3.0})
    w.close()

    lines = [json.loads(s) for s in read_text(w.path).splitlines()]
    assert_eq(len(lines), 2)
    assert_true(lines[0]["eval/cost"] is None)
    assert_true(lines[1]["eval/cost"] is None)
    assert_eq(lines[0]["eval/best_cost"], 3.0)
    assert_raises(ValueError, lambda: w.write({"step": 3.0}))


def test_csv_writer_splits_groups_and_keeps_long_table():
    run_dir = mk_tmp_dir()
    w = CSVWriter(run_dir)
    w.write({"step": 1.0, "wall_time": 0.1, "timestamp": 1.0, "train/cost": 5.0, "train/horizon": 10.0})
    w.write({"step": 1.0, "wall_time": 0.2, "timestamp": 2.0, "eval/cost": 4.0, "eval/best_cost": 4.0})
    w.write({"step": 2.0, "wall_time": 0.3, "timestamp": 3.0, "train/cost": 6.0, "train/horizon": 10.0, "train/extra": 1.0})
    w.close()

    paths = w.paths
    assert_eq(sorted(paths.keys()), ["eval", "long", "train"])
    assert_true(paths["train"].endswith("metrics_train.csv"))

    train = _read_csv(paths["train"])
    assert_eq(list(train[0].keys()), ["step", "wall_time", "timestamp", "train/cost", "train/horizon"])
    assert_eq([float(r["train/cost"]) for r in train], [5.0, 6.0])

    ev = _read_csv(paths["eval"])
    assert_eq(len(ev), 1)
    assert_eq(float(ev[0]["eval/best_cost"]), 4.0)

    long = _read_csv(paths["long"])
    assert_eq(list(long[0].keys()), ["step", "wall_time", "timestamp", "key", "value"])
    assert_eq(len(long), 7)
    assert_in("train/extra", [r["key"] for r in long])

    assert_raises(ValueError, lambda: w.write({"step": 3.0, "train/cost": 1.0}))


def test_safe_writer_records_errors():
    w = SafeWriter(_BrokenWriter(), name="broken", max_errors=2)
    for _ in range(3):
        w.write({"step": 0.0})
    w.flush()
    assert_eq(len(w.errors), 2)
    assert_true(w.errors[0].startswith("[broken] write: OSError"), w.errors[0])


def test_tensorboard_writer_smoke():
    if tb_mod.SummaryWriter is None:
        raise TestSkip("tensorboard is not installed")
    run_dir = mk_tmp_dir()
    w = TensorBoardWriter(run_dir)
    w.write({"step": 3.0, "wall_time": 0.0, "timestamp": 0.0, "eval/cost": 1.5})
    w.flush()
    w.close()
    assert_true(any(name.startswith("events.out.tfevents") for name in os.listdir(run_dir)))


# =============================================================================
# Tests: Logger
# =============================================================================
def test_logger_prefix_step_and_meta_keys():
    mem = _MemoryWriter()
    logger = Logger(log_dir=mk_tmp_dir(), exp_name="t", run_name="r", writers=[mem])

    logger.log({"cost": 1.0, "bad": "text", "/norm": 2}, step=7, prefix="/eval/")
    row = mem.rows[-1]
    assert_eq(row["eval/cost"], 1.0)
    assert_eq(row["eval/norm"], 2.0)
    assert_true("eval/bad" not in row)
    assert_eq(row["step"], 7.0)
    assert_true("wall_time" in row and "timestamp" in row)

    logger.bind_trainer(_FakeTrainer())
    logger.log({"cost": 2.0}, prefix="train")
    assert_eq(mem.rows[-1]["step"], 42.0)

    logger.set_step_fn(lambda: 5)
    logger.log({"cost": 3.0})
    assert_eq(mem.rows[-1]["step"], 5.0)

    logger.close()
    assert_true(mem.closed)


def test_logger_drop_non_finite():
    mem = _MemoryWriter()
    logger = Logger(log_dir=mk_tmp_dir(), exp_name="t", writers=[mem], drop_non_finite=True)
    logger.log({"a": float("nan"), "b": 1.0}, step=0)
    assert_true("a" not in mem.rows[-1])
    assert_eq(mem.rows[-1]["b"], 1.0)


def test_logger_record_and_dump():
    mem = _MemoryWriter()
    logger = Logger(log_dir=mk_tmp_dir(), exp_name="t", writers=[mem])
    for v in (1.0, 2.0, 6.0):
        logger.record({"cost": v}, prefix="train")
    logger.dump(step=3, agg="max")
    assert_eq(mem.rows[-1]["train/cost"], 6.0)
    assert_eq(mem.rows[-1]["step"], 3.0)

    n_rows = len(mem.rows)
    logger.dump(step=4)
    assert_eq(len(mem.rows), n_rows, "empty buffer must not emit a row")
    assert_raises(ValueError, lambda: logger.dump(agg="median"))


def test_logger_error_policy():
    logger = Logger(log_dir=mk_tmp_dir(), exp_name="t", writers=[_BrokenWriter()])
    logger.log({"x": 1.0}, step=0)
    logger.flush()
    assert_eq(len(logger.errors), 2)
    assert_in("disk full", logger.errors[0])

    strict = Logger(log_dir=mk_tmp_dir(), exp_name="t", writers=[_BrokenWriter()], strict=True)
    assert_raises(IOError, lambda: strict.log({"x": 1.0}, step=0))


def test_logger_run_dir_and_config_dump():
    root = mk_tmp_dir()
    a = Logger(log_dir=root, exp_name="exp", run_name="run")
    b = Logger(log_dir=root, exp_name="exp", run_name="run")
    c = Logger(log_dir=root, exp_name="exp", run_name="run", overwrite=True)
    assert_eq(a.run_dir, os.path.join(root, "exp", "run"))
    assert_eq(b.run_dir, os.path.join(root, "exp", "run_1"))
    assert_eq(c.run_dir, a.run_dir)

    a.dump_config({"gamma": 0.99, "critic_update": "rls"})
    cfg = json.loads(read_text(os.path.join(a.run_dir, "config.json")))
    assert_eq(cfg["critic_update"], "rls")

    meta = json.loads(read_text(os.path.join(a.run_dir, "metadata.json")))
    assert_in("torch", meta)
    assert_in("numpy", meta)


def test_build_logger_backends():
    logger = build_logger(log_dir=mk_tmp_dir(), exp_name="b", use_tensorboard=False, safe_writers=True)
    kinds = [type(w).__name__ for w in logger.writers]
    assert_eq(kinds, ["SafeWriter", "SafeWriter"])

    logger = build_logger(log_dir=mk_tmp_dir(), exp_name="b", use_tensorboard=False, use_jsonl=False)
    assert_eq([type(w).__name__ for w in logger.writers], ["CSVWriter"])
    logger.log({"cost": 1.0}, step=1, prefix="eval")
    logger.close()
    assert_file_exists(os.path.join(logger.run_dir, "metrics_eval.csv"))


TESTS: List[Tuple[str, Callable[[], None]]] = [
    ("jsonl_writer_maps_non_finite_to_null", test_jsonl_writer_maps_non_finite_to_null),
    ("csv_writer_splits_groups_and_keeps_long_table", test_csv_writer_splits_groups_and_keeps_long_table),
    ("safe_writer_records_errors", test_safe_writer_records_errors),
    ("tensorboard_writer_smoke", test_tensorboard_writer_smoke),
    ("logger_prefix_step_and_meta_keys", test_logger_prefix_step_and_meta_keys),
    ("logger_drop_non_finite", test_logger_drop_non_finite),
    ("logger_record_and_dump", test_logger_record_and_dump),
    ("logger_error_policy", test_logger_error_policy),
    ("logger_run_dir_and_config_dump", test_logger_run_dir_and_config_dump),
    ("build_logger_backends", test_build_logger_backends),
]


def main(argv=None) -> int:
    return run_tests(TESTS, argv=argv, suite_name="loggers")


if __name__ == "__main__":
    raise SystemExit(main())
