from __future__ import annotations

import dataclasses
import pickle
from typing import Callable, List, Tuple

import numpy as np

from dpg_control.common.testers.test_utils import (
    TestSkip,
    assert_allclose,
    assert_eq,
    assert_raises,
    assert_true,
    run_tests,
)

from dpg_control.baselines.dpg import DPGConfig, DPGState, dpg
from dpg_control.common.trainers.train_ray import _reseed_exploration, _run_one_seed, train_seeds_ray
from dpg_control.common.utils import ray_utils
from dpg_control.systems import double_integrator_functions, make_double_integrator

ENTRYPOINT = "dpg_control.systems.linear_quadratic:double_integrator_functions"


def _config(**overrides) -> DPGConfig:
    kw = dict(action_dim=1, noise_scale=0.1, actor_step=1e-3, iters=6, eval_interval=5, hold_actor=0)
    kw.update(overrides)
    return DPGConfig(**kw)


def _state0() -> DPGState:
    return DPGState(theta=[-1.0, -1.5], w=np.zeros(2), v=np.zeros(4))


def test_entrypoint_roundtrip():
    ep = ray_utils._make_entrypoint(double_integrator_functions)
    assert_eq(ep, ENTRYPOINT)
    assert_true(ray_utils._resolve_entrypoint(ep) is double_integrator_functions)


def test_entrypoint_rejects_closures_and_bad_strings():
    def local_factory():
        return None

    assert_raises(ValueError, lambda: ray_utils._make_entrypoint(lambda: None))
    assert_raises(ValueError, lambda: ray_utils._make_entrypoint(local_factory))
    assert_raises(ValueError, lambda: ray_utils._resolve_entrypoint("dpg_control.systems"))
    assert_raises(ValueError, lambda: ray_utils._resolve_entrypoint("dpg_control:__version__"))


def test_worker_body_matches_direct_call():
    kwargs = {"horizon": 10, "seed": 2}
    res = _run_one_seed(_config(), ENTRYPOINT, kwargs, _state0(), [1.0, 0.0], 5)
    # the worker restarts the exploration generator from the run seed
    ref_fns = double_integrator_functions(horizon=10, seed=5)
    ref = dpg(_config(), ref_fns, _state0(), [1.0, 0.0], seed=5, verbose=False)
    assert_allclose(res.cost, ref.cost, rtol=0.0, atol=0.0)
    assert_allclose(res.theta, ref.theta, rtol=0.0, atol=0.0)


def test_reseed_exploration_separates_seeds():
    _, fns = make_double_integrator(horizon=10, seed=7)
    blob = pickle.dumps(fns)
    assert_allclose(pickle.loads(blob).exploration(1.0), pickle.loads(blob).exploration(1.0), rtol=0.0, atol=0.0)

    a, b, c = pickle.loads(blob), pickle.loads(blob), pickle.loads(blob)
    assert_true(_reseed_exploration(a, 0))
    assert_true(_reseed_exploration(b, 1))
    assert_true(_reseed_exploration(c, 0))
    ta = a.exploration(1.0)
    assert_true(not np.allclose(ta, b.exploration(1.0)))
    assert_allclose(ta, c.exploration(1.0), rtol=0.0, atol=0.0)

    plain = dataclasses.replace(fns, exploration=lambda scale: np.zeros((10, 1)))
    assert_true(not _reseed_exploration(plain, 0))


def test_worker_runs_differ_only_through_exploration_seed():
    # no start-state perturbation: the run seed reaches the result only through exploration
    _, fns = make_double_integrator(horizon=10, seed=7)
    blob = pickle.dumps(fns)
    cfg = _config(init_perturbation_scale=0.0)
    r0 = _run_one_seed(cfg, pickle.loads(blob), None, _state0(), [1.0, 0.0], 0)
    r1 = _run_one_seed(cfg, pickle.loads(blob), None, _state0(), [1.0, 0.0], 1)
    r0_again = _run_one_seed(cfg, pickle.loads(blob), None, _state0(), [1.0, 0.0], 0)
    assert_true(not np.allclose(r0.cost, r1.cost))
    assert_allclose(r0.cost, r0_again.cost, rtol=0.0, atol=0.0)

    r_ep = _run_one_seed(cfg, ENTRYPOINT, {"horizon": 10, "seed": 7}, _state0(), [1.0, 0.0], 0)
    assert_allclose(r_ep.cost, r0.cost, rtol=0.0, atol=0.0)


def test_missing_ray_is_reported():
    if ray_utils.ray is not None:
        raise TestSkip("ray is installed")
    assert_raises(
        RuntimeError,
        lambda: train_seeds_ray(config=_config(), functions=ENTRYPOINT, state0=_state0(), x0=[1.0, 0.0], seeds=[0]),
    )


TESTS: List[Tuple[str, Callable[[], None]]] = [
    ("entrypoint_roundtrip", test_entrypoint_roundtrip),
    ("entrypoint_rejects_closures_and_bad_strings", test_entrypoint_rejects_closures_and_bad_strings),
    ("worker_body_matches_direct_call", test_worker_body_matches_direct_call),
    ("reseed_exploration_separates_seeds", test_reseed_exploration_separates_seeds),
    ("worker_runs_differ_only_through_exploration_seed", test_worker_runs_differ_only_through_exploration_seed),
    ("missing_ray_is_reported", test_missing_ray_is_reported),
]


def main(argv=None) -> int:
    return run_tests(TESTS, argv=argv, suite_name="ray")


if __name__ == "__main__":
    raise SystemExit(main())
