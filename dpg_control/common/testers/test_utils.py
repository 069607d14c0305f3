from __future__ import annotations

from typing import Any, Callable, List, Optional, Sequence, Tuple

import math
import os
import sys
import tempfile
import traceback
import unittest

import numpy as np
import torch as th


class Color:
    RESET = "\033[0m"
    GREEN = "\033[32m"
    RED = "\033[31m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"


def colorize(text: str, color: str, *, enable: bool = True) -> str:
    if not enable:
        return text
    return f"{color}{text}{Color.RESET}"


# =============================================================================
# Mini test framework (also collected by pytest)
# =============================================================================
class TestFailure(AssertionError):
    __test__ = False


class TestSkip(unittest.SkipTest):
    """Raised to mark a skipped test (pytest reports it as skipped too)."""

    __test__ = False


def assert_true(cond: bool, msg: str = "") -> None:
    if not cond:
        raise TestFailure(msg or "assert_true failed")


def assert_eq(a: Any, b: Any, msg: str = "") -> None:
    if a != b:
        raise TestFailure(msg or f"assert_eq failed: {a!r} != {b!r}")


def assert_in(x: Any, xs: Any, msg: str = "") -> None:
    if x not in xs:
        raise TestFailure(msg or f"assert_in failed: {x!r} not in {xs!r}")


def assert_close(a: float, b: float, *, rtol: float = 1e-6, atol: float = 1e-8, msg: str = "assert_close failed") -> None:
    if not math.isclose(float(a), float(b), rel_tol=rtol, abs_tol=atol):
        raise TestFailure(f"{msg}: {a} vs {b} (rtol={rtol}, atol={atol})")


def assert_allclose(a: Any, b: Any, msg: str = "", *, rtol: float = 1e-6, atol: float = 1e-8) -> None:
    """Array/tensor closeness with a readable failure message."""
    if th.is_tensor(a) or th.is_tensor(b):
        ta = a if th.is_tensor(a) else th.as_tensor(a)
        tb = b if th.is_tensor(b) else th.as_tensor(b, dtype=ta.dtype)
        if not bool(th.allclose(ta, tb, rtol=rtol, atol=atol)):
            raise TestFailure(msg or f"assert_allclose failed: {ta} != {tb}")
        return

    aa = np.asarray(a, dtype=np.float64)
    bb = np.asarray(b, dtype=np.float64)
    if aa.shape != bb.shape or not np.allclose(aa, bb, rtol=rtol, atol=atol):
        raise TestFailure(msg or f"assert_allclose failed: {aa} != {bb}")


def assert_raises(exc_type: type, fn: Callable[[], Any], *, msg: str = "assert_raises failed") -> None:
    try:
        fn()
    except exc_type:
        return
    except Exception as e:
        raise TestFailure(f"{msg}: expected {exc_type.__name__}, got {type(e).__name__}: {e}")
    raise TestFailure(f"{msg}: expected {exc_type.__name__} but no exception raised")


def assert_shape(x: Any, shape: Sequence[int], msg: str = "") -> None:
    got = tuple(int(d) for d in (x.shape if th.is_tensor(x) else np.asarray(x).shape))
    exp = tuple(int(s) for s in shape)
    if got != exp:
        raise TestFailure(msg or f"assert_shape failed: got {got}, expected {exp}")


def assert_finite(x: Any, msg: str = "") -> None:
    if th.is_tensor(x):
        ok = bool(th.isfinite(x).all().item())
    else:
        ok = bool(np.all(np.isfinite(np.asarray(x, dtype=np.float64))))
    if not ok:
        raise TestFailure(msg or "assert_finite failed: value has NaN/Inf")


def mk_tmp_dir(prefix: str = "dpgtests_") -> str:
    return tempfile.mkdtemp(prefix=prefix)


def assert_file_exists(path: str) -> None:
    if not os.path.exists(path):
        raise TestFailure(f"file not found: {path}")


def read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def run_tests(
    tests: Sequence[Tuple[str, Callable[[], Any]]],
    *,
    argv: Optional[List[str]] = None,
    suite_name: str = "tests",
) -> int:
    """
    Run zero-arg test callables and print colored PASS/FAIL/SKIP plus a summary.

    ``argv[0]``, if present, filters tests by substring.

    Returns
    -------
    int
        0 if all passed, 1 if any failed, 2 if the filter matched nothing.
    """
    argv = sys.argv[1:] if argv is None else argv
    filt = argv[0] if argv else ""

    selected = [(n, f) for (n, f) in tests if (not filt or filt in n)]
    if not selected:
        print(f"[{suite_name}] No tests matched filter: {filt!r}")
        return 2

    passed: List[str] = []
    skipped: List[str] = []
    failed: List[Tuple[str, str]] = []

    print(f"[{suite_name}] Running {len(selected)} tests" + (f" (filter={filt!r})" if filt else ""))

    for name, fn in selected:
        try:
            fn()
            passed.append(name)
            print(colorize(f" [ PASS ] {name}", Color.GREEN))
        except TestSkip as e:
            skipped.append(name)
            print(colorize(f" [ SKIP ] {name}: {e}", Color.YELLOW))
        except Exception as e:
            failed.append((name, f"{type(e).__name__}: {e}"))
            print(colorize(f" [ FAIL ] {name}: {type(e).__name__}: {e}", Color.RED))
            traceback.print_exc()

    print()
    print(colorize(f"[{suite_name}] passed={len(passed)} skipped={len(skipped)} failed={len(failed)}", Color.CYAN))
    for n, err in failed:
        print(colorize(f"  - {n}: {err}", Color.RED))

    return 0 if not failed else 1
