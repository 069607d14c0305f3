from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Union

import math

import numpy as np

from dpg_control.common.utils.common_utils import _normalize_kind
from dpg_control.common.utils.noise_utils import _scale_factor


# =============================================================================
# Critic update mode
# =============================================================================
class CriticUpdate(str, Enum):
    """
    How the critic parameters ``(w, v)`` are fitted to the TD target.

    Members
    -------
    GRADIENT
        Accumulate TD-error-weighted gradients over the rollout and apply one
        RMS-normalized step per iteration.
    RLS
        Recursive least squares on the stacked vector ``[v; w]`` after every
        time step, with forgetting factor ``rls_forgetting``.
    KALMAN
        Kalman filtering of ``[v; w]`` after every time step, with process
        noise ``φφᵀ`` built from the current regressor.
    """

    GRADIENT = "gradient"
    RLS = "rls"
    KALMAN = "kalman"

    @classmethod
    def parse(cls, value: Union[str, "CriticUpdate"]) -> "CriticUpdate":
        """
        Resolve an enum member from a member or a (case/separator-insensitive) string.

        Accepted aliases: ``sgd`` for gradient, ``recursive_least_squares`` for
        rls and ``kalman_filter`` for kalman.

        Raises
        ------
        ValueError
            If the value names no known mode.
        """
        if isinstance(value, cls):
            return value

        kind = _normalize_kind(value if isinstance(value, str) else None)
        aliases = {
            "gradient": cls.GRADIENT,
            "sgd": cls.GRADIENT,
            "rls": cls.RLS,
            "recursive_least_squares": cls.RLS,
            "kalman": cls.KALMAN,
            "kalman_filter": cls.KALMAN,
        }
        if kind not in aliases:
            raise ValueError(
                f"Unknown critic_update={value!r}. Use one of: {', '.join(m.value for m in cls)}"
            )
        return aliases[kind]


# =============================================================================
# DPGConfig
# =============================================================================
@dataclass(frozen=True)
class DPGConfig:
    """
    Hyperparameters of the DPG optimizer (immutable).

    Parameters
    ----------
    action_dim : int
        Action dimension ``m`` (>= 1).
    noise_scale : float or array-like, default=1.0
        Exploration covariance handed to ``exploration``. A scalar >= 0 or a
        square symmetric matrix. Halved on every divergence.
    actor_step : float, default=1e-4
        Actor step size.
    critic_step_w : float, default=1e-3
        Step size for the advantage weights ``w`` (gradient mode only).
    critic_step_v : float, default=1e-3
        Step size for the value weights ``v`` (gradient mode only).
    aux_step : float, default=1e-3
        Reserved auxiliary step size. It is carried through the step schedule
        bookkeeping but drives no update.
    gamma : float, default=0.99
        Discount factor in (0, 1].
    tau : float, default=0.001
        Target tracking rate in (0, 1].
    iters : int, default=20000
        Number of training iterations.
    critic_update : CriticUpdate or str, default="gradient"
        Critic update mode, see :class:`CriticUpdate`.
    rls_forgetting : float, default=0.999
        RLS forgetting factor in (0, 1].
    stepreduce_interval : int, default=1000
        Every this many iterations the actor and critic step sizes are
        multiplied by ``stepreduce_factor``.
    stepreduce_factor : float, default=0.995
        Step-size decay factor in (0, 1].
    hold_actor : int, default=1000
        Number of initial iterations during which the actor is frozen.

    Other Parameters
    ----------------
    init_perturbation_scale : float, default=2.0
        Start states are drawn as ``x0 + init_perturbation_scale * N(0, I)``.
    eval_interval : int, default=100
        Noise-free evaluation runs at iterations ``1, 1 + eval_interval, ...``.
    divergence_ratio : float, default=1.2
        An evaluation cost above ``divergence_ratio * best`` is a divergence.
    divergence_step_divisor : float, default=10.0
        All step sizes are divided by this on divergence.
    divergence_noise_divisor : float, default=2.0
        The noise scale is divided by this on divergence.
    rms_decay : float, default=0.9
        Decay of the running squared-gradient estimates.
    actor_rms_eps, critic_rms_eps : float
        Denominator offsets of the RMS-normalized steps (1e-5 and 1e-6).
    actor_rms_init, critic_rms_init : float
        Initial running squared-gradient values (1000 and 100).
    rls_init_cov : float, default=0.1
        RLS covariance is initialized to ``rls_init_cov * I``.
    kalman_init_cov : float, default=1e4
        Kalman covariance is initialized to ``kalman_init_cov * I``.
    kalman_obs_noise : float, default=1.0
        Kalman observation-noise variance ``R2``.
    kalman_cross_noise : float, default=0.0
        Fill value of the Kalman cross covariance vector ``R12``.

    Raises
    ------
    ValueError
        On construction if any field violates its constraint.

    Notes
    -----
    The "Other Parameters" have the values the algorithm was tuned with.
    They are exposed so they are named and documented, not as tuning knobs.
    """

    action_dim: int
    noise_scale: Any = 1.0
    actor_step: float = 1e-4
    critic_step_w: float = 1e-3
    critic_step_v: float = 1e-3
    aux_step: float = 1e-3
    gamma: float = 0.99
    tau: float = 0.001
    iters: int = 20_000
    critic_update: Union[CriticUpdate, str] = CriticUpdate.GRADIENT
    rls_forgetting: float = 0.999
    stepreduce_interval: int = 1000
    stepreduce_factor: float = 0.995
    hold_actor: int = 1000

    init_perturbation_scale: float = 2.0
    eval_interval: int = 100
    divergence_ratio: float = 1.2
    divergence_step_divisor: float = 10.0
    divergence_noise_divisor: float = 2.0
    rms_decay: float = 0.9
    actor_rms_eps: float = 1e-5
    critic_rms_eps: float = 1e-6
    actor_rms_init: float = 1000.0
    critic_rms_init: float = 100.0
    rls_init_cov: float = 0.1
    kalman_init_cov: float = 10000.0
    kalman_obs_noise: float = 1.0
    kalman_cross_noise: float = 0.0

    log_every: int = field(default=1, compare=False)

    def __post_init__(self) -> None:
        # frozen: normalized values are written through object.__setattr__
        object.__setattr__(self, "critic_update", CriticUpdate.parse(self.critic_update))
        object.__setattr__(self, "noise_scale", self._validate_noise_scale(self.noise_scale))

        if int(self.action_dim) != self.action_dim or int(self.action_dim) < 1:
            raise ValueError(f"action_dim must be an integer >= 1, got {self.action_dim}")
        if isinstance(self.noise_scale, np.ndarray) and self.noise_scale.shape[0] != int(self.action_dim):
            raise ValueError(
                f"noise_scale matrix must be ({self.action_dim}, {self.action_dim}), got {self.noise_scale.shape}"
            )
        if int(self.iters) != self.iters or int(self.iters) < 1:
            raise ValueError(f"iters must be an integer >= 1, got {self.iters}")
        if int(self.stepreduce_interval) != self.stepreduce_interval or int(self.stepreduce_interval) < 1:
            raise ValueError(f"stepreduce_interval must be an integer >= 1, got {self.stepreduce_interval}")
        if int(self.hold_actor) != self.hold_actor or int(self.hold_actor) < 0:
            raise ValueError(f"hold_actor must be an integer >= 0, got {self.hold_actor}")
        if int(self.eval_interval) != self.eval_interval or int(self.eval_interval) < 1:
            raise ValueError(f"eval_interval must be an integer >= 1, got {self.eval_interval}")
        if int(self.log_every) < 0:
            raise ValueError(f"log_every must be >= 0, got {self.log_every}")

        for name in ("actor_step", "critic_step_w", "critic_step_v", "aux_step"):
            val = float(getattr(self, name))
            if not (math.isfinite(val) and val >= 0.0):
                raise ValueError(f"{name} must be finite and >= 0, got {val}")

        for name in ("gamma", "tau", "rls_forgetting", "stepreduce_factor"):
            val = float(getattr(self, name))
            if not (0.0 < val <= 1.0):
                raise ValueError(f"{name} must be in (0, 1], got {val}")

        if not (0.0 <= float(self.rms_decay) < 1.0):
            raise ValueError(f"rms_decay must be in [0, 1), got {self.rms_decay}")
        if float(self.divergence_ratio) < 1.0:
            raise ValueError(f"divergence_ratio must be >= 1, got {self.divergence_ratio}")

        for name in (
            "init_perturbation_scale",
            "actor_rms_eps",
            "critic_rms_eps",
            "actor_rms_init",
            "critic_rms_init",
            "rls_init_cov",
            "kalman_init_cov",
            "kalman_obs_noise",
        ):
            val = float(getattr(self, name))
            if not (math.isfinite(val) and val >= 0.0):
                raise ValueError(f"{name} must be finite and >= 0, got {val}")

        for name in ("divergence_step_divisor", "divergence_noise_divisor"):
            val = float(getattr(self, name))
            if not (math.isfinite(val) and val > 1.0):
                raise ValueError(f"{name} must be > 1, got {val}")

        if not math.isfinite(float(self.kalman_cross_noise)):
            raise ValueError(f"kalman_cross_noise must be finite, got {self.kalman_cross_noise}")

    @staticmethod
    def _validate_noise_scale(noise_scale: Any) -> Any:
        """Return a float for scalar scales or a read-only float64 matrix."""
        arr = np.asarray(noise_scale, dtype=np.float64)
        if arr.ndim == 0:
            val = float(arr)
            if not (math.isfinite(val) and val >= 0.0):
                raise ValueError(f"noise_scale must be finite and >= 0, got {val}")
            return val

        if arr.ndim != 2 or arr.shape[0] != arr.shape[1]:
            raise ValueError(f"noise_scale must be a scalar or a square matrix, got shape {arr.shape}")
        if not np.all(np.isfinite(arr)):
            raise ValueError("noise_scale matrix must be finite")
        if not np.allclose(arr, arr.T):
            raise ValueError("noise_scale matrix must be symmetric")
        # raises on a matrix that is not positive semi-definite
        _scale_factor(arr, arr.shape[0])

        mat = np.array(arr, copy=True)
        mat.setflags(write=False)
        return mat

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly view of the config (enum as its value, matrices as nested lists)."""
        out = asdict(self)
        out["critic_update"] = self.critic_update.value
        if isinstance(self.noise_scale, np.ndarray):
            out["noise_scale"] = self.noise_scale.tolist()
        return out
