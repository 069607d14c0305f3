from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

import numpy as np
import torch as th

from ..utils.noise_utils import _normalize_trace_shape


class TraceNoise(ABC):
    """
    Base interface for exploration-noise traces.

    A trace is a whole ``(horizon, action_dim)`` array of action perturbations
    for one rollout. Instances are callable with the current noise covariance,
    which matches the ``exploration(noise_scale)`` collaborator, so an object
    of this class can be passed as ``DPGFunctions.exploration`` directly.

    Parameters
    ----------
    horizon : int
        Number of rows of each trace.
    action_dim : int
        Number of columns of each trace.
    seed : int, optional
        Seed of the private ``torch.Generator``. Traces are reproducible for
        a given seed and independent of the global torch RNG.
    dtype : torch.dtype, default=torch.float64
        Sampling dtype. Traces are always returned as float64 NumPy arrays.
    """

    def __init__(
        self,
        horizon: int,
        action_dim: int,
        *,
        seed: Optional[int] = None,
        dtype: th.dtype = th.float64,
    ) -> None:
        self.horizon, self.action_dim = _normalize_trace_shape(horizon, action_dim)
        self.seed = None if seed is None else int(seed)
        self.dtype = dtype
        self._gen = th.Generator(device="cpu")
        self.reset()

    def reset(self) -> None:
        """Restart the generator, so the next traces repeat from the first one."""
        if self.seed is None:
            self._gen.seed()
        else:
            self._gen.manual_seed(self.seed)

    def reseed(self, seed: Optional[int]) -> None:
        """Replace the seed and restart the generator from it."""
        self.seed = None if seed is None else int(seed)
        self.reset()

    def _randn(self, *size: int) -> th.Tensor:
        return th.randn(*size, generator=self._gen, dtype=self.dtype)

    @abstractmethod
    def sample(self, noise_scale: Any) -> th.Tensor:
        """Draw one trace of shape ``(horizon, action_dim)`` for covariance ``noise_scale``."""
        raise NotImplementedError

    def __call__(self, noise_scale: Any) -> np.ndarray:
        return self.sample(noise_scale).detach().cpu().numpy().astype(np.float64, copy=False)
