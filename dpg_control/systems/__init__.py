"""
Systems
====================

Reference control problems that satisfy the DPG collaborator contract.
Used by the examples and the tests.
"""

from __future__ import annotations

from .linear_quadratic import (
    LinearQuadraticSystem,
    double_integrator_functions,
    make_double_integrator,
    make_linear_quadratic_functions,
)

__all__ = [
    "LinearQuadraticSystem",
    "double_integrator_functions",
    "make_double_integrator",
    "make_linear_quadratic_functions",
]
