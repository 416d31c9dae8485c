"""Step-solver package: the provider capability the resolver drives."""

from linkchain.solvers.base import StepResult, StepSolver
from linkchain.solvers.registry import (
    ProviderShape,
    SolverRegistry,
    Stage,
    build_registry,
    host_matches,
    host_of,
)
from linkchain.solvers.remote import RemoteStepSolver

__all__ = [
    "StepResult",
    "StepSolver",
    "RemoteStepSolver",
    "ProviderShape",
    "SolverRegistry",
    "Stage",
    "build_registry",
    "host_of",
    "host_matches",
]
