"""Provider shapes and the registry that maps URLs onto solvers.

A *shape* is a pipeline stage plus the set of host fragments that identify a
provider at that stage.  A URL matches a shape when its hostname contains one
of the fragments (providers rotate TLDs, so ``"hubcloud"`` matches both
``hubcloud.one`` and ``hubcloud.ink``).  Only the host is inspected, never the
path or query string.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Iterable, Optional
from urllib.parse import urlsplit

from linkchain.config import Settings, settings as default_settings
from linkchain.solvers.base import StepSolver
from linkchain.solvers.remote import RemoteStepSolver


class Stage(str, enum.Enum):
    DIRECT_TERMINAL = "direct_terminal"
    GATE = "gate"
    UNLOCK_TIER_1 = "unlock_tier_1"
    UNLOCK_TIER_2 = "unlock_tier_2"
    CLOUD_TERMINAL = "cloud_terminal"


def host_of(url: Any) -> str:
    """Return the lower-cased hostname of *url*, or ``""`` when there is none."""
    if not isinstance(url, str) or not url.strip():
        return ""
    candidate = url.strip()
    if "://" not in candidate:
        candidate = "//" + candidate
    try:
        return (urlsplit(candidate).hostname or "").lower()
    except ValueError:
        return ""


def host_matches(url: Any, domains: Iterable[str]) -> bool:
    host = host_of(url)
    if not host:
        return False
    return any(domain.lower() in host for domain in domains if domain)


@dataclass(frozen=True)
class ProviderShape:
    stage: Stage
    domains: tuple[str, ...]
    solver: StepSolver

    @property
    def name(self) -> str:
        return self.solver.name

    def matches(self, url: Any) -> bool:
        return host_matches(url, self.domains)


class SolverRegistry:
    """Ordered collection of provider shapes.

    Within a stage, shapes are tried in registration order and the first
    match wins.
    """

    def __init__(self, shapes: Iterable[ProviderShape] = ()) -> None:
        self._shapes: list[ProviderShape] = list(shapes)

    def register(self, stage: Stage, domains: Iterable[str], solver: StepSolver) -> None:
        self._shapes.append(ProviderShape(stage, tuple(domains), solver))

    def match(self, stage: Stage, url: Any) -> Optional[ProviderShape]:
        for shape in self._shapes:
            if shape.stage is stage and shape.matches(url):
                return shape
        return None

    def domains(self, stage: Stage) -> set[str]:
        return {d for shape in self._shapes if shape.stage is stage for d in shape.domains}

    def __len__(self) -> int:
        return len(self._shapes)


def build_registry(config: Optional[Settings] = None) -> SolverRegistry:
    """Wire every provider onto the remote helper service described by *config*."""
    cfg = config or default_settings
    base = cfg.solver_api_url.rstrip("/")
    timeout = cfg.solver_request_timeout

    def remote(name: str, path: str, terminal: bool = False) -> RemoteStepSolver:
        return RemoteStepSolver(name, f"{base}/{path}", terminal=terminal, timeout=timeout)

    registry = SolverRegistry()
    registry.register(
        Stage.DIRECT_TERMINAL, cfg.direct_terminal_domains, remote("HubCDN", "hubcdn", terminal=True)
    )
    registry.register(Stage.GATE, cfg.native_gate_domains, remote("GadgetsWeb", "gadgetsweb"))
    registry.register(
        Stage.GATE,
        cfg.timer_gate_domains,
        RemoteStepSolver("Timer helper", cfg.timer_api_url, timeout=timeout),
    )
    registry.register(Stage.UNLOCK_TIER_1, cfg.unlock_tier1_domains, remote("HBLinks", "hblinks"))
    registry.register(Stage.UNLOCK_TIER_2, cfg.unlock_tier2_domains, remote("HubDrive", "hubdrive"))
    registry.register(
        Stage.CLOUD_TERMINAL, cfg.cloud_terminal_domains, remote("HubCloud", "hubcloud", terminal=True)
    )
    return registry
