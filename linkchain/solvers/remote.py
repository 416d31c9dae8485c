"""Step solver backed by a remote helper service.

The helper exposes one GET endpoint per provider::

    GET <endpoint>?url=<percent-encoded url>

and answers with JSON such as::

    {"status": "success", "extracted_link": "https://..."}
    {"status": "success", "best_download_link": "https://...",
     "best_button_name": "FSL Server", "all_available_buttons": [...]}
    {"status": "error", "message": "captcha changed"}

Different helpers name the produced URL differently; the first non-empty key
from :data:`_LINK_KEYS` wins.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from linkchain.config import settings
from linkchain.solvers.base import StepResult, StepSolver

logger = logging.getLogger(__name__)

_LINK_KEYS = ("best_download_link", "final_link", "extracted_link", "link")


class RemoteStepSolver(StepSolver):
    """Call ``endpoint?url=...`` and translate the JSON reply.

    Args:
        name: Provider name shown in traces (``"HubCloud"``).
        endpoint: Absolute URL of the helper endpoint.
        terminal: When true a success is reported as a terminal URL,
            otherwise as the next hop.
        timeout: Request timeout in seconds (defaults to
            ``settings.solver_request_timeout``).
    """

    def __init__(
        self,
        name: str,
        endpoint: str,
        *,
        terminal: bool = False,
        timeout: Optional[float] = None,
    ) -> None:
        self._name = name
        self._endpoint = endpoint
        self._terminal = terminal
        self._timeout = timeout if timeout is not None else settings.solver_request_timeout

    @property
    def name(self) -> str:
        return self._name

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def solve(self, url: str) -> StepResult:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                headers={"User-Agent": settings.user_agent},
            ) as client:
                resp = await client.get(self._endpoint, params={"url": url})
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("[%s] helper request failed: %s", self._name, exc)
            return StepResult.failure(f"{self._name} request failed: {exc}")

        if not isinstance(data, dict):
            return StepResult.failure(f"{self._name} returned an unexpected payload")
        return self._parse(data)

    def _parse(self, data: dict[str, Any]) -> StepResult:
        if data.get("status") != "success":
            return StepResult.failure(str(data.get("message") or f"{self._name} failed"))

        link = next((data[key] for key in _LINK_KEYS if data.get(key)), None)
        if not link:
            return StepResult.failure(str(data.get("message") or "no link"))

        if self._terminal:
            return StepResult.success(
                terminal_url=link,
                button_label=data.get("best_button_name"),
                alternatives=data.get("all_available_buttons") or [],
            )
        return StepResult.success(next_url=link)
