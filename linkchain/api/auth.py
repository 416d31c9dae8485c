"""Capability checks applied at the HTTP boundary.

Two callers are accepted on the solve endpoints:

* the scheduler, presenting ``Authorization: Bearer <CRON_SECRET>``;
* same-deployment callers, sending ``X-Linkchain-Internal: true``.

The cron endpoint accepts the bearer token only.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException

from linkchain.config import settings

INTERNAL_HEADER = "X-Linkchain-Internal"


def bearer_matches(authorization: Optional[str]) -> bool:
    secret = settings.cron_secret
    return bool(secret) and authorization == f"Bearer {secret}"


def require_solver_caller(
    authorization: Optional[str] = Header(default=None),
    x_linkchain_internal: Optional[str] = Header(default=None),
) -> None:
    if bearer_matches(authorization):
        return
    if (x_linkchain_internal or "").strip().lower() == "true":
        return
    raise HTTPException(status_code=401, detail="Unauthorized")


def require_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    if not bearer_matches(authorization):
        raise HTTPException(status_code=401, detail="Unauthorized")
