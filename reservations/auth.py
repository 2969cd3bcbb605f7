"""Admin access to live calls and the time policy.

The admin API has two surfaces:

  - CALLS        read-only: active calls, one call in detail, the live trace.
                 Caller data is already redacted by CallSession.to_dict().
  - TIME_POLICY  the runtime defaults that turn "at 8" or "for dinner" into a
                 booking time.  Changing them changes future reservations.

Both are guarded by ADMIN_API_KEY.  HTTP callers send it as a Bearer token,
the trace WebSocket as ?token= (browsers cannot set headers there).

  key set, token matches       → allow
  key set, token wrong/absent  → 401 (WebSocket close 4001)
  key empty, DEBUG=true        → allow; a time-policy change is logged loudly
  key empty, DEBUG=false       → 403 (WebSocket close 4003)
"""

from __future__ import annotations

import enum
import logging
import secrets
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Query, WebSocket, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from reservations.config import settings

log = logging.getLogger("reservations.auth")

_bearer_scheme = HTTPBearer(auto_error=False)


class AdminSurface(str, enum.Enum):
    CALLS = "calls"
    TIME_POLICY = "time_policy"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    status_code: int = status.HTTP_200_OK
    reason: str = ""

    @property
    def ws_close_code(self) -> int:
        return 4003 if self.status_code == status.HTTP_403_FORBIDDEN else 4001


def decide(token: Optional[str], surface: AdminSurface) -> AccessDecision:
    """Decide whether ``token`` may use ``surface`` under the current settings."""
    key = settings.admin_api_key

    if not key:
        if settings.debug:
            if surface is AdminSurface.TIME_POLICY:
                log.warning("Time policy opened without ADMIN_API_KEY (DEBUG=true)")
            return AccessDecision(allowed=True)
        return AccessDecision(
            allowed=False,
            status_code=status.HTTP_403_FORBIDDEN,
            reason="Admin API key not configured. Set ADMIN_API_KEY in .env.",
        )

    if not token or not secrets.compare_digest(token.encode(), key.encode()):
        log.warning("Rejected %s access (%s)", surface.value, "no token" if not token else "bad token")
        return AccessDecision(
            allowed=False,
            status_code=status.HTTP_401_UNAUTHORIZED,
            reason="Invalid or missing admin token.",
        )
    return AccessDecision(allowed=True)


def require_admin(surface: AdminSurface) -> Callable:
    """Build the FastAPI dependency guarding one HTTP admin surface."""

    async def guard(
        credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    ) -> None:
        decision = decide(credentials.credentials if credentials else None, surface)
        if decision.allowed:
            return
        headers = None
        if decision.status_code == status.HTTP_401_UNAUTHORIZED:
            headers = {"WWW-Authenticate": "Bearer"}
        raise HTTPException(
            status_code=decision.status_code, detail=decision.reason, headers=headers,
        )

    guard.__name__ = f"require_admin_{surface.value}"
    return guard


async def require_trace_access(
    websocket: WebSocket,
    token: str = Query(default=""),
) -> None:
    """Guard the live trace WebSocket; closes the socket before refusing."""
    decision = decide(token, AdminSurface.CALLS)
    if decision.allowed:
        return
    await websocket.close(code=decision.ws_close_code, reason=decision.reason or "Unauthorized")
    raise HTTPException(status_code=decision.status_code)
