"""Auth Service Token Provider — fetches a short-lived bearer credential for the push handshake.

Invariants:
    - Every call performs a fresh request: a token is never cached across handshakes
    - 401/403 from the Auth Service → HandshakeRejectedError (fatal for the current open)
    - Any other failure → TransportError (the reconnect loop retries)
    - No session cookie → None (anonymous handshake, server decides)

Design Decisions:
    - Callable object: ConnectionManager depends on `async () -> str | None` only,
      tests pass a plain coroutine function
    - GET /api/auth/me returns the AuthResponse whose `token` is the credential
"""

import logging

import httpx

from territory_sync.core.errors import HandshakeRejectedError, TransportError

logger = logging.getLogger(__name__)


class AuthServiceTokenProvider:
    """Issues one fresh credential per call from the external Auth Service."""

    ME_PATH = "/api/auth/me"

    def __init__(
        self,
        base_url: str,
        session_cookie: str | None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._session_cookie = session_cookie
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __call__(self) -> str | None:
        if not self._session_cookie:
            return None
        try:
            response = await self.client.get(
                self.ME_PATH,
                headers={"Cookie": f"token={self._session_cookie}"},
            )
        except httpx.HTTPError as e:
            raise TransportError(f"Auth Service unreachable: {e}")
        if response.status_code in (401, 403):
            raise HandshakeRejectedError(
                f"Auth Service rejected the session ({response.status_code})",
            )
        if response.status_code >= 400:
            raise TransportError(
                f"Auth Service error ({response.status_code})",
            )
        try:
            token = response.json().get("token")
        except (ValueError, AttributeError):
            raise TransportError("Auth Service returned a malformed body")
        if not token:
            logger.warning("Auth Service response had no token")
        return token or None
