"""Auth Service Token Provider — fresh credential per handshake."""

import httpx
import pytest

from territory_sync.core.errors import HandshakeRejectedError, TransportError
from territory_sync.infrastructure.auth_tokens import AuthServiceTokenProvider


def _provider(handler, cookie="cookie-1") -> AuthServiceTokenProvider:
    return AuthServiceTokenProvider(
        "http://auth.test", cookie, transport=httpx.MockTransport(handler),
    )


async def test_each_call_fetches_a_fresh_token():
    calls = []

    def handler(request):
        calls.append(request)
        assert request.url.path == "/api/auth/me"
        assert request.headers["cookie"] == "token=cookie-1"
        return httpx.Response(200, json={
            "token": f"jwt-{len(calls)}", "userId": 1, "username": "me",
        })

    provider = _provider(handler)
    assert await provider() == "jwt-1"
    assert await provider() == "jwt-2"
    await provider.aclose()
    assert len(calls) == 2


async def test_without_cookie_no_request_is_made():
    calls = []
    provider = _provider(lambda r: calls.append(r), cookie=None)
    assert await provider() is None
    await provider.aclose()
    assert calls == []


@pytest.mark.parametrize("status_code", [401, 403])
async def test_rejected_session_is_fatal(status_code):
    provider = _provider(lambda r: httpx.Response(status_code))
    with pytest.raises(HandshakeRejectedError):
        await provider()
    await provider.aclose()


async def test_server_error_is_transient():
    provider = _provider(lambda r: httpx.Response(502))
    with pytest.raises(TransportError) as exc_info:
        await provider()
    await provider.aclose()
    assert not isinstance(exc_info.value, HandshakeRejectedError)


async def test_unreachable_auth_service_is_transient():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    provider = _provider(handler)
    with pytest.raises(TransportError):
        await provider()
    await provider.aclose()
