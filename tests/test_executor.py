import asyncio
import time
from unittest.mock import AsyncMock

import pytest

from webapi_client.auth import AuthenticationState
from webapi_client.cancellation import CancellationToken
from webapi_client.config import APIConfiguration, AuthenticationType
from webapi_client.exceptions import (
    DecodeError,
    HTTPError,
    MaxRetriesExceededError,
    RequestCancelledError,
    TransportError,
)
from webapi_client.executor import RequestExecutor
from webapi_client.models import TransportResponse
from webapi_client.retry import RetryHandler

from conftest import FakeTransport, json_response


@pytest.fixture
def auth():
    return AuthenticationState()


class TestUrlResolution:

    @pytest.mark.parametrize("endpoint,expected", [
        ("health", "https://api.example.com/v1/health"),
        ("/health", "https://api.example.com/v1/health"),
        ("users/42/", "https://api.example.com/v1/users/42/"),
        ("", "https://api.example.com/v1/"),
    ])
    def test_build_url(self, endpoint, expected):
        config = APIConfiguration(base_url="https://api.example.com/", api_version="v1")
        assert RequestExecutor.build_url(config, endpoint) == expected

    def test_none_endpoint_rejected(self):
        with pytest.raises(ValueError):
            RequestExecutor.build_url(APIConfiguration(), None)


class TestHeaderLayering:

    def test_fixed_defaults(self, auth):
        headers = RequestExecutor.build_headers(APIConfiguration(user_agent="ua/1"), auth)
        assert headers["User-Agent"] == "ua/1"
        assert headers["Accept"] == "application/json"
        assert "Authorization" not in headers

    def test_bearer_and_api_key(self, auth):
        config = APIConfiguration()
        auth.set_authentication("tok", AuthenticationType.BEARER)
        assert RequestExecutor.build_headers(config, auth)["Authorization"] == "Bearer tok"

        auth.set_authentication("key", AuthenticationType.API_KEY)
        headers = RequestExecutor.build_headers(config, auth)
        assert headers["X-API-Key"] == "key"
        assert "Authorization" not in headers

    @pytest.mark.parametrize("scheme", [AuthenticationType.BASIC, AuthenticationType.NONE])
    def test_basic_and_none_add_nothing(self, auth, scheme):
        auth.set_authentication("tok", scheme)
        headers = RequestExecutor.build_headers(APIConfiguration(), auth)
        assert "Authorization" not in headers
        assert "X-API-Key" not in headers

    def test_later_layers_win_case_insensitively(self, auth):
        auth.set_authentication("tok")
        headers = RequestExecutor.build_headers(
            APIConfiguration(user_agent="ua/1"),
            auth,
            default_headers={"accept": "text/plain", "X-Team": "a"},
            headers={"x-team": "b", "AUTHORIZATION": "Bearer override"},
            content_type="application/json",
        )

        assert headers["Accept"] == "text/plain"
        assert headers["X-Team"] == "b"
        assert headers["Authorization"] == "Bearer override"
        assert headers["Content-Type"] == "application/json"
        assert len(headers.getall("x-team")) == 1


class TestRetryLoop:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_retries", [0, 1, 3])
    async def test_always_failing_transport_makes_n_plus_one_attempts(self, auth, max_retries):
        transport = FakeTransport(TransportResponse(status_code=503, body=b"busy"))
        executor = RequestExecutor(transport)
        config = APIConfiguration(max_retries=max_retries, retry_delay=0)

        with pytest.raises(MaxRetriesExceededError) as exc_info:
            await executor.execute("GET", "health", config=config, auth=auth)

        assert transport.call_count == max_retries + 1
        assert exc_info.value.retry_count == max_retries
        assert exc_info.value.status_code == 503
        assert isinstance(exc_info.value.last_error, HTTPError)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("succeed_on", [1, 2, 3])
    async def test_succeeds_on_attempt_k(self, auth, succeed_on):
        failures = [TransportResponse(status_code=500, body=b"")] * (succeed_on - 1)
        transport = FakeTransport(*failures, json_response(200, {"success": True, "data": 1}))
        executor = RequestExecutor(transport)

        result = await executor.execute(
            "GET", "health", config=APIConfiguration(max_retries=2, retry_delay=0), auth=auth
        )

        assert transport.call_count == succeed_on
        assert result.retry_count == succeed_on - 1
        assert result.value.success is True
        assert result.value.data == 1

    @pytest.mark.asyncio
    async def test_linear_backoff_delays(self, auth, monkeypatch):
        wait = AsyncMock()
        monkeypatch.setattr(RetryHandler, "_wait", wait)
        transport = FakeTransport(TransportResponse(status_code=503, body=b""))
        config = APIConfiguration(max_retries=3, retry_delay=1)

        with pytest.raises(MaxRetriesExceededError):
            await RequestExecutor(transport).execute("GET", "health", config=config, auth=auth)

        delays = [call.args[0] for call in wait.await_args_list]
        assert delays == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_backoff_actually_sleeps(self, auth):
        transport = FakeTransport(TransportResponse(status_code=503, body=b""))
        config = APIConfiguration(max_retries=2, retry_delay=0.05)

        start = time.monotonic()
        with pytest.raises(MaxRetriesExceededError):
            await RequestExecutor(transport).execute("GET", "health", config=config, auth=auth)

        # 0.05 * 1 + 0.05 * 2
        assert time.monotonic() - start >= 0.15 - 0.01

    @pytest.mark.asyncio
    async def test_transport_and_decode_errors_are_retried(self, auth):
        transport = FakeTransport(
            TransportError("https://api.example.com/v1/x", "connection refused"),
            ConnectionResetError("reset by peer"),
            TransportResponse(status_code=200, body=b"<html>not json"),
            json_response(200, {"success": True, "data": "done"}),
        )
        config = APIConfiguration(max_retries=3, retry_delay=0)

        result = await RequestExecutor(transport).execute("GET", "x", config=config, auth=auth)

        assert transport.call_count == 4
        assert result.retry_count == 3
        assert result.value.data == "done"

    @pytest.mark.asyncio
    async def test_transport_error_maps_to_500(self, auth):
        transport = FakeTransport(TransportError("https://api.example.com/v1/x", "dns failure"))
        config = APIConfiguration(max_retries=0, retry_delay=0)

        with pytest.raises(MaxRetriesExceededError) as exc_info:
            await RequestExecutor(transport).execute("GET", "x", config=config, auth=auth)

        assert exc_info.value.status_code == 500
        assert isinstance(exc_info.value.__cause__, TransportError)

    @pytest.mark.asyncio
    async def test_decode_error_keeps_status(self, auth):
        transport = FakeTransport(TransportResponse(status_code=200, body=b"{broken"))
        config = APIConfiguration(max_retries=0, retry_delay=0)

        with pytest.raises(MaxRetriesExceededError) as exc_info:
            await RequestExecutor(transport).execute("GET", "x", config=config, auth=auth)

        assert isinstance(exc_info.value.last_error, DecodeError)

    @pytest.mark.asyncio
    async def test_body_resent_unchanged(self, auth):
        transport = FakeTransport(
            TransportResponse(status_code=502, body=b""),
            json_response(200, {"success": True}),
        )
        config = APIConfiguration(max_retries=1, retry_delay=0)

        await RequestExecutor(transport).execute(
            "POST", "orders", config=config, auth=auth, body=b'{"sku": 1}', content_type="application/json"
        )

        assert [r.body for r in transport.requests] == [b'{"sku": 1}', b'{"sku": 1}']
        assert transport.requests[0] is not transport.requests[1]

    @pytest.mark.asyncio
    async def test_timeout_multiplier(self, auth):
        transport = FakeTransport(TransportResponse(status_code=200, body=b"bytes"))
        config = APIConfiguration(timeout=10)

        result = await RequestExecutor(transport).execute(
            "GET", "file", config=config, auth=auth, raw=True, timeout_multiplier=3
        )

        assert transport.requests[0].timeout == 30
        assert result.value == b"bytes"

    @pytest.mark.asyncio
    async def test_auth_change_applies_to_next_request(self, auth, ok_transport):
        executor = RequestExecutor(ok_transport)
        config = APIConfiguration()

        auth.set_authentication("tok")
        await executor.execute("GET", "me", config=config, auth=auth)
        auth.clear_authentication()
        await executor.execute("GET", "me", config=config, auth=auth)

        assert ok_transport.requests[0].headers["Authorization"] == "Bearer tok"
        assert "Authorization" not in ok_transport.requests[1].headers


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancelled_before_first_attempt(self, auth, ok_transport):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(RequestCancelledError):
            await RequestExecutor(ok_transport).execute(
                "GET", "x", config=APIConfiguration(), auth=auth, cancel_token=token
            )

        assert ok_transport.call_count == 0

    @pytest.mark.asyncio
    async def test_cancel_during_backoff_skips_next_attempt(self, auth):
        transport = FakeTransport(TransportResponse(status_code=503, body=b""))
        config = APIConfiguration(max_retries=3, retry_delay=5)
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.05, token.cancel)

        start = time.monotonic()
        with pytest.raises(RequestCancelledError):
            await RequestExecutor(transport).execute(
                "GET", "x", config=config, auth=auth, cancel_token=token
            )

        assert transport.call_count == 1
        assert time.monotonic() - start < 2

    @pytest.mark.asyncio
    async def test_cancellation_from_transport_is_not_retried(self, auth):
        transport = FakeTransport(RequestCancelledError("https://api.example.com/v1/x"))
        config = APIConfiguration(max_retries=5, retry_delay=0)

        with pytest.raises(RequestCancelledError):
            await RequestExecutor(transport).execute("GET", "x", config=config, auth=auth)

        assert transport.call_count == 1

    @pytest.mark.asyncio
    async def test_token_is_passed_to_transport(self, auth, ok_transport):
        token = CancellationToken()
        await RequestExecutor(ok_transport).execute(
            "GET", "x", config=APIConfiguration(), auth=auth, cancel_token=token
        )
        assert ok_transport.cancel_tokens == [token]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("outcome", [
        TransportResponse(status_code=503, body=b"Service Unavailable"),
        json_response(200, {"success": True, "data": 1}),
        TransportError("https://api.example.com/v1/x", "connection reset"),
    ])
    async def test_cancel_during_send_wins_over_outcome(self, auth, outcome):
        token = CancellationToken()
        transport = CancellingTransport(token, outcome)
        config = APIConfiguration(max_retries=3, retry_delay=0)

        with pytest.raises(RequestCancelledError):
            await RequestExecutor(transport).execute(
                "GET", "x", config=config, auth=auth, cancel_token=token
            )

        assert transport.call_count == 1


class CancellingTransport(FakeTransport):
    """Cancels the token while the request is in flight, then answers"""

    def __init__(self, token, *outcomes):
        super().__init__(*outcomes)
        self.token = token

    async def send(self, request, cancel_token=None):
        self.token.cancel()
        return await super().send(request, cancel_token)


class TestAuthenticationState:

    def test_initial_state(self, auth):
        assert auth.token is None
        assert auth.scheme == AuthenticationType.NONE
        assert auth.is_authenticated is False
        assert auth.headers() == {}

    def test_is_authenticated(self, auth):
        auth.set_authentication("tok")
        assert auth.is_authenticated is True

        auth.set_authentication("", AuthenticationType.BEARER)
        assert auth.is_authenticated is False

        auth.set_authentication("tok", AuthenticationType.NONE)
        assert auth.is_authenticated is False

        auth.set_authentication("tok")
        auth.clear_authentication()
        assert auth.is_authenticated is False
        assert auth.scheme == AuthenticationType.NONE

    @pytest.mark.parametrize("scheme,header,value", [
        ("Bearer", "Authorization", "Bearer tok"),
        ("bearer", "Authorization", "Bearer tok"),
        ("ApiKey", "X-API-Key", "tok"),
        ("api-key", "X-API-Key", "tok"),
        ("api_key", "X-API-Key", "tok"),
    ])
    def test_scheme_accepts_common_spellings(self, auth, scheme, header, value):
        auth.set_authentication("tok", scheme)
        assert auth.headers() == {header: value}

    def test_unknown_scheme_rejected(self, auth):
        with pytest.raises(ValueError):
            auth.set_authentication("tok", "oauth")


class TestCancellationToken:

    def test_is_cancelled(self):
        token = CancellationToken()
        assert token.is_cancelled is False
        token.raise_if_cancelled()

        token.cancel()

        assert token.is_cancelled is True
        with pytest.raises(RequestCancelledError):
            token.raise_if_cancelled("https://api.example.com/v1/x")

    @pytest.mark.asyncio
    async def test_sleep_returns_after_delay_when_not_cancelled(self):
        token = CancellationToken()
        await token.sleep(0.01)
        assert token.is_cancelled is False
