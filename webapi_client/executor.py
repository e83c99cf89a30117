"""
Request execution: URL resolution, header layering, the retry loop and
outcome classification. One ``execute`` call is one logical request and
owns all of its loop state, so concurrent calls share nothing but the
configuration, auth state and default headers they were handed.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from multidict import CIMultiDict

from .auth import AuthenticationState
from .cancellation import CancellationToken
from .config import APIConfiguration
from .decoder import ResponseDecoder
from .exceptions import HTTPError, RequestCancelledError, TransportError, WebAPIError
from .models import OutboundRequest, TransportResponse
from .retry import RetryConfig, RetryHandler
from .transport import TransportPort

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    value: Any
    status_code: int
    retry_count: int


class RequestExecutor:
    def __init__(self, transport: TransportPort, decoder: Optional[ResponseDecoder] = None):
        self.transport = transport
        self.decoder = decoder or ResponseDecoder()

    @staticmethod
    def build_url(config: APIConfiguration, endpoint: str) -> str:
        if endpoint is None:
            raise ValueError("endpoint must not be None")
        return f"{config.full_base_url().rstrip('/')}/{endpoint.lstrip('/')}"

    @staticmethod
    def build_headers(
        config: APIConfiguration,
        auth: AuthenticationState,
        default_headers: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        content_type: Optional[str] = None,
    ) -> CIMultiDict:
        """Layer headers; later layers win, keys compare case-insensitively."""
        merged = CIMultiDict()
        merged["User-Agent"] = config.effective_user_agent()
        merged["Accept"] = "application/json"

        for key, value in auth.headers().items():
            merged[key] = value

        if content_type:
            merged["Content-Type"] = content_type

        for layer in (default_headers, headers):
            for key, value in (layer or {}).items():
                merged[key] = value

        return merged

    async def execute(
        self,
        method: str,
        endpoint: str,
        *,
        config: APIConfiguration,
        auth: AuthenticationState,
        default_headers: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[bytes] = None,
        content_type: Optional[str] = None,
        response_type: Any = Any,
        raw: bool = False,
        timeout_multiplier: float = 1.0,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ExecutionResult:
        """
        Run one logical request against the transport.

        ``raw=True`` skips decoding and returns the body bytes. Raises
        MaxRetriesExceededError once every attempt has failed and
        RequestCancelledError as soon as cancellation is observed.
        """
        method = method.upper()
        url = self.build_url(config, endpoint)
        timeout = config.timeout * timeout_multiplier
        retry_handler = RetryHandler(RetryConfig.from_configuration(config))

        async def attempt_once(attempt: int):
            request = OutboundRequest(
                method=method,
                url=url,
                headers=self.build_headers(config, auth, default_headers, headers, content_type),
                body=body,
                timeout=timeout,
            )
            if config.enable_logging:
                logger.debug("%s %s (attempt %d)", method, url, attempt + 1)

            try:
                response = await self._send(request, cancel_token)
            except WebAPIError as e:
                if cancel_token is not None and cancel_token.is_cancelled:
                    raise RequestCancelledError(url) from e
                raise

            # A cancel that landed during the attempt wins over its outcome
            if cancel_token is not None:
                cancel_token.raise_if_cancelled(url)

            if not response.is_success:
                raise HTTPError(url, response.status_code, response.text())
            if raw:
                return response
            return self.decoder.decode(response.body, response.status_code, response_type, url)

        value, retry_count = await retry_handler.execute_with_retry(
            attempt_once, method=method, url=url, cancel_token=cancel_token
        )

        if raw:
            return ExecutionResult(value=value.body, status_code=value.status_code, retry_count=retry_count)
        return ExecutionResult(value=value, status_code=value.status_code, retry_count=retry_count)

    async def _send(self, request: OutboundRequest, cancel_token: Optional[CancellationToken]) -> TransportResponse:
        try:
            return await self.transport.send(request, cancel_token)
        except WebAPIError:
            raise
        except (OSError, asyncio.TimeoutError) as e:
            # Ports are expected to raise TransportError, but tolerate raw I/O errors
            raise TransportError(request.url, str(e) or type(e).__name__) from e
