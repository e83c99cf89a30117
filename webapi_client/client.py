import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from multidict import CIMultiDict
from pydantic import BaseModel

from .auth import AuthenticationState
from .cancellation import CancellationToken
from .config import APIConfiguration, AuthenticationType
from .decoder import ResponseDecoder
from .events import ObservabilitySink
from .exceptions import MaxRetriesExceededError, RequestCancelledError
from .executor import RequestExecutor
from .metrics import MetricsCollector
from .models import RequestMetrics, ResponseEnvelope
from .multipart import encode_file_upload
from .transport import AiohttpTransport, TransportPort

logger = logging.getLogger(__name__)

# Uploads and downloads get this multiple of the configured timeout
TRANSFER_TIMEOUT_MULTIPLIER = 3


class WebAPIClient:
    """
    Resilient HTTP client: one method per verb, each returning a typed
    ResponseEnvelope (or bytes for downloads) after transparent retries.
    """

    def __init__(
        self,
        config: Optional[APIConfiguration] = None,
        transport: Optional[TransportPort] = None,
        decoder: Optional[ResponseDecoder] = None,
    ):
        self._config = config or APIConfiguration()
        self._auth = AuthenticationState()
        self._default_headers: CIMultiDict = CIMultiDict()

        if self._config.api_key:
            self._auth.set_authentication(self._config.api_key, self._config.authentication_type)

        # Transports passed in belong to the caller
        self._owns_transport = transport is None
        self._transport = transport if transport is not None else AiohttpTransport()
        self._executor = RequestExecutor(self._transport, decoder)

        self.events = ObservabilitySink()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Open the default transport"""
        if self._owns_transport:
            await self._transport.start()
        if self._config.enable_logging:
            logger.info("WebAPIClient ready for %s", self._config.full_base_url())

    async def close(self):
        """Release the default transport and wait for async subscribers"""
        await self.events.drain()
        if self._owns_transport:
            await self._transport.close()

    @property
    def configuration(self) -> APIConfiguration:
        return self._config

    @property
    def authentication(self) -> AuthenticationState:
        return self._auth

    @property
    def default_headers(self) -> Dict[str, str]:
        return dict(self._default_headers)

    # Management methods
    def set_authentication(self, token: str, auth_type: AuthenticationType = AuthenticationType.BEARER):
        self._auth.set_authentication(token, auth_type)
        if self._config.enable_logging:
            logger.info("Authentication set: %s", self._auth.scheme.value)

    def clear_authentication(self):
        self._auth.clear_authentication()
        if self._config.enable_logging:
            logger.info("Authentication cleared")

    def add_default_header(self, key: str, value: str):
        self._default_headers[key] = value

    def remove_default_header(self, key: str):
        self._default_headers.popall(key, None)

    def update_configuration(self, config: APIConfiguration):
        """Swap the whole configuration; calls already running keep the old one"""
        if config is None:
            raise ValueError("config must not be None")
        self._config = config
        if config.enable_logging:
            logger.info("API configuration updated: %s", config.full_base_url())

    def attach_metrics(self, collector: Optional[MetricsCollector] = None) -> MetricsCollector:
        """Subscribe a Prometheus collector to completed-request events"""
        collector = collector or MetricsCollector()
        self.events.on_request_completed(collector.record)
        return collector

    # Verb methods
    async def get(
        self,
        endpoint: str,
        response_type: Any = Any,
        headers: Optional[Dict[str, str]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ResponseEnvelope:
        return await self._request("GET", endpoint, response_type=response_type,
                                   headers=headers, cancel_token=cancel_token)

    async def post(
        self,
        endpoint: str,
        data: Any = None,
        response_type: Any = Any,
        headers: Optional[Dict[str, str]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ResponseEnvelope:
        return await self._request("POST", endpoint, data=data, response_type=response_type,
                                   headers=headers, cancel_token=cancel_token)

    async def put(
        self,
        endpoint: str,
        data: Any = None,
        response_type: Any = Any,
        headers: Optional[Dict[str, str]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ResponseEnvelope:
        return await self._request("PUT", endpoint, data=data, response_type=response_type,
                                   headers=headers, cancel_token=cancel_token)

    async def delete(
        self,
        endpoint: str,
        response_type: Any = Any,
        headers: Optional[Dict[str, str]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ResponseEnvelope:
        return await self._request("DELETE", endpoint, response_type=response_type,
                                   headers=headers, cancel_token=cancel_token)

    async def upload(
        self,
        endpoint: str,
        data: bytes,
        file_name: str,
        content_type: str = "application/octet-stream",
        headers: Optional[Dict[str, str]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ResponseEnvelope[str]:
        """POST ``data`` as the ``file`` field of a multipart form"""
        body, form_content_type = await encode_file_upload(data, file_name, content_type)
        return await self._request(
            "POST",
            endpoint,
            body=body,
            content_type=form_content_type,
            response_type=str,
            headers=headers,
            cancel_token=cancel_token,
            timeout_multiplier=TRANSFER_TIMEOUT_MULTIPLIER,
            label="UPLOAD",
            failure_message="Upload failed",
        )

    async def download(
        self,
        endpoint: str,
        headers: Optional[Dict[str, str]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> bytes:
        """GET raw bytes. Raises MaxRetriesExceededError on terminal failure."""
        return await self._request(
            "GET",
            endpoint,
            headers=headers,
            cancel_token=cancel_token,
            timeout_multiplier=TRANSFER_TIMEOUT_MULTIPLIER,
            label="DOWNLOAD",
            raw=True,
        )

    async def test_connection(self, endpoint: str = "health") -> bool:
        response = await self.get(endpoint)
        if self._config.enable_logging:
            logger.info("Connection test result: %s", response.success)
        return response.success

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        data: Any = None,
        body: Optional[bytes] = None,
        content_type: Optional[str] = None,
        response_type: Any = Any,
        headers: Optional[Dict[str, str]] = None,
        cancel_token: Optional[CancellationToken] = None,
        timeout_multiplier: float = 1.0,
        label: Optional[str] = None,
        raw: bool = False,
        failure_message: Optional[str] = None,
    ):
        label = label or method
        failure_message = failure_message or f"{label} request failed"
        # Snapshot: a configuration swap mid-flight does not affect this call
        config = self._config
        url = self._executor.build_url(config, endpoint)
        started_at = datetime.now(timezone.utc)
        start_time = time.monotonic()

        if data is not None:
            try:
                body = _serialize_json(data)
            except (TypeError, ValueError) as e:
                self._report_failure(config, label, url, e)
                return ResponseEnvelope[response_type].failure(f"{failure_message}: {e}", 500)
            content_type = "application/json"

        try:
            result = await self._executor.execute(
                method,
                endpoint,
                config=config,
                auth=self._auth,
                default_headers=self._default_headers,
                headers=headers,
                body=body,
                content_type=content_type,
                response_type=response_type,
                raw=raw,
                timeout_multiplier=timeout_multiplier,
                cancel_token=cancel_token,
            )
        except RequestCancelledError:
            if config.enable_logging:
                logger.info("%s %s cancelled", label, url)
            raise
        except MaxRetriesExceededError as e:
            self._record_metrics(config, url, label, start_time, started_at,
                                 status_code=e.status_code, success=False, retry_count=e.retry_count)
            self._report_failure(config, label, url, e)
            if raw:
                raise
            return ResponseEnvelope[response_type].failure(
                f"{failure_message}: {e.last_error}", e.status_code
            )

        success = True if raw else result.value.success
        self._record_metrics(config, url, label, start_time, started_at,
                             status_code=result.status_code, success=success,
                             retry_count=result.retry_count)
        return result.value

    def _report_failure(self, config: APIConfiguration, label: str, url: str, error: Exception):
        if config.enable_logging:
            logger.error("API Error: %s %s failed. Exception: %s", label, url, error)
        self.events.emit_failed(error)

    def _record_metrics(
        self,
        config: APIConfiguration,
        url: str,
        method: str,
        start_time: float,
        started_at: datetime,
        status_code: int,
        success: bool,
        retry_count: int,
    ):
        duration = time.monotonic() - start_time
        if config.enable_logging:
            logger.info("Request completed: %s %s - %d (%.2fs, %d retries)",
                        method, url, status_code, duration, retry_count)
        if not config.enable_metrics:
            return

        self.events.emit_completed(RequestMetrics(
            url=url,
            method=method,
            duration=duration,
            status_code=status_code,
            success=success,
            timestamp=started_at,
            retry_count=retry_count,
        ))


def _serialize_json(data: Any) -> bytes:
    if isinstance(data, BaseModel):
        return data.model_dump_json(by_alias=True).encode("utf-8")
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    return json.dumps(data).encode("utf-8")
