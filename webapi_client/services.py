import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from .cancellation import CancellationToken
from .client import WebAPIClient
from .exceptions import RequestCancelledError, ServiceNotInitializedError
from .models import ResponseEnvelope

logger = logging.getLogger(__name__)


class BaseAPIService:
    """
    Groups the endpoints of one API area under a common prefix.

    Services may be created before the client exists; bind one later with
    ``initialize(client)``. Calls made before that raise
    ServiceNotInitializedError.
    """

    def __init__(self, service_endpoint: str = ""):
        self.service_endpoint = service_endpoint
        self._client: Optional[WebAPIClient] = None

    def initialize(self, client: WebAPIClient):
        if client is None:
            raise ValueError("client must not be None")
        self._client = client

    @property
    def is_initialized(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> WebAPIClient:
        if self._client is None:
            raise ServiceNotInitializedError(type(self).__name__)
        return self._client

    def build_endpoint(self, endpoint: str) -> str:
        if not self.service_endpoint:
            return endpoint
        return f"{self.service_endpoint.rstrip('/')}/{endpoint.lstrip('/')}"

    async def safe_execute(
        self,
        operation: Callable[[], Awaitable[ResponseEnvelope]],
        operation_name: str = "API Operation",
    ) -> ResponseEnvelope:
        """Await ``operation`` and turn any error except cancellation into a failed envelope"""
        try:
            return await operation()
        except RequestCancelledError:
            raise
        except Exception as e:
            logger.error("Service Error [%s]: %s failed. Exception: %s", type(self).__name__, operation_name, e)
            return ResponseEnvelope.failure(
                f"{operation_name} failed",
                getattr(e, "status_code", None) or 500,
            )

    # Helper methods for common operations
    async def _get(self, endpoint: str, response_type: Any = Any, headers: Optional[Dict[str, str]] = None,
                   cancel_token: Optional[CancellationToken] = None) -> ResponseEnvelope:
        return await self.client.get(self.build_endpoint(endpoint), response_type, headers, cancel_token)

    async def _post(self, endpoint: str, data: Any = None, response_type: Any = Any,
                    headers: Optional[Dict[str, str]] = None,
                    cancel_token: Optional[CancellationToken] = None) -> ResponseEnvelope:
        return await self.client.post(self.build_endpoint(endpoint), data, response_type, headers, cancel_token)

    async def _put(self, endpoint: str, data: Any = None, response_type: Any = Any,
                   headers: Optional[Dict[str, str]] = None,
                   cancel_token: Optional[CancellationToken] = None) -> ResponseEnvelope:
        return await self.client.put(self.build_endpoint(endpoint), data, response_type, headers, cancel_token)

    async def _delete(self, endpoint: str, response_type: Any = Any, headers: Optional[Dict[str, str]] = None,
                      cancel_token: Optional[CancellationToken] = None) -> ResponseEnvelope:
        return await self.client.delete(self.build_endpoint(endpoint), response_type, headers, cancel_token)
