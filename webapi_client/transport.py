import asyncio
import logging
from typing import Optional, Protocol

import aiohttp
from multidict import CIMultiDict, CIMultiDictProxy

from .cancellation import CancellationToken
from .exceptions import RequestCancelledError, TransportError
from .models import OutboundRequest, TransportResponse

logger = logging.getLogger(__name__)


class TransportPort(Protocol):
    """Anything that can put one request on the wire.

    Implementations return the response for every status code and raise
    TransportError only when no response was obtained. They must be safe
    for concurrent use by several requests.
    """

    async def send(
        self,
        request: OutboundRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> TransportResponse:
        ...


class AiohttpTransport:
    """TransportPort backed by a shared aiohttp.ClientSession"""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self._session = session
        # Sessions passed in belong to the caller
        self._owns_session = session is None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

    async def close(self):
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def send(
        self,
        request: OutboundRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> TransportResponse:
        if self._session is None or self._session.closed:
            await self.start()

        if cancel_token is None:
            return await self._perform(request)

        cancel_token.raise_if_cancelled(request.url)
        send_task = asyncio.ensure_future(self._perform(request))
        cancel_task = asyncio.ensure_future(cancel_token.wait())
        try:
            done, _ = await asyncio.wait(
                {send_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (send_task, cancel_task):
                if not task.done():
                    task.cancel()

        if send_task in done:
            return send_task.result()

        logger.debug("Cancelled in-flight %s %s", request.method, request.url)
        raise RequestCancelledError(request.url)

    async def _perform(self, request: OutboundRequest) -> TransportResponse:
        try:
            async with self._session.request(
                method=request.method,
                url=request.url,
                data=request.body,
                headers=request.headers,
                timeout=aiohttp.ClientTimeout(total=request.timeout),
            ) as response:
                body = await response.read()
                return TransportResponse(
                    status_code=response.status,
                    body=body,
                    headers=CIMultiDictProxy(CIMultiDict(response.headers)),
                )
        except asyncio.TimeoutError as e:
            raise TransportError(request.url, f"timed out after {request.timeout}s") from e
        except aiohttp.ClientError as e:
            raise TransportError(request.url, str(e) or type(e).__name__) from e
