import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Tuple

from pydantic import BaseModel, Field

from .cancellation import CancellationToken
from .config import APIConfiguration
from .exceptions import MaxRetriesExceededError, RequestCancelledError, WebAPIError

logger = logging.getLogger(__name__)


class RetryConfig(BaseModel):
    max_retries: int = Field(default=3, ge=0, description="Attempts beyond the first")
    retry_delay: float = Field(default=1.0, ge=0, description="Linear backoff unit in seconds")
    enable_logging: bool = Field(default=True)

    @classmethod
    def from_configuration(cls, config: APIConfiguration) -> "RetryConfig":
        return cls(
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            enable_logging=config.enable_logging,
        )


class RetryHandler:
    def __init__(self, config: RetryConfig):
        self.config = config

    async def execute_with_retry(
        self,
        operation: Callable[[int], Awaitable[Any]],
        method: str,
        url: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Tuple[Any, int]:
        """
        Run ``operation(attempt)`` until it succeeds or retries run out.

        Returns ``(result, retry_count)``. Any WebAPIError is retried after
        ``retry_delay * (attempt + 1)`` seconds; cancellation is re-raised
        at once. Exhaustion raises MaxRetriesExceededError chained from the
        last failure.
        """
        operation_name = f"{method} {url}"
        last_exception: Optional[WebAPIError] = None
        attempt = 0

        while True:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled(url)

            try:
                result = await operation(attempt)

                if attempt > 0 and self.config.enable_logging:
                    logger.info("%s succeeded on attempt %d", operation_name, attempt + 1)

                return result, attempt

            except RequestCancelledError:
                raise
            except WebAPIError as e:
                last_exception = e

            if attempt >= self.config.max_retries:
                break

            delay = self.calculate_delay(attempt)
            if self.config.enable_logging:
                logger.warning(
                    "Attempt %d/%d failed for %s. Retrying in %.2fs. Error: %s",
                    attempt + 1,
                    self.config.max_retries + 1,
                    operation_name,
                    delay,
                    last_exception,
                )

            await self._wait(delay, cancel_token, url)
            attempt += 1

        raise MaxRetriesExceededError(
            method=method,
            url=url,
            attempts=attempt + 1,
            last_error=last_exception,
        ) from last_exception

    def calculate_delay(self, attempt: int) -> float:
        """Linear backoff: the wait before retry ``attempt + 1``"""
        return self.config.retry_delay * (attempt + 1)

    async def _wait(self, delay: float, cancel_token: Optional[CancellationToken], url: str):
        if cancel_token is None:
            await asyncio.sleep(delay)
        else:
            await cancel_token.sleep(delay, url)
