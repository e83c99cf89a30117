import json
from typing import Any, List, Optional

import pytest

from webapi_client.cancellation import CancellationToken
from webapi_client.config import APIConfiguration
from webapi_client.models import OutboundRequest, TransportResponse


def json_response(status_code: int, payload: Any) -> TransportResponse:
    return TransportResponse(status_code=status_code, body=json.dumps(payload).encode("utf-8"))


class FakeTransport:
    """Scripted TransportPort. The last scripted outcome repeats forever."""

    def __init__(self, *outcomes):
        self._outcomes = list(outcomes) or [json_response(200, {"success": True})]
        self.requests: List[OutboundRequest] = []
        self.cancel_tokens: List[Optional[CancellationToken]] = []

    async def send(self, request: OutboundRequest, cancel_token: Optional[CancellationToken] = None):
        self.requests.append(request)
        self.cancel_tokens.append(cancel_token)
        outcome = self._outcomes.pop(0) if len(self._outcomes) > 1 else self._outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    @property
    def call_count(self) -> int:
        return len(self.requests)


@pytest.fixture
def config():
    return APIConfiguration(
        base_url="https://api.example.com",
        api_version="v1",
        max_retries=2,
        retry_delay=0,
        enable_metrics=True,
    )


@pytest.fixture
def ok_transport():
    return FakeTransport(json_response(200, {"success": True, "data": {"ok": True}}))
