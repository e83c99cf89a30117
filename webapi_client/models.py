import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Generic, Mapping, Optional, TypeVar

from multidict import CIMultiDict, CIMultiDictProxy
from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


def _new_request_id() -> str:
    return uuid.uuid4().hex[:8]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResponseEnvelope(BaseModel, Generic[T]):
    """Typed result of a logical request.

    ``request_id`` and ``timestamp`` are generated when the envelope is
    built, never copied from the server. ``status_code`` is always the
    status observed on the wire, or 500 when the server was never reached.
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    message: Optional[str] = None
    data: Optional[T] = None
    status_code: int = Field(default=500, alias="statusCode")
    request_id: str = Field(default_factory=_new_request_id, alias="requestId")
    timestamp: datetime = Field(default_factory=_utcnow)

    @classmethod
    def ok(cls, data: Optional[T], status_code: int, message: Optional[str] = None) -> "ResponseEnvelope[T]":
        return cls(success=True, data=data, status_code=status_code, message=message)

    @classmethod
    def failure(cls, message: str, status_code: int = 500) -> "ResponseEnvelope[T]":
        return cls(success=False, message=message, data=None, status_code=status_code)


class WireEnvelope(BaseModel, Generic[T]):
    """Envelope shape as some servers send it. ``success`` must be present."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: Optional[str] = None
    data: Optional[T] = None


class RequestMetrics(BaseModel):
    url: str
    method: str
    duration: float = Field(description="Seconds from first attempt to terminal outcome")
    status_code: int
    success: bool
    timestamp: datetime = Field(description="When the logical request started")
    retry_count: int = Field(default=0, description="Attempts beyond the first")


@dataclass
class OutboundRequest:
    method: str
    url: str
    headers: CIMultiDict = field(default_factory=CIMultiDict)
    body: Optional[bytes] = None
    timeout: float = 30.0


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=lambda: CIMultiDictProxy(CIMultiDict()))

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding, errors="replace")
