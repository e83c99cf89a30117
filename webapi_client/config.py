import os
import platform
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import InvalidConfigurationError

CLIENT_VERSION = "0.1.0"

_TRUE_VALUES = {"1", "true", "yes", "on"}


class AuthenticationType(str, Enum):
    NONE = "none"
    BEARER = "bearer"
    API_KEY = "api_key"
    BASIC = "basic"

    @classmethod
    def _missing_(cls, value):
        # Accept "Bearer", "ApiKey", "api-key" and friends
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower().replace("-", "_")
        if normalized == "apikey":
            normalized = "api_key"
        for member in cls:
            if member.value == normalized:
                return member
        return None


class APIConfiguration(BaseModel):
    """Immutable client settings. Replace the whole object to change anything."""

    model_config = ConfigDict(frozen=True)

    # Base settings
    base_url: str = Field(default="https://api.example.com", description="Server root URL")
    api_version: str = Field(default="v1", description="Version segment appended to base_url")

    # Authentication
    api_key: str = Field(default="", description="Credential seeded into the client on construction")
    authentication_type: AuthenticationType = Field(default=AuthenticationType.BEARER)

    # Request settings
    timeout: float = Field(default=30.0, gt=0, le=120, description="Per-attempt timeout in seconds")
    max_retries: int = Field(default=3, ge=0, le=10, description="Attempts beyond the first")
    retry_delay: float = Field(default=1.0, ge=0, le=5, description="Linear backoff unit in seconds")

    # Advanced
    enable_logging: bool = Field(default=True)
    enable_metrics: bool = Field(default=False)
    user_agent: str = Field(default="", description="Empty means auto-generated")

    def full_base_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.api_version.strip('/')}"

    def effective_user_agent(self) -> str:
        if self.user_agent:
            return self.user_agent
        return f"Python/{platform.python_version()} webapi-client/{CLIENT_VERSION}"

    def with_overrides(self, **changes: Any) -> "APIConfiguration":
        """Return a validated copy with ``changes`` applied."""
        return type(self)(**{**self.model_dump(), **changes})

    @classmethod
    def from_environment(cls, prefix: str = "WEBAPI_") -> "APIConfiguration":
        """Build a configuration from ``<prefix>*`` environment variables.

        Unset variables keep their defaults. Values that cannot be parsed
        raise InvalidConfigurationError naming the offending variable.
        """
        readers = {
            "base_url": ("BASE_URL", str),
            "api_version": ("API_VERSION", str),
            "api_key": ("API_KEY", str),
            "authentication_type": ("AUTH_TYPE", AuthenticationType),
            "timeout": ("TIMEOUT", float),
            "max_retries": ("MAX_RETRIES", int),
            "retry_delay": ("RETRY_DELAY", float),
            "enable_logging": ("ENABLE_LOGGING", _parse_bool),
            "enable_metrics": ("ENABLE_METRICS", _parse_bool),
            "user_agent": ("USER_AGENT", str),
        }

        config_data: Dict[str, Any] = {}
        for field_name, (suffix, parse) in readers.items():
            key = f"{prefix}{suffix}"
            raw = os.getenv(key)
            if raw is None:
                continue
            try:
                config_data[field_name] = parse(raw.strip())
            except ValueError as e:
                raise InvalidConfigurationError(key, raw, f"Invalid value for {key}: {e}") from e

        try:
            return cls(**config_data)
        except ValidationError as e:
            field_name = str(e.errors()[0]["loc"][0])
            key = f"{prefix}{readers[field_name][0]}"
            raise InvalidConfigurationError(key, os.getenv(key, ""), f"Invalid value for {key}: {e}") from e


def _parse_bool(value: str) -> bool:
    return value.lower() in _TRUE_VALUES