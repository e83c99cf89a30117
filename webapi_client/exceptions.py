from typing import Optional


class WebAPIError(Exception):
    """Base exception for WebAPIClient errors"""
    def __init__(self, message: str, status_code: int = None):
        self.status_code = status_code
        super().__init__(message)

class TransportError(WebAPIError):
    """Request never produced a usable response (DNS, connect, timeout)"""
    def __init__(self, url: str, reason: str = None, status_code: int = 500):
        self.url = url
        self.reason = reason
        error_message = f"Transport failure for {url}"
        if reason:
            error_message += f": {reason}"
        super().__init__(error_message, status_code=status_code)

class HTTPError(WebAPIError):
    """Server answered with a non-success status code"""
    def __init__(self, url: str, status_code: int, body: str = ""):
        self.url = url
        self.body = body
        error_message = f"HTTP {status_code} from {url}"
        if body:
            error_message += f": {body[:200]}"
        super().__init__(error_message, status_code=status_code)

class DecodeError(WebAPIError):
    """Response body matched neither the envelope shape nor the target type"""
    def __init__(self, url: str, target: str, details: str = None, status_code: int = None):
        self.url = url
        self.target = target
        self.details = details
        error_message = f"Could not decode response from {url} as {target}"
        if details:
            error_message += f": {details}"
        super().__init__(error_message, status_code=status_code)

class RequestCancelledError(WebAPIError):
    """Caller cancelled the request"""
    def __init__(self, url: Optional[str] = None):
        self.url = url
        super().__init__(f"Request to {url} was cancelled" if url else "Request was cancelled")

class MaxRetriesExceededError(WebAPIError):
    """All permitted attempts failed"""
    def __init__(self, method: str, url: str, attempts: int, last_error: Exception = None):
        self.method = method
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        status_code = getattr(last_error, "status_code", None) or 500
        error_message = f"{method} {url} failed after {attempts} attempt(s)"
        if last_error is not None:
            error_message += f": {last_error}"
        super().__init__(error_message, status_code=status_code)

    @property
    def retry_count(self) -> int:
        return self.attempts - 1

class InvalidConfigurationError(WebAPIError):
    """Invalid APIConfiguration"""
    def __init__(self, config_key: str, config_value: str, message: str = None):
        self.config_key = config_key
        self.config_value = config_value
        error_message = message or f"Invalid configuration for key '{config_key}' with value '{config_value}'"
        super().__init__(error_message)

class ServiceNotInitializedError(WebAPIError):
    """Service used before a client was bound to it"""
    def __init__(self, service_name: str):
        self.service_name = service_name
        super().__init__(f"Service '{service_name}' has not been initialized with a client")
