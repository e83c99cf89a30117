from typing import Dict, Optional

from .config import AuthenticationType


class AuthenticationState:
    """Current credential and scheme shared by every request of one client.

    The executor reads it while building each attempt, so a change only
    affects requests built afterwards.
    """

    def __init__(self, token: Optional[str] = None, scheme: AuthenticationType = AuthenticationType.NONE):
        self.token = token
        self.scheme = scheme

    def set_authentication(self, token: str, scheme: AuthenticationType = AuthenticationType.BEARER):
        self.token = token
        self.scheme = AuthenticationType(scheme)

    def clear_authentication(self):
        self.token = None
        self.scheme = AuthenticationType.NONE

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token) and self.scheme != AuthenticationType.NONE

    def headers(self) -> Dict[str, str]:
        """Header layer contributed by the current scheme"""
        if not self.token:
            return {}
        if self.scheme == AuthenticationType.BEARER:
            return {"Authorization": f"Bearer {self.token}"}
        if self.scheme == AuthenticationType.API_KEY:
            return {"X-API-Key": self.token}
        # Basic is reserved and not sent yet
        return {}

    def __repr__(self) -> str:
        return f"AuthenticationState(scheme={self.scheme.value}, token={'set' if self.token else 'unset'})"
