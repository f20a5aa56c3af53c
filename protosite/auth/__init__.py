"""GitHub authorization: session registry and the OAuth flow."""

from protosite.auth.flow import AuthorizationFlow, AuthorizationStart
from protosite.auth.sessions import AuthSession, SessionState, SessionStatus, SessionStore

__all__ = [
    "AuthSession",
    "AuthorizationFlow",
    "AuthorizationStart",
    "SessionState",
    "SessionStatus",
    "SessionStore",
]
