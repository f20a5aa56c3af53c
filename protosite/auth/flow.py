"""The three-step GitHub OAuth dance: initiate, callback, status poll.

::

    flow = AuthorizationFlow(oauth_client, SessionStore())
    start = await flow.initiate()          # send start.auth_url to the browser
    await flow.complete_callback(code, start.state)
    status = await flow.poll_status(start.state)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from protosite.auth.sessions import SessionState, SessionStatus, SessionStore
from protosite.errors import IntegrationNotConfiguredError, InvalidCallbackError
from protosite.github.client import GitHubOAuthClient

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationStart:
    auth_url: str
    state: str


class AuthorizationFlow:
    """Orchestrates OAuth attempts against a :class:`SessionStore`.

    *oauth* is ``None`` when the OAuth app is not configured; every step
    that needs it then raises :class:`IntegrationNotConfiguredError`.
    """

    def __init__(self, oauth: GitHubOAuthClient | None, sessions: SessionStore) -> None:
        self.oauth = oauth
        self.sessions = sessions

    def _require_oauth(self) -> GitHubOAuthClient:
        if self.oauth is None:
            raise IntegrationNotConfiguredError()
        return self.oauth

    async def initiate(self) -> AuthorizationStart:
        """Open a pending session and return where to send the user."""
        oauth = self._require_oauth()
        session = await self.sessions.create()
        log.info("Started GitHub authorization %s...", session.state[:8])
        return AuthorizationStart(auth_url=oauth.authorize_url(session.state), state=session.state)

    async def complete_callback(self, code: str | None, state: str | None) -> None:
        """Exchange *code* and attach the token to the session for *state*.

        Raises:
            InvalidCallbackError: Unknown or expired state, or no code. An
                expired session is deleted.
            AuthExchangeError: GitHub did not issue a token.  The session
                stays pending so the callback can be retried until expiry.
        """
        oauth = self._require_oauth()
        if not state:
            raise InvalidCallbackError("Callback is missing the state parameter")

        status = await self.sessions.lookup(state)
        match status.state:
            case SessionState.NOT_FOUND:
                raise InvalidCallbackError(f"Unknown authorization state {state[:8]}...")
            case SessionState.EXPIRED:
                await self.sessions.discard(state)
                raise InvalidCallbackError(f"Authorization state {state[:8]}... has expired")
            case SessionState.AUTHORIZED:
                log.info("Authorization %s... already completed", state[:8])
                return
            case SessionState.PENDING:
                pass

        if not code:
            raise InvalidCallbackError("Callback is missing the code parameter")

        token = await oauth.exchange_code(code)

        if not await self.sessions.attach_credential(state, token):
            # Expired, or completed by a concurrent callback, while exchanging.
            status = await self.sessions.lookup(state)
            if status.state is not SessionState.AUTHORIZED:
                raise InvalidCallbackError(
                    f"Authorization state {state[:8]}... expired during token exchange"
                )
        log.info("Completed GitHub authorization %s...", state[:8])

    async def poll_status(self, state: str) -> SessionStatus:
        """Point-in-time status of *state*; never raises for unknown tokens."""
        return await self.sessions.poll(state)
