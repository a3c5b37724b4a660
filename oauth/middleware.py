"""Middleware for the bearer-protected device API.

Both run on every protected request, in order:
- BearerAuthMiddleware resolves the Authorization header to a stored token
  and its user (request.state.oauth_token).
- ExternalSessionMiddleware opens a fresh MyQ session for that user
  (request.state.myq_account). MyQ sessions are never reused across requests.
"""

import logging
from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from myq_client import MyQ
from oauth.errors import OAuthError, oauth_error_response
from oauth.server import AuthorizationServer
from oauth.stores import User

logger = logging.getLogger(__name__)


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """Reject requests without a valid, unexpired, stored access token."""

    def __init__(self, app, server: AuthorizationServer):
        super().__init__(app)
        self.server = server

    async def dispatch(self, request: Request, call_next):
        try:
            token = await self.server.authenticate(request.headers.get("Authorization"))
        except OAuthError as e:
            logger.info(f"[AUTH] Request rejected: {e.message}")
            return oauth_error_response(e)

        request.state.oauth_token = token
        return await call_next(request)


async def open_external_session(user: User, myq_factory: Callable[..., MyQ], login_secret: str) -> tuple[MyQ, dict]:
    """Start a MyQ session from the stored user record.

    ``login_secret`` picks the stored credential: ``password_hash`` logs in
    with the user's stored password value, ``security_token`` resumes the
    token MyQ issued at the last interactive login.
    """
    if login_secret == "security_token":
        account = myq_factory(user.username, None)
        return account, account.resume(user.security_token)

    account = myq_factory(user.username, user.password_hash)
    return account, await account.login()


class ExternalSessionMiddleware(BaseHTTPMiddleware):
    """Log in to MyQ as the token's user, or answer with MyQ's error."""

    def __init__(self, app, myq_factory: Callable[..., MyQ], login_secret: str = "password_hash"):
        super().__init__(app)
        self.myq_factory = myq_factory
        self.login_secret = login_secret

    async def dispatch(self, request: Request, call_next):
        user = request.state.oauth_token.user
        account, result = await open_external_session(user, self.myq_factory, self.login_secret)
        if result.get("returnCode") != 0:
            logger.info(f"[AUTH] MyQ session refused for {user.username}: returnCode {result.get('returnCode')}")
            return JSONResponse(result)

        request.state.myq_account = account
        return await call_next(request)
