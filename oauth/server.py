"""OAuth 2.0 authorization server: authorization-code and refresh-token grants.

``AuthorizationServer`` is built once per application from a credential
store and token settings, then handed to the endpoints and middleware that
need it. It knows nothing about HTTP sessions: the authorize step asks a
``PrincipalResolver`` who the user is.
"""

import base64
import enum
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from oauth.errors import (
    InvalidClientError,
    InvalidGrantError,
    InvalidRequestError,
    InvalidScopeError,
    InvalidTokenError,
    ServerError,
    UnauthorizedClientError,
    UnauthorizedRequestError,
    UnsupportedGrantTypeError,
    UnsupportedResponseTypeError,
)
from oauth.jwt_utils import (
    create_access_token,
    create_refresh_token,
    verify_access_token,
    verify_refresh_token,
)
from oauth.stores import AuthorizationCode, Client, CredentialStore, Token, User

logger = logging.getLogger(__name__)

AUTHORIZATION_CODE = "authorization_code"
REFRESH_TOKEN = "refresh_token"


class PrincipalResolver(Protocol):
    """Resolves the already-authenticated user for an authorize request."""

    async def resolve(self) -> Optional[User]: ...


@dataclass
class OAuthResponse:
    """Protocol-level response: status, headers and JSON body."""

    status: int = 200
    headers: dict = field(default_factory=dict)
    body: Optional[dict] = None


class AuthorizeOutcome(enum.Enum):
    GRANTED = "granted"
    ACCESS_DENIED = "access_denied"


@dataclass
class AuthorizeResult:
    outcome: AuthorizeOutcome
    response: OAuthResponse
    code: Optional[AuthorizationCode] = None
    reason: str = ""

    @property
    def redirect_uri(self) -> Optional[str]:
        return self.response.headers.get("location")


def append_query(uri: str, params: dict) -> str:
    parts = urlparse(uri)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend((key, value) for key, value in params.items() if value is not None)
    return urlunparse(parts._replace(query=urlencode(query)))


def parse_basic_auth(authorization: Optional[str]) -> Optional[tuple[str, str]]:
    """Decode ``Basic base64(client_id:client_secret)``, None if absent or malformed."""
    if not authorization or not authorization.lower().startswith("basic "):
        return None
    try:
        decoded = base64.b64decode(authorization[6:].strip()).decode("utf-8")
    except ValueError:
        return None
    client_id, sep, client_secret = decoded.partition(":")
    if not sep:
        return None
    return client_id, client_secret


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise InvalidRequestError("Invalid request: malformed authorization header")
    return token.strip()


class AuthorizationServer:
    """Issues codes and tokens and validates bearer tokens."""

    def __init__(
        self,
        store: CredentialStore,
        secret: str,
        access_token_ttl: int = 3600,
        refresh_token_ttl: int = 14 * 24 * 3600,
        auth_code_ttl: int = 300,
    ):
        self.store = store
        self.secret = secret
        self.access_token_ttl = access_token_ttl
        self.refresh_token_ttl = refresh_token_ttl
        self.auth_code_ttl = auth_code_ttl

    # ============== Authorize ==============

    async def authorize(self, params: dict, principal: PrincipalResolver) -> AuthorizeResult:
        """Run the authorize step of the authorization-code grant.

        Returns a GRANTED result carrying a 302 response to the client's
        redirect URI, or an ACCESS_DENIED result when the user refused.
        Malformed requests, and a principal that resolves to no user, raise
        OAuthError.
        """
        if params.get("allowed") == "false":
            return self._denied("user denied access to application")

        client = await self._authorize_client(params)
        redirect_uri = params["redirect_uri"]

        user = await principal.resolve()
        if user is None:
            raise ServerError("Server error: no authenticated user for this session")

        scope = self._validate_scope(client, params.get("scope"))
        state = params.get("state")
        if not state:
            raise InvalidRequestError("Missing parameter: `state`")
        response_type = params.get("response_type")
        if not response_type:
            raise InvalidRequestError("Missing parameter: `response_type`")
        if response_type != "code":
            raise UnsupportedResponseTypeError("Unsupported response type: `response_type` is not supported")

        code = AuthorizationCode(
            code=secrets.token_hex(20),
            expires_at=int(time.time()) + self.auth_code_ttl,
            redirect_uri=redirect_uri,
            scope=scope,
            client_id=client.client_id,
            username=user.username,
            user=user,
        )
        await self.store.save_code(code)
        logger.info(f"[AUTHORIZE] Code issued to client {client.client_id} for {user.username}")

        location = append_query(redirect_uri, {"code": code.code, "state": state})
        return AuthorizeResult(
            outcome=AuthorizeOutcome.GRANTED,
            response=OAuthResponse(status=302, headers={"location": location}),
            code=code,
        )

    def _denied(self, reason: str) -> AuthorizeResult:
        return AuthorizeResult(
            outcome=AuthorizeOutcome.ACCESS_DENIED,
            response=OAuthResponse(status=200),
            reason=f"Access denied: {reason}",
        )

    async def _authorize_client(self, params: dict) -> Client:
        client_id = params.get("client_id")
        if not client_id:
            raise InvalidRequestError("Missing parameter: `client_id`")
        redirect_uri = params.get("redirect_uri")
        if not redirect_uri:
            raise InvalidRequestError("Missing parameter: `redirect_uri`")

        client = await self.store.find_client(client_id)
        if client is None:
            raise InvalidClientError("Invalid client: client credentials are invalid")
        if AUTHORIZATION_CODE not in client.grants:
            raise UnauthorizedClientError("Unauthorized client: `grant_type` is invalid")
        if redirect_uri not in client.redirect_uris:
            raise InvalidClientError("Invalid client: `redirect_uri` does not match client value")
        return client

    def _validate_scope(self, client: Client, scope: Optional[str]) -> str:
        requested = (scope or "").split()
        if client.scopes and any(item not in client.scopes for item in requested):
            raise InvalidScopeError("Invalid scope: Requested scope is invalid")
        return " ".join(requested)

    # ============== Token ==============

    async def token(self, params: dict, authorization: Optional[str] = None) -> OAuthResponse:
        """Exchange a code or refresh token for a new token set."""
        grant_type = params.get("grant_type")
        if not grant_type:
            raise InvalidRequestError("Missing parameter: `grant_type`")
        if grant_type not in (AUTHORIZATION_CODE, REFRESH_TOKEN):
            raise UnsupportedGrantTypeError("Unsupported grant type: `grant_type` is invalid")

        client = await self._authenticate_client(params, authorization)
        if grant_type not in client.grants:
            raise UnauthorizedClientError("Unauthorized client: `grant_type` is invalid")

        if grant_type == AUTHORIZATION_CODE:
            token = await self._exchange_code(client, params)
        else:
            token = await self._refresh(client, params)

        return OAuthResponse(
            status=200,
            headers={"Cache-Control": "no-store", "Pragma": "no-cache"},
            body={
                "access_token": token.access_token,
                "token_type": "Bearer",
                "expires_in": self.access_token_ttl,
                "refresh_token": token.refresh_token,
                "scope": token.scope,
            },
        )

    async def _authenticate_client(self, params: dict, authorization: Optional[str]) -> Client:
        credentials = parse_basic_auth(authorization)
        via_header = credentials is not None
        if credentials is None:
            credentials = (params.get("client_id"), params.get("client_secret"))
        client_id, client_secret = credentials
        if not isinstance(client_id, str) or not isinstance(client_secret, str):
            raise InvalidClientError("Invalid client: cannot retrieve client credentials")
        if not client_id or not client_secret:
            raise InvalidClientError("Invalid client: cannot retrieve client credentials")

        client = await self.store.find_client(client_id, client_secret)
        if client is None:
            headers = {"WWW-Authenticate": 'Basic realm="Service"'} if via_header else None
            error = InvalidClientError("Invalid client: client is invalid", headers=headers)
            if via_header:
                error.status_code = 401
            raise error
        return client

    async def _exchange_code(self, client: Client, params: dict) -> Token:
        code_value = params.get("code")
        if not code_value:
            raise InvalidRequestError("Missing parameter: `code`")

        code = await self.store.find_code(code_value)
        if code is None:
            raise InvalidGrantError("Invalid grant: authorization code is invalid")
        if code.client_id != client.client_id:
            raise InvalidGrantError("Invalid grant: authorization code is invalid")
        if code.user is None:
            raise InvalidGrantError("Invalid grant: authorization code has no user")
        if code.redirect_uri:
            redirect_uri = params.get("redirect_uri")
            if not redirect_uri:
                raise InvalidRequestError("Missing parameter: `redirect_uri`")
            if redirect_uri != code.redirect_uri:
                raise InvalidRequestError("Invalid request: `redirect_uri` is invalid")

        if not await self.store.revoke_code(code.code):
            raise InvalidGrantError("Invalid grant: authorization code is invalid")

        token = await self._issue(client, code.user, code.scope)
        logger.info(f"[TOKEN] Code exchanged by client {client.client_id} for {code.username}")
        return token

    async def _refresh(self, client: Client, params: dict) -> Token:
        refresh_value = params.get("refresh_token")
        if not refresh_value:
            raise InvalidRequestError("Missing parameter: `refresh_token`")
        if verify_refresh_token(refresh_value, self.secret) is None:
            raise InvalidGrantError("Invalid grant: refresh token is invalid")

        existing = await self.store.find_refresh_token(refresh_value)
        if existing is None or existing.user is None:
            raise InvalidGrantError("Invalid grant: refresh token is invalid")
        if existing.client_id != client.client_id:
            raise InvalidGrantError("Invalid grant: refresh token was issued to another client")

        if not await self.store.revoke_token(refresh_value):
            raise InvalidGrantError("Invalid grant: refresh token is invalid")

        token = await self._issue(client, existing.user, existing.scope)
        logger.info(f"[TOKEN] Token refreshed by client {client.client_id} for {existing.username}")
        return token

    async def _issue(self, client: Client, user: User, scope: str) -> Token:
        now = int(time.time())
        access_expires_at = now + self.access_token_ttl
        refresh_expires_at = now + self.refresh_token_ttl
        token = Token(
            access_token=create_access_token(
                self.secret, user.username, client.client_id, scope, now, access_expires_at
            ),
            access_token_expires_at=access_expires_at,
            refresh_token=create_refresh_token(
                self.secret, user.username, client.client_id, scope, now, refresh_expires_at
            ),
            refresh_token_expires_at=refresh_expires_at,
            scope=scope,
            client_id=client.client_id,
            username=user.username,
            user=user,
        )
        await self.store.save_token(token)
        return token

    # ============== Authenticate ==============

    async def authenticate(self, authorization: Optional[str]) -> Token:
        """Resolve a bearer Authorization header to its stored token and user."""
        access_token = bearer_token(authorization)
        if access_token is None:
            raise UnauthorizedRequestError("Unauthorized request: no authentication given")

        if verify_access_token(access_token, self.secret) is None:
            raise InvalidTokenError("Invalid token: access token is invalid")

        token = await self.store.find_token(access_token)
        if token is None:
            raise InvalidTokenError("Invalid token: access token has expired or been revoked")
        if token.user is None:
            raise InvalidTokenError("Invalid token: access token has no user")
        return token
