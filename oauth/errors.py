"""OAuth 2.0 protocol errors (RFC 6749 section 5.2 and RFC 6750 section 3.1)."""

from fastapi.responses import JSONResponse


class OAuthError(Exception):
    """Base class for errors reported with the standard OAuth error shape."""

    name = "server_error"
    status_code = 500

    def __init__(self, message: str = "", headers: dict = None):
        super().__init__(message or self.name)
        self.message = message or self.name
        self.headers = headers or {}

    def to_dict(self) -> dict:
        return {"error": self.name, "error_description": self.message}


class InvalidRequestError(OAuthError):
    name = "invalid_request"
    status_code = 400


class InvalidClientError(OAuthError):
    name = "invalid_client"
    status_code = 400


class InvalidGrantError(OAuthError):
    name = "invalid_grant"
    status_code = 400


class InvalidScopeError(OAuthError):
    name = "invalid_scope"
    status_code = 400


class UnauthorizedClientError(OAuthError):
    name = "unauthorized_client"
    status_code = 400


class UnsupportedGrantTypeError(OAuthError):
    name = "unsupported_grant_type"
    status_code = 400


class UnsupportedResponseTypeError(OAuthError):
    name = "unsupported_response_type"
    status_code = 400


class InvalidTokenError(OAuthError):
    name = "invalid_token"
    status_code = 401


class UnauthorizedRequestError(OAuthError):
    """The request carried no authentication at all (RFC 6750 section 3.1)."""

    name = "unauthorized_request"
    status_code = 401


class ServerError(OAuthError):
    name = "server_error"
    status_code = 503


def oauth_error_response(error: OAuthError) -> JSONResponse:
    """Render an OAuthError as its JSON body, status and headers."""
    headers = dict(error.headers)
    if error.status_code == 401:
        headers.setdefault("WWW-Authenticate", 'Bearer realm="Service"')
    return JSONResponse(error.to_dict(), status_code=error.status_code, headers=headers)
