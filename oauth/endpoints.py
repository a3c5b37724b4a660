"""Public OAuth and login endpoints.

- Pages (/, /authorize, /privacy-policy)
- MyQ credential login (/login)
- Authorization step (/oauth/authorize)
- Token endpoint (/oauth/token)

The authorize step does not show its own login screen. A session that just
completed a MyQ login is the proof of identity; SessionPrincipal turns it
into the user the AuthorizationServer issues the code for.
"""

import logging
import re
from typing import Optional

import bcrypt
from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from starlette.concurrency import run_in_threadpool

from oauth.errors import OAuthError, oauth_error_response
from oauth.server import AuthorizationServer, AuthorizeOutcome, OAuthResponse
from oauth.sessions import Session, get_session
from oauth.stores import CredentialStore, User
from oauth.templates import LOGIN_PAGE, PRIVACY_POLICY_PAGE

logger = logging.getLogger(__name__)

router = APIRouter(tags=["oauth"])

PENDING_FIELDS = ("response_type", "client_id", "redirect_uri", "scope", "state")

INCORRECT_CREDENTIALS = "Email and/or password are incorrect."
UNEXPECTED_ERROR = "Something unexpected happened. Please wait a bit and try again."
LOGGED_IN = "Logged in!"
REDIRECTING = "Logged in! Redirecting you to the confirmation page."


# ============== Helpers ==============

async def read_params(request: Request) -> dict:
    """Read a JSON or form body as a flat dict; an unreadable body is empty."""
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("application/json"):
            data = await request.json()
            return data if isinstance(data, dict) else {}
        form = await request.form()
        return {key: value for key, value in form.items() if isinstance(value, str)}
    except ValueError:
        return {}


def normalize_username(email) -> str:
    return re.sub(r"\s", "", str(email)).lower()


def pending_request(params) -> Optional[dict]:
    """Return the five authorize parameters if all are present, else None."""
    if not params:
        return None
    pending = {name: params.get(name) for name in PENDING_FIELDS}
    if not all(pending.values()):
        return None
    return pending


async def hash_password(password: str, rounds: int) -> str:
    hashed = await run_in_threadpool(bcrypt.hashpw, password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def relay_response(response: OAuthResponse) -> Response:
    """Send a protocol response as-is, following redirects with a real 302."""
    headers = dict(response.headers)
    if response.status == 302:
        location = headers.pop("location")
        return RedirectResponse(url=location, status_code=302, headers=headers)
    if response.body is None:
        return Response(status_code=response.status, headers=headers)
    return JSONResponse(response.body, status_code=response.status, headers=headers)


async def handle_oauth_error(request: Request, error: OAuthError) -> JSONResponse:
    logger.warning(f"[OAUTH] {request.url.path} failed: {error.name}: {error.message}")
    return oauth_error_response(error)


class SessionPrincipal:
    """Resolves the user from credentials held in the server-side session.

    The session's password is the bcrypt hash stored at login, so a match
    means this session completed a MyQ login for that exact user record.
    """

    def __init__(self, session: Session, store: CredentialStore):
        self.session = session
        self.store = store

    async def resolve(self) -> Optional[User]:
        user = self.session.get("user") or {}
        username = user.get("username")
        password = user.get("password")
        if not username or not password:
            return None
        return await self.store.find_user(username, password)


# ============== Pages ==============

@router.get("/")
async def index():
    return RedirectResponse(url="/authorize", status_code=302)


@router.get("/authorize")
async def authorize_page(request: Request):
    """Show the login page, staging the OAuth request if it is complete."""
    session = get_session(request)
    pending = pending_request(request.query_params)
    if pending:
        session["query"] = pending
        logger.info(f"[AUTHORIZE] Staged authorization request for client {pending['client_id']}")
    else:
        session.pop("query", None)
    return HTMLResponse(LOGIN_PAGE.format(title="Login | MyQ Home"))


@router.get("/privacy-policy")
async def privacy_policy():
    return HTMLResponse(PRIVACY_POLICY_PAGE.format(title="Privacy Policy | MyQ Home"))


# ============== Login ==============

@router.post("/login")
async def login(request: Request):
    """Log in with MyQ credentials, then continue a staged authorization if any."""
    body = await read_params(request)
    email = body.get("email")
    password = body.get("password")
    if not email or not password:
        return JSONResponse({"success": False, "message": INCORRECT_CREDENTIALS})

    username = normalize_username(email)
    session = get_session(request)
    state = request.app.state

    try:
        account = state.myq_factory(username, str(password))
        result = await account.login()
        if result.get("returnCode") != 0:
            logger.info(f"[LOGIN] MyQ rejected {username}: returnCode {result.get('returnCode')}")
            return JSONResponse({"success": False, "message": result.get("error")})

        security_token = result.get("token")
        password_hash = await hash_password(str(password), state.config.hash_salt_rounds)
        session["user"] = {
            "username": username,
            "security_token": security_token,
            "password": password_hash,
        }
        await state.credential_store.upsert_user(
            User(username=username, password_hash=password_hash, security_token=security_token)
        )
        logger.info(f"[LOGIN] User authenticated: {username}")
    except Exception:
        logger.exception(f"[LOGIN] Unexpected failure logging in {username}")
        return JSONResponse({"success": False, "message": UNEXPECTED_ERROR})

    pending = pending_request(session.get("query"))
    if pending is None:
        return JSONResponse({"success": True, "message": LOGGED_IN})

    logger.info(f"[LOGIN] Continuing staged authorization for client {pending['client_id']}")
    return await authorize_session(request, pending)


# ============== Authorization ==============

async def authorize_session(request: Request, params: dict) -> Response:
    """Issue a code for the session's user and hand the redirect back as JSON."""
    session = get_session(request)
    server: AuthorizationServer = request.app.state.authorization_server
    principal = SessionPrincipal(session, request.app.state.credential_store)

    result = await server.authorize(params, principal)
    if result.outcome is AuthorizeOutcome.ACCESS_DENIED:
        logger.warning(f"[AUTHORIZE] {result.reason}")
        return Response(status_code=200)

    session.destroy()
    return JSONResponse({
        "success": True,
        "message": REDIRECTING,
        "redirectUri": result.redirect_uri,
    })


@router.post("/oauth/authorize")
async def oauth_authorize(request: Request):
    """OAuth 2.0 authorization endpoint, authenticated by the session."""
    params = dict(request.query_params)
    params.update(await read_params(request))
    return await authorize_session(request, params)


# ============== Token ==============

@router.post("/oauth/token")
async def oauth_token(request: Request):
    """OAuth 2.0 token endpoint."""
    params = await read_params(request)
    server: AuthorizationServer = request.app.state.authorization_server
    response = await server.token(params, request.headers.get("Authorization"))
    return relay_response(response)
