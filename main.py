"""MyQ OAuth Bridge.

Links a MyQ account to OAuth 2.0 clients (voice and home assistants):
- Login page and MyQ credential login (/authorize, /login)
- OAuth authorization-code grant (/oauth/authorize, /oauth/token)
- Bearer-protected device API proxied to MyQ (/devices, /door/state, /light/state)

Routes registered on the application itself are public. Everything else
falls through to the mounted device app, whose middleware authenticates
the bearer token and opens a MyQ session for each request.
"""
import logging
from contextlib import asynccontextmanager
from functools import partial
from pathlib import Path
from typing import Callable, Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware import Middleware
from supabase import create_client, Client as SupabaseClient

# Load environment from .env before reading any configuration
_env_file = Path(".env")
if _env_file.exists():
    load_dotenv(_env_file)

from config import Config, JWT_SECRET_FILE, load_config
from devices import router as devices_router
from logging_config import flush_logs, setup_logging
from myq_client import MyQ
from oauth.endpoints import handle_oauth_error, router as oauth_router
from oauth.errors import OAuthError
from oauth.jwt_utils import get_or_create_secret
from oauth.middleware import BearerAuthMiddleware, ExternalSessionMiddleware
from oauth.server import AuthorizationServer
from oauth.sessions import SessionMiddleware, SessionStore
from oauth.stores import Client, CredentialStore, InMemoryCredentialStore
from oauth.supabase_store import SupabaseCredentialStore

VERSION = "1.0.0"

logger = logging.getLogger(__name__)


def create_supabase(config: Config) -> Optional[SupabaseClient]:
    if not config.use_supabase():
        return None
    return create_client(config.supabase_url, config.supabase_key)


def create_app(
    config: Config = None,
    store: CredentialStore = None,
    myq_factory: Callable[..., MyQ] = None,
    supabase_client: SupabaseClient = None,
    session_store: SessionStore = None,
) -> FastAPI:
    """Build the application and its collaborators.

    Any collaborator not passed in is built from config: the credential
    store is Supabase-backed when Supabase is configured, in-memory otherwise.
    """
    config = config or load_config()
    if store is None:
        store = SupabaseCredentialStore(supabase_client) if supabase_client else InMemoryCredentialStore()
    if myq_factory is None:
        myq_factory = partial(
            MyQ,
            base_url=config.myq_base_url,
            app_id=config.myq_app_id,
            timeout=config.myq_timeout,
        )
    session_store = session_store or SessionStore(ttl=config.session_ttl)

    authorization_server = AuthorizationServer(
        store,
        secret=get_or_create_secret(config.jwt_secret, JWT_SECRET_FILE),
        access_token_ttl=config.access_token_ttl,
        refresh_token_ttl=config.refresh_token_ttl,
        auth_code_ttl=config.auth_code_ttl,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = config.oauth_client
        if client:
            await store.save_client(Client(**client))
            logger.info(f"[STARTUP] Registered OAuth client {client['client_id']}")
        logger.info(f"[STARTUP] Credential store: {type(store).__name__}")
        logger.info(f"[STARTUP] MyQ re-login secret: {config.external_login_secret}")
        yield
        logger.info("[SHUTDOWN] Flushing buffered logs")
        flush_logs()

    app = FastAPI(
        title="MyQ OAuth Bridge",
        description="OAuth 2.0 bridge and device API for MyQ accounts",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.credential_store = store
    app.state.authorization_server = authorization_server
    app.state.myq_factory = myq_factory

    app.add_middleware(
        SessionMiddleware,
        store=session_store,
        cookie_name=config.session_cookie_name,
        secure=config.session_cookie_secure,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(OAuthError, handle_oauth_error)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "myq-oauth-bridge", "version": VERSION}

    app.include_router(oauth_router)

    # Must stay last: the empty-path mount catches every remaining route
    device_app = FastAPI(
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        middleware=[
            Middleware(BearerAuthMiddleware, server=authorization_server),
            Middleware(
                ExternalSessionMiddleware,
                myq_factory=myq_factory,
                login_secret=config.external_login_secret,
            ),
        ],
    )
    device_app.include_router(devices_router)
    app.mount("", device_app)

    return app


config = load_config()
supabase = create_supabase(config)
setup_logging(config.log_level, supabase_client=supabase)
app = create_app(config, supabase_client=supabase)


def run():
    import uvicorn
    logger.info(f"Starting MyQ OAuth Bridge on {config.host}:{config.port}")
    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    run()
