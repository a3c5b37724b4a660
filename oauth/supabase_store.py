"""Supabase-backed credential store.

Expects these tables (snake_case columns mirror the dataclasses in
``oauth.stores``):

- users(username pk, password_hash, security_token)
- oauth_clients(client_id pk, client_secret, redirect_uris text[], grants text[], scopes text[])
- oauth_codes(code pk, expires_at bigint, redirect_uri, scope, client_id, username)
- oauth_tokens(access_token pk, access_token_expires_at bigint, refresh_token unique,
  refresh_token_expires_at bigint, scope, client_id, username)
"""

import logging
import time
from dataclasses import asdict
from typing import Optional

from oauth.stores import AuthorizationCode, Client, Token, User, secrets_match

logger = logging.getLogger(__name__)


def _first(response) -> Optional[dict]:
    rows = response.data or []
    return rows[0] if rows else None


def _row(record) -> dict:
    row = asdict(record)
    row.pop("user", None)
    return row


class SupabaseCredentialStore:
    """Credential store persisted in Supabase tables."""

    def __init__(self, supabase_client):
        self.supabase = supabase_client

    def _table(self, name: str):
        return self.supabase.table(name)

    async def _user(self, username: str) -> Optional[User]:
        return await self.find_user_by_username(username)

    # ============== Users ==============

    async def find_user_by_username(self, username: str) -> Optional[User]:
        row = _first(self._table("users").select("*").eq("username", username).limit(1).execute())
        return User(**row) if row else None

    async def find_user(self, username: str, password_hash: str) -> Optional[User]:
        row = _first(
            self._table("users")
            .select("*")
            .eq("username", username)
            .eq("password_hash", password_hash)
            .limit(1)
            .execute()
        )
        return User(**row) if row else None

    async def upsert_user(self, user: User) -> User:
        self._table("users").upsert(_row(user), on_conflict="username").execute()
        logger.debug(f"[STORE] Upserted user {user.username}")
        return user

    # ============== Clients ==============

    async def find_client(self, client_id: str, client_secret: Optional[str] = None) -> Optional[Client]:
        row = _first(self._table("oauth_clients").select("*").eq("client_id", client_id).limit(1).execute())
        if not row:
            return None
        client = Client(
            client_id=row["client_id"],
            client_secret=row.get("client_secret") or "",
            redirect_uris=row.get("redirect_uris") or [],
            grants=row.get("grants") or [],
            scopes=row.get("scopes") or [],
        )
        if client_secret is not None and not secrets_match(client.client_secret, client_secret):
            return None
        return client

    async def save_client(self, client: Client) -> Client:
        self._table("oauth_clients").upsert(asdict(client), on_conflict="client_id").execute()
        return client

    # ============== Authorization codes ==============

    async def save_code(self, code: AuthorizationCode) -> AuthorizationCode:
        self._table("oauth_codes").insert(_row(code)).execute()
        return code

    async def find_code(self, code: str) -> Optional[AuthorizationCode]:
        row = _first(
            self._table("oauth_codes")
            .select("*")
            .eq("code", code)
            .gt("expires_at", int(time.time()))
            .limit(1)
            .execute()
        )
        if not row:
            return None
        record = AuthorizationCode(**row)
        record.user = await self._user(record.username)
        return record

    async def revoke_code(self, code: str) -> bool:
        response = self._table("oauth_codes").delete().eq("code", code).execute()
        return bool(response.data)

    # ============== Tokens ==============

    async def save_token(self, token: Token) -> Token:
        self._table("oauth_tokens").insert(_row(token)).execute()
        return token

    async def find_token(self, access_token: str) -> Optional[Token]:
        row = _first(
            self._table("oauth_tokens")
            .select("*")
            .eq("access_token", access_token)
            .gt("access_token_expires_at", int(time.time()))
            .limit(1)
            .execute()
        )
        if not row:
            return None
        token = Token(**row)
        token.user = await self._user(token.username)
        return token

    async def find_refresh_token(self, refresh_token: str) -> Optional[Token]:
        row = _first(
            self._table("oauth_tokens")
            .select("*")
            .eq("refresh_token", refresh_token)
            .gt("refresh_token_expires_at", int(time.time()))
            .limit(1)
            .execute()
        )
        if not row:
            return None
        token = Token(**row)
        token.user = await self._user(token.username)
        return token

    async def revoke_token(self, refresh_token: str) -> bool:
        response = self._table("oauth_tokens").delete().eq("refresh_token", refresh_token).execute()
        return bool(response.data)
