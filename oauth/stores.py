"""Credential store for users and OAuth grant artifacts.

The store owns users, registered clients, authorization codes and tokens.
Every lookup returns None for an absent or expired record; it never raises
for absence. ``InMemoryCredentialStore`` keeps everything in process dicts
and is the default backend; see ``oauth.supabase_store`` for the persistent one.
"""

import hmac
import time
from dataclasses import dataclass, field, replace
from typing import Optional, Protocol


@dataclass
class User:
    username: str
    password_hash: str
    security_token: Optional[str] = None


@dataclass
class Client:
    client_id: str
    client_secret: str = ""
    redirect_uris: list[str] = field(default_factory=list)
    grants: list[str] = field(default_factory=lambda: ["authorization_code", "refresh_token"])
    scopes: list[str] = field(default_factory=list)


@dataclass
class AuthorizationCode:
    code: str
    expires_at: int
    redirect_uri: str
    scope: str
    client_id: str
    username: str
    user: Optional[User] = None


@dataclass
class Token:
    access_token: str
    access_token_expires_at: int
    refresh_token: Optional[str]
    refresh_token_expires_at: Optional[int]
    scope: str
    client_id: str
    username: str
    user: Optional[User] = None


class CredentialStore(Protocol):
    """Operations the OAuth layer needs from persistence."""

    async def find_user_by_username(self, username: str) -> Optional[User]: ...

    async def find_user(self, username: str, password_hash: str) -> Optional[User]: ...

    async def upsert_user(self, user: User) -> User: ...

    async def find_client(self, client_id: str, client_secret: Optional[str] = None) -> Optional[Client]: ...

    async def save_client(self, client: Client) -> Client: ...

    async def save_code(self, code: AuthorizationCode) -> AuthorizationCode: ...

    async def find_code(self, code: str) -> Optional[AuthorizationCode]: ...

    async def revoke_code(self, code: str) -> bool: ...

    async def save_token(self, token: Token) -> Token: ...

    async def find_token(self, access_token: str) -> Optional[Token]: ...

    async def find_refresh_token(self, refresh_token: str) -> Optional[Token]: ...

    async def revoke_token(self, refresh_token: str) -> bool: ...


def secrets_match(expected: str, provided: str) -> bool:
    return hmac.compare_digest(expected.encode(), provided.encode())


class InMemoryCredentialStore:
    """Process-local credential store."""

    def __init__(self):
        self.users: dict[str, User] = {}
        self.clients: dict[str, Client] = {}
        self.codes: dict[str, AuthorizationCode] = {}
        # access_token -> Token, refresh_token -> access_token
        self.tokens: dict[str, Token] = {}
        self.refresh_index: dict[str, str] = {}

    # ============== Users ==============

    async def find_user_by_username(self, username: str) -> Optional[User]:
        user = self.users.get(username)
        return replace(user) if user else None

    async def find_user(self, username: str, password_hash: str) -> Optional[User]:
        user = self.users.get(username)
        if user is None or user.password_hash != password_hash:
            return None
        return replace(user)

    async def upsert_user(self, user: User) -> User:
        existing = self.users.get(user.username)
        if existing is None:
            self.users[user.username] = replace(user)
        else:
            existing.password_hash = user.password_hash
            existing.security_token = user.security_token
        return replace(self.users[user.username])

    # ============== Clients ==============

    async def find_client(self, client_id: str, client_secret: Optional[str] = None) -> Optional[Client]:
        client = self.clients.get(client_id)
        if client is None:
            return None
        if client_secret is not None and not secrets_match(client.client_secret, client_secret):
            return None
        return client

    async def save_client(self, client: Client) -> Client:
        self.clients[client.client_id] = client
        return client

    # ============== Authorization codes ==============

    async def save_code(self, code: AuthorizationCode) -> AuthorizationCode:
        self.codes[code.code] = replace(code, user=None)
        return code

    async def find_code(self, code: str) -> Optional[AuthorizationCode]:
        record = self.codes.get(code)
        if record is None or record.expires_at <= time.time():
            return None
        return replace(record, user=self.users.get(record.username))

    async def revoke_code(self, code: str) -> bool:
        return self.codes.pop(code, None) is not None

    # ============== Tokens ==============

    async def save_token(self, token: Token) -> Token:
        self.tokens[token.access_token] = replace(token, user=None)
        if token.refresh_token:
            self.refresh_index[token.refresh_token] = token.access_token
        return token

    async def find_token(self, access_token: str) -> Optional[Token]:
        record = self.tokens.get(access_token)
        if record is None or record.access_token_expires_at <= time.time():
            return None
        return replace(record, user=self.users.get(record.username))

    async def find_refresh_token(self, refresh_token: str) -> Optional[Token]:
        access_token = self.refresh_index.get(refresh_token)
        record = self.tokens.get(access_token) if access_token else None
        if record is None or not record.refresh_token_expires_at:
            return None
        if record.refresh_token_expires_at <= time.time():
            return None
        return replace(record, user=self.users.get(record.username))

    async def revoke_token(self, refresh_token: str) -> bool:
        access_token = self.refresh_index.pop(refresh_token, None)
        if access_token is None:
            return False
        self.tokens.pop(access_token, None)
        return True
