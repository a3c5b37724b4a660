"""Tests for the Supabase credential store against a mocked client."""
import time
from unittest.mock import MagicMock

import pytest

from oauth.stores import AuthorizationCode, User
from oauth.supabase_store import SupabaseCredentialStore


def make_supabase(*results):
    """A client whose query builder chains to itself; each execute() returns the next rows."""
    query = MagicMock()
    for name in ("select", "eq", "gt", "limit", "upsert", "insert", "delete"):
        getattr(query, name).return_value = query
    query.execute.side_effect = [MagicMock(data=rows) for rows in results]
    supabase = MagicMock()
    supabase.table.return_value = query
    return supabase, query


USER_ROW = {"username": "user@x.com", "password_hash": "hash-1", "security_token": "tok-1"}


@pytest.mark.asyncio
async def test_upsert_user_conflicts_on_username():
    supabase, query = make_supabase([USER_ROW])
    store = SupabaseCredentialStore(supabase)

    await store.upsert_user(User("user@x.com", "hash-1", "tok-1"))

    supabase.table.assert_called_with("users")
    query.upsert.assert_called_once_with(USER_ROW, on_conflict="username")


@pytest.mark.asyncio
async def test_find_user_matches_username_and_hash():
    supabase, query = make_supabase([USER_ROW], [])
    store = SupabaseCredentialStore(supabase)

    assert await store.find_user("user@x.com", "hash-1") == User(**USER_ROW)
    assert await store.find_user("user@x.com", "other") is None
    query.eq.assert_any_call("password_hash", "hash-1")


@pytest.mark.asyncio
async def test_find_client_checks_secret():
    row = {
        "client_id": "assistant",
        "client_secret": "secret",
        "redirect_uris": ["https://cb"],
        "grants": ["authorization_code"],
        "scopes": None,
    }
    supabase, _ = make_supabase([row], [row], [])
    store = SupabaseCredentialStore(supabase)

    client = await store.find_client("assistant", "secret")
    assert client.redirect_uris == ["https://cb"]
    assert client.scopes == []
    assert await store.find_client("assistant", "wrong") is None
    assert await store.find_client("nobody") is None


@pytest.mark.asyncio
async def test_saved_code_omits_user():
    supabase, query = make_supabase([{}])
    store = SupabaseCredentialStore(supabase)
    code = AuthorizationCode(
        code="c1", expires_at=int(time.time()) + 60, redirect_uri="https://cb",
        scope="devices", client_id="assistant", username="user@x.com", user=User(**USER_ROW),
    )

    await store.save_code(code)

    row = query.insert.call_args.args[0]
    assert "user" not in row
    assert row["username"] == "user@x.com"


@pytest.mark.asyncio
async def test_find_token_attaches_user():
    token_row = {
        "access_token": "a1",
        "access_token_expires_at": int(time.time()) + 60,
        "refresh_token": "r1",
        "refresh_token_expires_at": int(time.time()) + 600,
        "scope": "devices",
        "client_id": "assistant",
        "username": "user@x.com",
    }
    supabase, query = make_supabase([token_row], [USER_ROW])
    store = SupabaseCredentialStore(supabase)

    token = await store.find_token("a1")

    assert token.user == User(**USER_ROW)
    assert query.gt.call_args_list[0].args[0] == "access_token_expires_at"


@pytest.mark.asyncio
async def test_absent_records_are_none():
    supabase, _ = make_supabase([], [], [])
    store = SupabaseCredentialStore(supabase)

    assert await store.find_code("missing") is None
    assert await store.find_token("missing") is None
    assert await store.revoke_token("missing") is False
