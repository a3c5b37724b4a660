"""Tests for the token endpoint (/oauth/token)."""
import base64
import time

from conftest import CLIENT_ID, CLIENT_SECRET


def basic(client_id: str, client_secret: str) -> dict:
    credentials = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()
    return {"Authorization": f"Basic {credentials}"}


def test_code_exchange_issues_tokens(flow, store):
    code = flow.authorization_code()

    response = flow.exchange(code)

    assert response.status_code == 200
    assert response.headers["cache-control"] == "no-store"
    assert response.headers["pragma"] == "no-cache"
    body = response.json()
    assert body["token_type"] == "Bearer"
    assert body["expires_in"] == 3600
    assert body["scope"] == "devices"
    assert body["access_token"] != body["refresh_token"]
    token = store.tokens[body["access_token"]]
    assert token.username == "user@x.com"
    assert token.client_id == CLIENT_ID
    assert code not in store.codes


def test_code_is_single_use(flow):
    code = flow.authorization_code()
    assert flow.exchange(code).status_code == 200

    response = flow.exchange(code)

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_grant"


def test_expired_code_is_rejected(flow, store):
    code = flow.authorization_code()
    store.codes[code].expires_at = int(time.time()) - 1

    response = flow.exchange(code)

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_grant"


def test_redirect_uri_must_match(flow):
    code = flow.authorization_code()

    mismatched = flow.exchange(code, redirect_uri="https://assistant.example.com/other")
    missing = flow.exchange(code, redirect_uri=None)

    assert mismatched.status_code == 400
    assert mismatched.json()["error"] == "invalid_request"
    assert missing.json()["error"] == "invalid_request"


def test_wrong_client_secret(flow):
    code = flow.authorization_code()

    response = flow.exchange(code, client_secret="nope")

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_client"


def test_basic_auth_client_credentials(flow, client):
    code = flow.authorization_code()

    response = client.post(
        "/oauth/token",
        data={"grant_type": "authorization_code", "code": code, "redirect_uri": flow.authorize_params()["redirect_uri"]},
        headers=basic(CLIENT_ID, CLIENT_SECRET),
    )

    assert response.status_code == 200
    assert response.json()["access_token"]


def test_bad_basic_auth_is_unauthorized(flow, client):
    code = flow.authorization_code()

    response = client.post(
        "/oauth/token",
        data={"grant_type": "authorization_code", "code": code},
        headers=basic(CLIENT_ID, "wrong"),
    )

    assert response.status_code == 401
    assert response.json()["error"] == "invalid_client"
    assert response.headers["www-authenticate"] == 'Basic realm="Service"'


def test_missing_and_unsupported_grant_type(client):
    missing = client.post("/oauth/token", data={"client_id": CLIENT_ID, "client_secret": CLIENT_SECRET})
    unsupported = client.post(
        "/oauth/token",
        data={"grant_type": "password", "client_id": CLIENT_ID, "client_secret": CLIENT_SECRET},
    )

    assert missing.status_code == 400
    assert missing.json()["error"] == "invalid_request"
    assert unsupported.status_code == 400
    assert unsupported.json()["error"] == "unsupported_grant_type"


def test_json_token_request(flow, client):
    code = flow.authorization_code()

    response = client.post("/oauth/token", json={
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": flow.authorize_params()["redirect_uri"],
        "client_id": CLIENT_ID,
        "client_secret": CLIENT_SECRET,
    })

    assert response.status_code == 200


def test_refresh_grant_rotates_tokens(flow, client, store):
    tokens = flow.tokens()

    response = client.post("/oauth/token", data={
        "grant_type": "refresh_token",
        "refresh_token": tokens["refresh_token"],
        "client_id": CLIENT_ID,
        "client_secret": CLIENT_SECRET,
    })

    assert response.status_code == 200
    refreshed = response.json()
    assert refreshed["access_token"] != tokens["access_token"]
    assert refreshed["refresh_token"] != tokens["refresh_token"]
    assert refreshed["scope"] == "devices"
    assert tokens["access_token"] not in store.tokens
    assert store.tokens[refreshed["access_token"]].username == "user@x.com"

    old = client.get("/devices", headers=flow.bearer(tokens["access_token"]))
    assert old.status_code == 401
    new = client.get("/devices", headers=flow.bearer(refreshed["access_token"]))
    assert new.status_code == 200


def test_refresh_token_is_single_use(flow, client):
    tokens = flow.tokens()
    data = {
        "grant_type": "refresh_token",
        "refresh_token": tokens["refresh_token"],
        "client_id": CLIENT_ID,
        "client_secret": CLIENT_SECRET,
    }
    assert client.post("/oauth/token", data=data).status_code == 200

    response = client.post("/oauth/token", data=data)

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_grant"


def test_access_token_is_not_a_refresh_token(flow, client):
    tokens = flow.tokens()

    response = client.post("/oauth/token", data={
        "grant_type": "refresh_token",
        "refresh_token": tokens["access_token"],
        "client_id": CLIENT_ID,
        "client_secret": CLIENT_SECRET,
    })

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_grant"


def test_undecodable_basic_auth_is_invalid_client(flow, client):
    code = flow.authorization_code()

    response = client.post(
        "/oauth/token",
        data={"grant_type": "authorization_code", "code": code},
        headers={"Authorization": b"Basic \xe9\xe9\xe9"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_client"


def test_non_string_client_secret_is_invalid_client(flow, client):
    code = flow.authorization_code()

    response = client.post("/oauth/token", json={
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": flow.authorize_params()["redirect_uri"],
        "client_id": CLIENT_ID,
        "client_secret": 123,
    })

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_client"
