"""Shared fixtures: an app wired to an in-memory store and a fake MyQ."""
import os

os.environ.setdefault("JWT_SECRET", "test-jwt-secret-0123456789abcdef0123456789abcdef")

from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from config import Config
from main import create_app
from oauth.sessions import SessionStore
from oauth.stores import Client, InMemoryCredentialStore

JWT_SECRET = "test-jwt-secret-0123456789abcdef0123456789abcdef"
CLIENT_ID = "assistant"
CLIENT_SECRET = "assistant-secret"
REDIRECT_URI = "https://assistant.example.com/link/callback"
COOKIE_NAME = "myq_bridge_sid"

DEVICES = [
    {"id": 100, "typeId": 1, "typeName": "Gateway"},
    {"id": 101, "typeId": 2, "typeName": "GDO"},
    {"id": 102, "typeId": 3, "typeName": "Light"},
    {"id": 103, "typeId": 13, "typeName": "Camera"},
    {"id": 104, "typeId": 17, "typeName": "WGDO Garage Door"},
]


class FakeMyQ:
    """Records calls; logs in unless its factory says otherwise."""

    def __init__(self, factory, username, password):
        self.factory = factory
        self.username = username
        self.password = password
        self.security_token = None
        self.calls = []

    async def login(self):
        self.factory.logins.append((self.username, self.password))
        if self.factory.login_exception:
            raise self.factory.login_exception
        if self.factory.login_result is not None:
            return self.factory.login_result
        self.factory.issued += 1
        self.security_token = f"myq-token-{self.factory.issued}"
        return {"returnCode": 0, "token": self.security_token}

    def resume(self, security_token):
        self.factory.resumes.append((self.username, security_token))
        if not security_token:
            return {"returnCode": 13, "error": "Not logged in."}
        self.security_token = security_token
        return {"returnCode": 0, "token": security_token}

    async def get_devices(self, type_ids):
        self.calls.append(("get_devices", list(type_ids)))
        devices = [device for device in self.factory.devices if device["typeId"] in type_ids]
        return {"returnCode": 0, "devices": devices}

    async def get_door_state(self, device_id):
        self.calls.append(("get_door_state", device_id))
        return {"returnCode": 0, "doorState": 2, "doorStateDescription": "closed"}

    async def set_door_state(self, device_id, state):
        self.calls.append(("set_door_state", device_id, state))
        return {"returnCode": 0}

    async def set_light_state(self, device_id, state=None):
        self.calls.append(("set_light_state", device_id, state))
        if state is None:
            return {"returnCode": 15, "error": "Invalid parameter(s) provided."}
        return {"returnCode": 0}


class FakeMyQFactory:
    def __init__(self):
        self.accounts = []
        self.logins = []
        self.resumes = []
        self.issued = 0
        self.login_result = None
        self.login_exception = None
        self.devices = list(DEVICES)

    def __call__(self, username, password):
        account = FakeMyQ(self, username, password)
        self.accounts.append(account)
        return account

    @property
    def device_calls(self):
        return [call for account in self.accounts for call in account.calls]


class OAuthFlow:
    """Drives the browser and OAuth client sides of the linking flow."""

    def __init__(self, client: TestClient):
        self.client = client

    def authorize_params(self, **overrides) -> dict:
        params = {
            "response_type": "code",
            "client_id": CLIENT_ID,
            "redirect_uri": REDIRECT_URI,
            "scope": "devices",
            "state": "xyz-state",
        }
        params.update(overrides)
        return {key: value for key, value in params.items() if value is not None}

    def stage(self, **overrides):
        return self.client.get("/authorize", params=self.authorize_params(**overrides))

    def login(self, email="user@x.com", password="p"):
        return self.client.post("/login", json={"email": email, "password": password})

    def authorization_code(self, email="user@x.com", password="p") -> str:
        self.stage()
        response = self.login(email, password)
        redirect = urlparse(response.json()["redirectUri"])
        return parse_qs(redirect.query)["code"][0]

    def exchange(self, code: str, **overrides):
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": REDIRECT_URI,
            "client_id": CLIENT_ID,
            "client_secret": CLIENT_SECRET,
        }
        data.update(overrides)
        return self.client.post("/oauth/token", data={k: v for k, v in data.items() if v is not None})

    def tokens(self, email="user@x.com", password="p") -> dict:
        response = self.exchange(self.authorization_code(email, password))
        assert response.status_code == 200, response.text
        return response.json()

    def bearer(self, access_token: str) -> dict:
        return {"Authorization": f"Bearer {access_token}"}


def make_config(**overrides) -> Config:
    data = {
        "JWT_SECRET": JWT_SECRET,
        "HASH_SALT_ROUNDS": "4",
        "SESSION_COOKIE_NAME": COOKIE_NAME,
    }
    data.update(overrides)
    return Config(data)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def store():
    store = InMemoryCredentialStore()
    store.clients[CLIENT_ID] = Client(
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        redirect_uris=[REDIRECT_URI],
        grants=["authorization_code", "refresh_token"],
        scopes=["devices"],
    )
    return store


@pytest.fixture
def myq():
    return FakeMyQFactory()


@pytest.fixture
def session_store():
    return SessionStore()


@pytest.fixture
def app(config, store, myq, session_store):
    return create_app(config, store=store, myq_factory=myq, session_store=session_store)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def flow(client):
    return OAuthFlow(client)
