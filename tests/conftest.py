"""
Pytest fixtures for agent auth testing.

Provides a stub identity provider served through ``httpx.MockTransport``
and ready-made facade/engine instances wired to it.
"""

import json
import time
from urllib.parse import parse_qsl

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from agent_auth.agent_auth import AgentAuth
from agent_auth.auth_engine import AuthEngine
from agent_auth.credential_store.in_memory_credential_store import InMemoryCredentialStore
from agent_auth.crypto_utils import CryptoUtils
from agent_auth.models import AgentConfig, AuthClientConfig

BASE_URL = "https://idp.example.com/t/acme"
CLIENT_ID = "client-123"
REDIRECT_URI = "http://localhost:3001/callback"


class StubProvider:
    """
    Minimal embedded-sign-in identity provider.

    - POST /oauth2/authorize: returns a flow ID and the configured authenticators
    - POST /oauth2/authn: returns ``flow_status`` with code c1 / state s1 / session ss1
    - POST /oauth2/token: returns the agent token, or the OBO token when an
      ``actor_token`` is present
    - GET /oauth2/jwks: returns the signing key (when one is configured)
    """

    def __init__(self):
        self.calls: list[tuple[str, dict]] = []
        self.authenticators = [
            {
                "authenticatorId": "QmFzaWNBdXRoZW50aWNhdG9yOkxPQ0FM",
                "authenticator": "Username & Password",
                "idp": "LOCAL",
                "metadata": {
                    "i18nKey": "authenticator.basic",
                    "promptType": "USER_PROMPT",
                    "params": [
                        {"param": "username", "type": "STRING", "order": 0, "confidential": False},
                        {"param": "password", "type": "STRING", "order": 1, "confidential": True},
                    ],
                },
                "requiredParams": ["username", "password"],
            }
        ]
        self.flow_status = "SUCCESS_COMPLETED"
        self.authn_status_code = 200
        self.token_status_code = 200
        self.agent_token = {
            "access_token": "tok1",
            "token_type": "Bearer",
            "expires_in": 3600,
            "scope": "openid",
        }
        self.obo_token = {
            "access_token": "obo-tok",
            "token_type": "Bearer",
            "expires_in": 3600,
            "scope": "openid",
        }
        self.signing_key = None
        self.id_token_overrides: dict = {}
        self.last_nonce = None

    def calls_to(self, name: str) -> list[dict]:
        return [body for call, body in self.calls if call == name]

    def _id_token(self) -> str:
        now = int(time.time())
        claims = {
            "iss": f"{BASE_URL}/oauth2/token",
            "aud": CLIENT_ID,
            "sub": "agent-a",
            "iat": now,
            "exp": now + 300,
            "nonce": self.last_nonce,
        }
        claims.update(self.id_token_overrides)
        return jwt.encode(claims, self.signing_key, algorithm="RS256", headers={"kid": "key-1"})

    def jwks(self) -> dict:
        jwk = json.loads(RSAAlgorithm.to_jwk(self.signing_key.public_key()))
        jwk.update({"kid": "key-1", "alg": "RS256", "use": "sig"})
        return {"keys": [jwk]}

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path

        if path.endswith("/oauth2/authorize") and request.method == "POST":
            form = dict(parse_qsl(request.content.decode()))
            self.last_nonce = form.get("nonce")
            self.calls.append(("authorize", form))
            return httpx.Response(
                200,
                json={
                    "flowId": "flow-1",
                    "flowStatus": "INCOMPLETE",
                    "flowType": "AUTHENTICATION",
                    "nextStep": {
                        "stepType": "AUTHENTICATOR_PROMPT",
                        "authenticators": self.authenticators,
                    },
                },
            )

        if path.endswith("/oauth2/authn"):
            body = json.loads(request.content)
            self.calls.append(("authn", body))
            if self.authn_status_code != 200:
                return httpx.Response(self.authn_status_code, json={"code": "ABA-60001"})
            payload = {"flowStatus": self.flow_status}
            if self.flow_status == "SUCCESS_COMPLETED":
                payload["authData"] = {"code": "c1", "state": "s1", "session_state": "ss1"}
            return httpx.Response(200, json=payload)

        if path.endswith("/oauth2/token"):
            form = dict(parse_qsl(request.content.decode()))
            self.calls.append(("token", form))
            if self.token_status_code != 200:
                return httpx.Response(
                    self.token_status_code,
                    json={"error": "invalid_grant", "error_description": "Invalid code"},
                )
            token = dict(self.obo_token if "actor_token" in form else self.agent_token)
            if self.signing_key is not None:
                token["id_token"] = self._id_token()
            return httpx.Response(200, json=token)

        if path.endswith("/oauth2/jwks"):
            self.calls.append(("jwks", {}))
            return httpx.Response(200, json=self.jwks())

        return httpx.Response(404, json={"error": "not_found"})


@pytest.fixture
def provider():
    return StubProvider()


@pytest.fixture
def transport(provider):
    return httpx.MockTransport(provider.handler)


@pytest.fixture
def auth_config():
    return AuthClientConfig(
        base_url=BASE_URL,
        client_id=CLIENT_ID,
        redirect_uri=REDIRECT_URI,
        scopes=["openid", "profile"],
    )


@pytest.fixture
def store():
    return InMemoryCredentialStore()


@pytest.fixture
def engine(auth_config, store, transport):
    return AuthEngine(auth_config, store, CryptoUtils(), transport=transport)


@pytest.fixture
def agent_auth(auth_config, store, transport):
    return AgentAuth(auth_config, store=store, transport=transport)


@pytest.fixture
def agent_config():
    return AgentConfig(agent_id="a", agent_secret="p")


@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)
