"""
Agent Authentication

Token acquisition for autonomous AI agents against an OAuth2/OIDC identity
provider that supports embedded (API-based) sign-in.

Flows:
- Agent credential flow: the agent signs in with its own ID and secret
- On-behalf-of (OBO) flow: the agent exchanges a user's authorization code,
  together with its own token as ``actor_token``, for a delegated token

Components:
- agent_auth: AgentAuth facade exposing the public operations
- auth_engine: protocol engine (authorize URL, embedded sign-in, token exchange)
- flow_state_manager: PKCE verifier and flow state storage
- credential_store: pluggable key/value store for flow state
- crypto_utils / pkce: encoding, hashing, randomness, JWT verification
- callback: FastAPI router capturing the OBO redirect
"""

__all__ = [
    "AgentAuth",
    "AuthEngine",
    "AgentConfig",
    "AuthClientConfig",
    "AuthCodeResponse",
    "TokenResponse",
    "CryptoUtils",
    "InMemoryCredentialStore",
]


# Lazy imports to avoid pulling in httpx/fastapi for model-only users
def __getattr__(name: str):
    if name == "AgentAuth":
        from agent_auth.agent_auth import AgentAuth
        return AgentAuth
    elif name == "AuthEngine":
        from agent_auth.auth_engine import AuthEngine
        return AuthEngine
    elif name == "CryptoUtils":
        from agent_auth.crypto_utils import CryptoUtils
        return CryptoUtils
    elif name == "InMemoryCredentialStore":
        from agent_auth.credential_store.in_memory_credential_store import InMemoryCredentialStore
        return InMemoryCredentialStore
    elif name in ("AgentConfig", "AuthClientConfig", "AuthCodeResponse", "TokenResponse"):
        from agent_auth import models
        return getattr(models, name)

    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
