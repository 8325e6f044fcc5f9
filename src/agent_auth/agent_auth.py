"""
Agent Auth Facade

Public entry point for AI agents that need tokens:

- get_agent_token: the agent acting on its own, using its own credentials
- get_obo_flow_auth_url / get_obo_token: the agent acting on behalf of a user
- get_auth_url: raw authorization URL for any other flow
"""

import logging
from typing import Any

import httpx

from agent_auth.app_config import AppConfig
from agent_auth.auth_engine import AuthEngine
from agent_auth.configs import (
    AA_BASE_URL,
    AA_CLIENT_ID,
    AA_CLIENT_SECRET,
    AA_CLOCK_TOLERANCE,
    AA_ENABLE_DISCOVERY,
    AA_FLOW_STATE_TTL,
    AA_HTTP_TIMEOUT,
    AA_REDIRECT_URI,
    AA_SCOPES,
    AA_VALIDATE_ID_TOKEN,
)
from agent_auth.credential_store.credential_store import CredentialStore
from agent_auth.credential_store.credential_store_factory import CredentialStoreFactory
from agent_auth.credential_store.in_memory_credential_store import InMemoryCredentialStore
from agent_auth.crypto_utils import CryptoUtils
from agent_auth.exceptions import AgentAuthError, MissingAuthorizationCode
from agent_auth.models import AgentConfig, AuthClientConfig, AuthCodeResponse, TokenResponse

logger = logging.getLogger(__name__)

USERNAME_PASSWORD_AUTHENTICATOR = "Username & Password"


class AgentAuth:
    """
    Coordinates the agent-credential and on-behalf-of flows.
    """

    def __init__(
        self,
        config: AuthClientConfig,
        store: CredentialStore | None = None,
        crypto: CryptoUtils | None = None,
        flow_state_ttl: int | float | None = 300,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.store = store or InMemoryCredentialStore(ttl_seconds=flow_state_ttl)
        self.crypto = crypto or CryptoUtils()
        self.engine = AuthEngine(
            config,
            self.store,
            self.crypto,
            flow_state_ttl=flow_state_ttl,
            transport=transport,
        )

    @classmethod
    def from_app_config(
        cls,
        app_config: AppConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "AgentAuth":
        """
        Build the facade from environment configuration.

        The credential store comes from CredentialStoreFactory, so a custom
        store (e.g. Redis) can be selected through configuration.
        """
        app_config = app_config or AppConfig()

        base_url = app_config.get(AA_BASE_URL.env_name)
        client_id = app_config.get(AA_CLIENT_ID.env_name)
        if not base_url or not client_id:
            raise ValueError(
                f"Required configuration missing: "
                f"{AA_BASE_URL.env_name}={'set' if base_url else 'missing'}, "
                f"{AA_CLIENT_ID.env_name}={'set' if client_id else 'missing'}"
            )

        scopes = (app_config.get(AA_SCOPES.env_name) or "openid").split()
        config = AuthClientConfig(
            base_url=base_url,
            client_id=client_id,
            client_secret=app_config.get(AA_CLIENT_SECRET.env_name),
            redirect_uri=app_config.get(AA_REDIRECT_URI.env_name),
            scopes=scopes,
            validate_id_token=_as_bool(app_config.get(AA_VALIDATE_ID_TOKEN.env_name)),
            clock_tolerance=int(app_config.get(AA_CLOCK_TOLERANCE.env_name) or 0),
            enable_discovery=_as_bool(app_config.get(AA_ENABLE_DISCOVERY.env_name)),
            http_timeout=float(app_config.get(AA_HTTP_TIMEOUT.env_name) or 30),
        )
        ttl = app_config.get(AA_FLOW_STATE_TTL.env_name)
        store = CredentialStoreFactory(app_config).get_credential_store()
        return cls(
            config,
            store=store,
            flow_state_ttl=float(ttl) if ttl else None,
            transport=transport,
        )

    async def get_auth_url(self, custom_params: dict[str, Any] | None = None) -> str:
        """Build an authorization request URL."""
        return await self.engine.build_authorize_url(custom_params)

    async def get_agent_token(self, agent_config: AgentConfig) -> TokenResponse:
        """
        Get a token for the agent acting on its own.

        Runs the embedded sign-in flow with the agent's credentials, then
        exchanges the resulting code. No user interaction is involved.

        Raises:
            AuthenticatorNotFound: If the provider does not offer username/password
            AuthenticationFailed: If the agent credentials are rejected
            TokenExchangeError: If the code exchange fails
        """
        authorize_url = await self.get_auth_url({"response_mode": "direct"})
        state = self.engine.state_from_url(authorize_url)

        try:
            init_response = await self.engine.initiate_embedded_sign_in(authorize_url)

            authenticator = self.engine.select_authenticator(
                init_response.next_step.authenticators, USERNAME_PASSWORD_AUTHENTICATOR
            )

            result = await self.engine.execute_embedded_sign_in(
                init_response.flow_id,
                authenticator.authenticator_id,
                {
                    "username": agent_config.agent_id,
                    "password": agent_config.agent_secret,
                },
            )
        except AgentAuthError:
            logger.warning(f"Agent authentication failed for agent={agent_config.agent_id}")
            self.engine.abandon_flow(state)
            raise

        # The flow was started by this call, so its own state is the flow key
        auth_data = result.auth_data
        if auth_data.state and auth_data.state != state:
            logger.debug("Embedded sign-in returned a different state value; using the flow's own")
        token = await self.engine.exchange_code_for_token(
            auth_data.code,
            auth_data.session_state or "",
            state,
        )
        logger.info(f"Obtained agent token for agent={agent_config.agent_id}")
        return token

    async def get_obo_flow_auth_url(self, agent_config: AgentConfig) -> str:
        """
        Build the authorization URL a user opens to delegate to the agent.

        The request names the agent as ``requested_actor``.
        """
        return await self.get_auth_url({"requested_actor": agent_config.agent_id})

    async def get_obo_token(
        self, agent_config: AgentConfig, auth_code_response: AuthCodeResponse
    ) -> TokenResponse:
        """
        Get a token for the agent acting on behalf of a user.

        A fresh agent token is obtained on every call and passed as the
        ``actor_token`` of the user's code exchange.

        Raises:
            MissingAuthorizationCode: If the user's response carries no code
            AgentAuthError: If either the agent authentication or the exchange fails
        """
        if not auth_code_response.code:
            raise MissingAuthorizationCode()

        agent_token = await self.get_agent_token(agent_config)

        token = await self.engine.exchange_code_for_token(
            auth_code_response.code,
            auth_code_response.session_state,
            auth_code_response.state,
            extra_params={"actor_token": agent_token.access_token},
        )
        logger.info(f"Obtained OBO token for agent={agent_config.agent_id}")
        return token


def _as_bool(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes")
