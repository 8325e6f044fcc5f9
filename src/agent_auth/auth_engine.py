"""
Auth Protocol Engine

Drives the provider-facing half of the agent flows:

- Authorization URL generation with PKCE, state and nonce
- Embedded (non-browser) sign-in: initiation, authenticator selection, execution
- Authorization code exchange, including the delegated variant that carries
  the agent's own token as ``actor_token``
- Optional ID token verification against the provider JWKS

The credential store and crypto utilities are injected, so tests can swap
in fakes, and so can the HTTP transport.

References:
- RFC 6749: The OAuth 2.0 Authorization Framework
- RFC 7636: Proof Key for Code Exchange
- OpenID Connect Core 1.0 Section 3.1.3.7 (ID Token Validation)
"""

import logging
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
import jwt
from pydantic import ValidationError

from agent_auth.credential_store.credential_store import CredentialStore
from agent_auth.crypto_utils import CryptoUtils
from agent_auth.exceptions import (
    AuthenticationFailed,
    AuthenticatorNotFound,
    ClaimMismatch,
    DecodeError,
    InvalidKey,
    MissingAuthorizationCode,
    TokenExchangeError,
    URLBuildError,
)
from agent_auth.flow_state_manager import FlowStateManager
from agent_auth.models import (
    AuthClientConfig,
    Authenticator,
    EmbeddedSignInInitResponse,
    EmbeddedSignInRequest,
    EmbeddedSignInResult,
    FlowState,
    FlowStatus,
    SelectedAuthenticator,
    TokenResponse,
)
from agent_auth.pkce import PKCEManager
from agent_auth.server_metadata import ProviderEndpoints, ServerMetadataCache

logger = logging.getLogger(__name__)

# Parameters owned by the engine; callers cannot override them
RESERVED_AUTHORIZE_PARAMS = frozenset(
    {
        "response_type",
        "client_id",
        "redirect_uri",
        "state",
        "nonce",
        "code_challenge",
        "code_challenge_method",
    }
)
RESERVED_TOKEN_PARAMS = frozenset(
    {"grant_type", "client_id", "client_secret", "code", "redirect_uri", "code_verifier"}
)

ID_TOKEN_ALGORITHMS = ["RS256", "RS384", "RS512", "PS256"]


class AuthEngine:
    """
    OAuth2/OIDC protocol engine for agent authentication flows.
    """

    def __init__(
        self,
        config: AuthClientConfig,
        store: CredentialStore,
        crypto: CryptoUtils,
        flow_state_ttl: int | float | None = 300,
        endpoints: ProviderEndpoints | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the engine.

        Args:
            config: Provider client configuration
            store: Credential store for flow state
            crypto: Crypto capability (encoding, hashing, randomness, JWT)
            flow_state_ttl: Seconds an unfinished flow stays usable
            endpoints: Fixed provider endpoints (skips derivation/discovery)
            transport: httpx transport, mainly for tests
        """
        self.config = config
        self.store = store
        self.crypto = crypto
        self.timeout = config.http_timeout
        self.transport = transport
        self.pkce_manager = PKCEManager(crypto)
        self.state_manager = FlowStateManager(store, crypto, ttl_seconds=flow_state_ttl)
        self.metadata_cache = ServerMetadataCache(timeout=self.timeout, transport=transport)
        self._endpoints = endpoints

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def resolve_endpoints(self) -> ProviderEndpoints:
        """
        Resolve provider endpoints once per engine.

        Discovery failures fall back to the conventional endpoint paths.
        """
        if self._endpoints is not None:
            return self._endpoints

        endpoints = None
        if self.config.enable_discovery:
            try:
                endpoints = await self.metadata_cache.fetch_provider_endpoints(self.config.base_url)
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(
                    f"Provider metadata discovery failed: {e}. Using fallback endpoints."
                )

        self._endpoints = endpoints or ProviderEndpoints.from_base_url(self.config.base_url)
        return self._endpoints

    @staticmethod
    def state_from_url(url: str) -> str | None:
        """Extract the ``state`` query parameter from an authorization URL."""
        return dict(parse_qsl(urlsplit(url).query)).get("state")

    async def build_authorize_url(self, custom_params: dict[str, Any] | None = None) -> str:
        """
        Build complete authorization URL and start a new flow.

        Constructs URL with:
        - response_type=code
        - client_id, redirect_uri, scope
        - state (flow key), nonce (when the openid scope is requested)
        - code_challenge, code_challenge_method=S256
        - caller-supplied extension parameters (e.g. response_mode, requested_actor)

        The PKCE verifier is stored under the state before the URL is returned.
        Flows not using ``response_mode=direct`` are handed to a browser and
        move straight to AWAITING_REDIRECT.

        Args:
            custom_params: Extra query parameters

        Returns:
            str: Authorization URL

        Raises:
            URLBuildError: If no URL can be built
        """
        endpoints = await self.resolve_endpoints()
        if not endpoints.authorization_endpoint or not self.config.client_id:
            raise URLBuildError("Could not build Authorize URL")

        custom = {k: str(v) for k, v in (custom_params or {}).items() if v is not None}
        overridden = RESERVED_AUTHORIZE_PARAMS & custom.keys()
        if overridden:
            raise URLBuildError(
                "Could not build Authorize URL: custom parameters may not override "
                f"{sorted(overridden)}"
            )

        verifier, challenge = self.pkce_manager.generate_pkce_pair()
        nonce = self.state_manager.generate_nonce() if "openid" in self.config.scopes else None
        flow_state = self.state_manager.create_flow(verifier, nonce=nonce, custom_params=custom)

        params = {
            "response_type": "code",
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "scope": " ".join(self.config.scopes),
            "state": flow_state.state,
            "code_challenge": challenge,
            "code_challenge_method": "S256",
        }
        if nonce:
            params["nonce"] = nonce
        params.update(custom)

        base_url = endpoints.authorization_endpoint
        separator = "&" if "?" in base_url else "?"
        auth_url = f"{base_url}{separator}{urlencode(params)}"

        if custom.get("response_mode") != "direct":
            self.state_manager.transition(flow_state.state, FlowStatus.AWAITING_REDIRECT)

        logger.debug(
            f"Built authorization URL for state={flow_state.state}, params={sorted(custom)}"
        )
        return auth_url

    async def initiate_embedded_sign_in(self, authorize_url: str) -> EmbeddedSignInInitResponse:
        """
        Start an embedded sign-in flow.

        Posts the authorization URL's query parameters straight to the
        authorization endpoint and returns the authentication steps offered.

        Args:
            authorize_url: URL from build_authorize_url with response_mode=direct

        Returns:
            EmbeddedSignInInitResponse: Flow ID and next-step authenticators

        Raises:
            AuthenticationFailed: If the provider rejects the request
        """
        parts = urlsplit(authorize_url)
        endpoint = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
        payload = dict(parse_qsl(parts.query))
        state = payload.get("state")

        try:
            async with self._client() as client:
                response = await client.post(
                    endpoint,
                    data=payload,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Embedded sign-in initiation request failed: {e}")
            self._fail(state)
            raise AuthenticationFailed("Embedded sign-in initiation failed.") from e

        if response.status_code != 200:
            logger.error(f"Embedded sign-in initiation failed: status={response.status_code}")
            self._fail(state)
            raise AuthenticationFailed(
                f"Embedded sign-in initiation failed with status {response.status_code}."
            )

        try:
            init_response = EmbeddedSignInInitResponse.model_validate(response.json())
        except (ValidationError, ValueError) as e:
            self._fail(state)
            raise AuthenticationFailed("Invalid embedded sign-in initiation response.") from e

        if state:
            self.state_manager.transition(
                state, FlowStatus.EMBEDDED_AUTHN_IN_PROGRESS, flow_id=init_response.flow_id
            )

        logger.debug(
            f"Embedded sign-in initiated: flow_id={init_response.flow_id}, "
            f"authenticators={[a.authenticator for a in init_response.next_step.authenticators]}"
        )
        return init_response

    @staticmethod
    def select_authenticator(steps: list[Authenticator], name: str) -> Authenticator:
        """
        Pick the authenticator whose name matches exactly (case-sensitive).

        Raises:
            AuthenticatorNotFound: If no offered authenticator matches
        """
        for step in steps:
            if step.authenticator == name:
                return step
        raise AuthenticatorNotFound(name, [step.authenticator for step in steps])

    async def execute_embedded_sign_in(
        self,
        flow_id: str,
        authenticator_id: str,
        params: dict[str, str],
    ) -> EmbeddedSignInResult:
        """
        Submit credentials for the selected authenticator.

        Only single-step flows are supported: anything but SUCCESS_COMPLETED
        is a failure.

        Args:
            flow_id: Flow ID from initiate_embedded_sign_in
            authenticator_id: ID of the selected authenticator
            params: Authenticator parameters (e.g. username/password)

        Returns:
            EmbeddedSignInResult: Completed flow carrying the authorization data

        Raises:
            AuthenticationFailed: If the credentials are rejected or the flow is incomplete
        """
        endpoints = await self.resolve_endpoints()
        request = EmbeddedSignInRequest(
            flow_id=flow_id,
            selected_authenticator=SelectedAuthenticator(
                authenticator_id=authenticator_id, params=params
            ),
        )

        try:
            async with self._client() as client:
                response = await client.post(
                    endpoints.authn_endpoint,
                    json=request.model_dump(by_alias=True),
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Embedded sign-in request failed: flow_id={flow_id}")
            raise AuthenticationFailed() from e

        if response.status_code != 200:
            logger.warning(
                f"Embedded sign-in rejected: flow_id={flow_id}, status={response.status_code}"
            )
            raise AuthenticationFailed()

        try:
            result = EmbeddedSignInResult.model_validate(response.json())
        except (ValidationError, ValueError) as e:
            raise AuthenticationFailed("Invalid embedded sign-in response.") from e

        if not result.succeeded:
            logger.warning(
                f"Embedded sign-in did not complete: flow_id={flow_id}, "
                f"status={result.flow_status}"
            )
            raise AuthenticationFailed(flow_status=result.flow_status)

        if result.auth_data is None or not result.auth_data.code:
            raise AuthenticationFailed(
                "Embedded sign-in completed without an authorization code.",
                flow_status=result.flow_status,
            )

        logger.debug(f"Embedded sign-in completed: flow_id={flow_id}")
        return result

    async def exchange_code_for_token(
        self,
        code: str,
        session_state: str,
        state: str,
        extra_params: dict[str, str] | None = None,
    ) -> TokenResponse:
        """
        Exchange authorization code for access token.

        Makes POST request to token endpoint with:
        - grant_type=authorization_code
        - code, redirect_uri, client_id (+ client_secret if confidential)
        - code_verifier (PKCE, loaded from the flow state)
        - extra_params; an ``actor_token`` makes this a delegated exchange

        The flow state is removed once the exchange finishes, whatever the outcome.

        Args:
            code: Authorization code
            session_state: Provider session correlator from the redirect
            state: State parameter identifying the flow
            extra_params: Additional token request parameters

        Returns:
            TokenResponse: Access token and metadata

        Raises:
            MissingAuthorizationCode: If ``code`` is empty
            FlowStateNotFound: If no stored verifier matches ``state``
            TokenExchangeError: If the token endpoint rejects the request, or the
                flow is not waiting for a code or is already being exchanged
            JwtVerificationError: If ID token validation is enabled and fails
        """
        if not code:
            raise MissingAuthorizationCode()

        extra = dict(extra_params or {})
        overridden = RESERVED_TOKEN_PARAMS & extra.keys()
        if overridden:
            raise TokenExchangeError(
                f"Extra token parameters may not override {sorted(overridden)}",
                error="invalid_request",
            )

        endpoints = await self.resolve_endpoints()

        # Single use: a second exchange of this state fails here, before any request
        flow_state = self.state_manager.claim_for_exchange(state)

        body = {
            "grant_type": "authorization_code",
            "client_id": self.config.client_id,
            "code": code,
            "redirect_uri": self.config.redirect_uri,
            "code_verifier": flow_state.code_verifier,
        }
        if self.config.client_secret:
            body["client_secret"] = self.config.client_secret
        body.update(extra)

        delegated = "actor_token" in extra
        logger.debug(
            f"Exchanging code for tokens: endpoint={endpoints.token_endpoint}, "
            f"state={state}, delegated={delegated}"
        )

        try:
            token_response = await self._request_token(endpoints.token_endpoint, body)

            self.state_manager.transition(
                state, FlowStatus.TOKEN_EXCHANGED, session_state=session_state or None
            )

            if self.config.validate_id_token and token_response.id_token:
                await self.validate_id_token(token_response.id_token, flow_state)
        except Exception:
            self._fail(state)
            raise

        self.state_manager.complete(state)
        logger.info(f"Obtained access token (delegated={delegated})")
        return token_response

    async def _request_token(self, token_endpoint: str, body: dict[str, str]) -> TokenResponse:
        try:
            async with self._client() as client:
                response = await client.post(
                    token_endpoint,
                    data=body,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Token request failed: {e}")
            raise TokenExchangeError(f"Token request failed: {e}") from e

        if response.status_code != 200:
            error_data = self._error_body(response)
            logger.error(
                f"Token request failed: status={response.status_code}, "
                f"error={error_data.get('error')}"
            )
            raise TokenExchangeError(
                f"Token request failed: {error_data.get('error', 'unknown_error')}",
                error=error_data.get("error"),
                status_code=response.status_code,
            )

        try:
            return TokenResponse.model_validate(response.json())
        except (ValidationError, ValueError) as e:
            raise TokenExchangeError("Invalid token response", error="invalid_response") from e

    async def validate_id_token(
        self, id_token: str, flow_state: FlowState, subject: str | None = None
    ) -> bool:
        """
        Verify an ID token against the provider's JWKS.

        Checks signature, audience (client ID), issuer and the nonce sent in
        the authorization request. ``sub`` is only compared when the caller
        knows the expected subject; the provider assigns it otherwise.

        Raises:
            JwtVerificationError: If any check fails
        """
        endpoints = await self.resolve_endpoints()

        try:
            header = jwt.get_unverified_header(id_token)
            claims = jwt.decode(id_token, options={"verify_signature": False})
        except jwt.DecodeError as e:
            raise DecodeError(f"Malformed ID token: {e}") from e

        try:
            keys = await self.metadata_cache.fetch_jwks(endpoints.jwks_uri)
        except (httpx.HTTPError, ValueError) as e:
            raise InvalidKey(f"Failed to fetch provider JWKS: {e}") from e

        kid = header.get("kid")
        matching = [key for key in keys if kid is None or key.get("kid") == kid]
        if not matching:
            raise InvalidKey(f"No JWK found for kid={kid}")

        self.crypto.verify_jwt(
            id_token,
            matching[0],
            ID_TOKEN_ALGORITHMS,
            self.config.client_id,
            endpoints.issuer,
            subject,
            self.config.clock_tolerance,
        )

        if flow_state.nonce and claims.get("nonce") != flow_state.nonce:
            raise ClaimMismatch("ID token nonce mismatch")

        logger.debug("ID token validated")
        return True

    def abandon_flow(self, state: str) -> None:
        """Drop a flow that will never be completed."""
        self._fail(state)

    def _fail(self, state: str | None) -> None:
        if state:
            self.state_manager.mark_failed(state)

    @staticmethod
    def _error_body(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
