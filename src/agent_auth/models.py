"""
Agent Auth Request and Response Models

Models for the agent-credential and on-behalf-of (OBO) flows, plus the
wire models of the provider's embedded sign-in API (camelCase JSON).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from agent_auth.exceptions import MissingAuthorizationCode


class AgentConfig(BaseModel):
    """
    Agent credentials, supplied by the caller per invocation.

    The secret is excluded from ``repr`` so it never ends up in logs.
    """

    model_config = ConfigDict(frozen=True)

    agent_id: str = Field(..., min_length=1, description="Agent identifier (username)")
    agent_secret: str = Field(..., repr=False, description="Agent secret (password)")


class AuthCodeResponse(BaseModel):
    """
    Authorization response captured from the provider's redirect.
    """

    code: str = Field(..., description="Authorization code")
    state: str = Field("", description="State parameter echoed by the provider")
    session_state: str = Field("", description="Provider session correlator")

    @field_validator("code")
    @classmethod
    def code_must_be_present(cls, value: str) -> str:
        if not value:
            raise ValueError("No authorization code found.")
        return value

    @classmethod
    def from_query_params(cls, params: Mapping[str, Any]) -> "AuthCodeResponse":
        """
        Build from redirect query parameters.

        Raises:
            MissingAuthorizationCode: If ``code`` is absent or empty
        """
        code = params.get("code")
        if not code:
            raise MissingAuthorizationCode()
        return cls(
            code=code,
            state=params.get("state") or "",
            session_state=params.get("session_state") or "",
        )


class TokenResponse(BaseModel):
    """
    Token endpoint response.

    Extra provider fields are kept as-is.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str = Field(..., description="OAuth access token")
    token_type: str = Field("Bearer", description="Token type (usually 'Bearer')")
    expires_in: int | None = Field(None, description="Token lifetime in seconds")
    refresh_token: str | None = Field(None, description="Refresh token (optional)")
    scope: str | None = Field(None, description="Granted scopes (space-separated)")
    id_token: str | None = Field(None, description="OIDC ID token (optional)")

    def authorization_header(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}


class FlowStatus(str, Enum):
    INIT = "INIT"
    AUTHORIZE_URL_BUILT = "AUTHORIZE_URL_BUILT"
    EMBEDDED_AUTHN_IN_PROGRESS = "EMBEDDED_AUTHN_IN_PROGRESS"
    AWAITING_REDIRECT = "AWAITING_REDIRECT"
    TOKEN_EXCHANGE_IN_PROGRESS = "TOKEN_EXCHANGE_IN_PROGRESS"
    TOKEN_EXCHANGED = "TOKEN_EXCHANGED"
    TERMINAL = "TERMINAL"
    FAILED = "FAILED"


# Allowed transitions of the per-flow state machine. FAILED is reachable
# from every non-terminal state and is handled separately.
FLOW_TRANSITIONS: dict[FlowStatus, set[FlowStatus]] = {
    FlowStatus.INIT: {FlowStatus.AUTHORIZE_URL_BUILT},
    FlowStatus.AUTHORIZE_URL_BUILT: {
        FlowStatus.EMBEDDED_AUTHN_IN_PROGRESS,
        FlowStatus.AWAITING_REDIRECT,
    },
    FlowStatus.EMBEDDED_AUTHN_IN_PROGRESS: {FlowStatus.TOKEN_EXCHANGE_IN_PROGRESS},
    FlowStatus.AWAITING_REDIRECT: {FlowStatus.TOKEN_EXCHANGE_IN_PROGRESS},
    FlowStatus.TOKEN_EXCHANGE_IN_PROGRESS: {FlowStatus.TOKEN_EXCHANGED},
    FlowStatus.TOKEN_EXCHANGED: {FlowStatus.TERMINAL},
    FlowStatus.TERMINAL: set(),
    FlowStatus.FAILED: set(),
}


class FlowState(BaseModel):
    """
    Transient state of one authorization flow, kept in the credential store
    between the authorize step and the token exchange.
    """

    state: str
    code_verifier: str
    nonce: str | None = None
    session_state: str | None = None
    flow_id: str | None = None
    status: FlowStatus = FlowStatus.INIT
    custom_params: dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def is_expired(self, ttl_seconds: int | float | None) -> bool:
        if not ttl_seconds:
            return False
        age = (datetime.now(timezone.utc) - self.created_at).total_seconds()
        return age > ttl_seconds


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class EmbeddedSignInFlowStatus(str, Enum):
    SUCCESS_COMPLETED = "SUCCESS_COMPLETED"
    INCOMPLETE = "INCOMPLETE"
    FAIL_INCOMPLETE = "FAIL_INCOMPLETE"
    FAIL_COMPLETED = "FAIL_COMPLETED"


class AuthenticatorParam(_CamelModel):
    param: str
    type: str | None = None
    order: int | None = None
    display_name: str | None = None
    confidential: bool = False


class AuthenticatorMetadata(_CamelModel):
    i18n_key: str | None = None
    prompt_type: str | None = None
    params: list[AuthenticatorParam] = Field(default_factory=list)


class Authenticator(_CamelModel):
    """An authentication method offered by the provider for the next step."""

    authenticator_id: str
    authenticator: str
    idp: str | None = None
    metadata: AuthenticatorMetadata | None = None
    required_params: list[str] = Field(default_factory=list)


class NextStep(_CamelModel):
    step_type: str | None = None
    authenticators: list[Authenticator] = Field(default_factory=list)


class EmbeddedSignInInitResponse(_CamelModel):
    flow_id: str
    flow_status: str | None = None
    flow_type: str | None = None
    next_step: NextStep = Field(default_factory=NextStep)


class EmbeddedAuthData(BaseModel):
    code: str | None = None
    state: str | None = None
    session_state: str | None = None


class EmbeddedSignInResult(_CamelModel):
    flow_status: str
    auth_data: EmbeddedAuthData | None = None

    @property
    def succeeded(self) -> bool:
        return self.flow_status == EmbeddedSignInFlowStatus.SUCCESS_COMPLETED.value


class SelectedAuthenticator(_CamelModel):
    authenticator_id: str
    params: dict[str, str]


class EmbeddedSignInRequest(_CamelModel):
    """Payload submitted to the provider's authn endpoint."""

    flow_id: str
    selected_authenticator: SelectedAuthenticator


class AuthClientConfig(BaseModel):
    """
    Identity provider client configuration.
    """

    base_url: str = Field(..., description="Provider base URL (tenant root)")
    client_id: str = Field(..., description="OAuth client ID")
    client_secret: str | None = Field(
        None, repr=False, description="Client secret (confidential clients only)"
    )
    redirect_uri: str = Field(..., description="Redirect URI registered for the client")
    scopes: list[str] = Field(default_factory=lambda: ["openid"], description="Requested scopes")
    validate_id_token: bool = Field(
        False, description="Verify returned ID tokens against the provider JWKS"
    )
    clock_tolerance: int = Field(0, description="Allowed clock skew (seconds) for ID token checks")
    enable_discovery: bool = Field(False, description="Discover endpoints via OpenID configuration")
    http_timeout: float = Field(30.0, description="HTTP request timeout in seconds")

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")
