"""
Error taxonomy for agent authentication flows.

All errors derive from ``AgentAuthError`` so callers can catch the whole
family. None of them carry agent secrets in their messages.
"""


class AgentAuthError(Exception):
    """Base exception for agent authentication errors."""
    pass


class URLBuildError(AgentAuthError):
    """Raised when an authorization URL cannot be built."""
    pass


class AuthenticatorNotFound(AgentAuthError):
    """Raised when the expected authenticator is not offered by the provider."""

    def __init__(self, name: str, available: list[str] | None = None):
        self.name = name
        self.available = available or []
        super().__init__(
            f"Authenticator '{name}' not found among authentication steps. "
            f"Available: {self.available}"
        )


class AuthenticationFailed(AgentAuthError):
    """Raised when the embedded sign-in flow does not complete successfully."""

    def __init__(
        self, message: str = "Agent authentication failed.", flow_status: str | None = None
    ):
        self.flow_status = flow_status
        super().__init__(message)


class TokenExchangeError(AgentAuthError):
    """Raised when the token endpoint rejects an exchange."""

    def __init__(self, message: str, error: str | None = None, status_code: int | None = None):
        self.error = error
        self.status_code = status_code
        super().__init__(message)


class FlowStateNotFound(TokenExchangeError):
    """Raised when no stored flow state (PKCE verifier) matches the exchange."""

    def __init__(self, state: str):
        self.state = state
        super().__init__(
            "No authorization flow state found for the given state. "
            "The flow was never started, already completed, or expired.",
            error="invalid_state",
        )


class MissingAuthorizationCode(AgentAuthError, ValueError):
    """Raised when an authorization response carries no code."""

    def __init__(self, message: str = "No authorization code found."):
        super().__init__(message)


class JwtVerificationError(AgentAuthError):
    """Base exception for JWT verification failures."""
    pass


class DecodeError(JwtVerificationError):
    """Raised for malformed base64url or JWT input."""
    pass


class SignatureInvalid(JwtVerificationError):
    pass


class ClaimMismatch(JwtVerificationError):
    """Raised when audience, issuer, subject or algorithm does not match."""
    pass


class TokenExpired(JwtVerificationError):
    pass


class InvalidKey(JwtVerificationError):
    """Raised when the supplied JWK cannot be imported or used."""
    pass


class InvalidFlowTransition(AgentAuthError):
    """Raised when a flow is moved along an edge the state machine does not have."""
    pass
