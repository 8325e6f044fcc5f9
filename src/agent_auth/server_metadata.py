"""
Identity Provider Endpoint Metadata

Resolves the endpoints the protocol engine talks to. By default they are
derived from the provider base URL using the conventional ``/oauth2/*``
paths; optionally they are discovered from the OpenID Provider
Configuration document.

References:
- OpenID Connect Discovery 1.0
- RFC 8414: OAuth 2.0 Authorization Server Metadata
"""

import logging
from typing import Any

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ProviderEndpoints(BaseModel):
    """Endpoints of an OAuth2/OIDC provider that supports embedded sign-in."""

    authorization_endpoint: str
    authn_endpoint: str
    token_endpoint: str
    jwks_uri: str
    issuer: str

    @classmethod
    def from_base_url(cls, base_url: str) -> "ProviderEndpoints":
        base = base_url.rstrip("/")
        return cls(
            authorization_endpoint=f"{base}/oauth2/authorize",
            authn_endpoint=f"{base}/oauth2/authn",
            token_endpoint=f"{base}/oauth2/token",
            jwks_uri=f"{base}/oauth2/jwks",
            issuer=f"{base}/oauth2/token",
        )


class ServerMetadataCache:
    """
    Cache for provider metadata to avoid repeated discovery requests.
    """

    WELL_KNOWN_PATH = "/oauth2/token/.well-known/openid-configuration"

    def __init__(self, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout
        self.transport = transport
        self._cache: dict[str, ProviderEndpoints] = {}

    async def fetch_provider_endpoints(self, base_url: str) -> ProviderEndpoints:
        """
        Fetch provider endpoints from the OpenID configuration document.

        Values missing from the document fall back to the conventional paths.

        Args:
            base_url: Provider base URL

        Returns:
            ProviderEndpoints: Resolved endpoints

        Raises:
            httpx.HTTPError: If discovery fails
        """
        base = base_url.rstrip("/")
        if base in self._cache:
            return self._cache[base]

        url = f"{base}{self.WELL_KNOWN_PATH}"
        logger.debug(f"Discovering provider metadata from {url}")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(url, headers={"Accept": "application/json"})
            response.raise_for_status()
            document: dict[str, Any] = response.json()

        defaults = ProviderEndpoints.from_base_url(base)
        endpoints = ProviderEndpoints(
            authorization_endpoint=document.get(
                "authorization_endpoint", defaults.authorization_endpoint
            ),
            authn_endpoint=document.get("authn_endpoint", defaults.authn_endpoint),
            token_endpoint=document.get("token_endpoint", defaults.token_endpoint),
            jwks_uri=document.get("jwks_uri", defaults.jwks_uri),
            issuer=document.get("issuer", defaults.issuer),
        )
        self._cache[base] = endpoints
        logger.info(f"Discovered provider endpoints for {base}")
        return endpoints

    async def fetch_jwks(self, jwks_uri: str) -> list[dict[str, Any]]:
        """
        Fetch the provider's JSON Web Key Set.

        Returns:
            list: JWK dicts from the ``keys`` member

        Raises:
            httpx.HTTPError: If the request fails
            ValueError: If the response is not a JSON Web Key Set
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(jwks_uri, headers={"Accept": "application/json"})
            response.raise_for_status()
            document = response.json()

        keys = document.get("keys", []) if isinstance(document, dict) else None
        if not isinstance(keys, list) or not all(isinstance(key, dict) for key in keys):
            raise ValueError(f"Invalid JWKS document from {jwks_uri}")
        return keys

    def clear(self) -> None:
        self._cache.clear()
