"""
PKCE (Proof Key for Code Exchange) Implementation

Binds an authorization request to the client that started it.
The verifier stays with the client (in the credential store) and only
the S256 challenge travels in the authorization URL.

References:
- RFC 7636: Proof Key for Code Exchange
"""

from agent_auth.crypto_utils import CryptoUtils

VERIFIER_ALLOWED_CHARS = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"
)


def generate_code_verifier(crypto: CryptoUtils | None = None) -> str:
    """
    Generate cryptographically random code verifier.

    Per RFC 7636, code verifier must be:
    - 43-128 characters long
    - Use characters [A-Z] / [a-z] / [0-9] / "-" / "." / "_" / "~"

    Args:
        crypto: Crypto capability to draw randomness from

    Returns:
        str: Base64url-encoded random verifier (43 chars)
    """
    crypto = crypto or CryptoUtils()
    # 32 random bytes encode to 43 base64url characters
    return crypto.base64_url_encode(crypto.generate_random_bytes(32))


def generate_code_challenge(verifier: str, crypto: CryptoUtils | None = None) -> str:
    """
    Generate PKCE code challenge from verifier using S256 method.

    challenge = BASE64URL(SHA256(verifier))
    """
    crypto = crypto or CryptoUtils()
    return crypto.base64_url_encode(crypto.hash_sha256(verifier))


def validate_code_verifier(verifier: str) -> bool:
    if not (43 <= len(verifier) <= 128):
        return False
    return all(c in VERIFIER_ALLOWED_CHARS for c in verifier)


class PKCEManager:
    """
    Manager for PKCE generation and validation.
    """

    def __init__(self, crypto: CryptoUtils | None = None):
        self.crypto = crypto or CryptoUtils()

    def generate_pkce_pair(self) -> tuple[str, str]:
        """
        Generate PKCE verifier and challenge pair.

        Returns:
            tuple: (verifier, challenge)
        """
        verifier = generate_code_verifier(self.crypto)
        challenge = generate_code_challenge(verifier, self.crypto)
        return verifier, challenge

    def verify_challenge(self, verifier: str, challenge: str) -> bool:
        return generate_code_challenge(verifier, self.crypto) == challenge
