"""
Crypto Utilities

Encoding, hashing, randomness and JWT verification used by the
authorization flows. ``CryptoUtils`` bundles them so the protocol engine
can receive them as a single injectable capability.

References:
- RFC 4648 Section 5: Base64url encoding
- RFC 7517: JSON Web Key (JWK)
- RFC 7519: JSON Web Token (JWT)
"""

import base64
import binascii
import hashlib
import logging
import re
import secrets
from typing import Any

import jwt

from agent_auth.exceptions import (
    ClaimMismatch,
    DecodeError,
    InvalidKey,
    JwtVerificationError,
    SignatureInvalid,
    TokenExpired,
)

logger = logging.getLogger(__name__)

_BASE64URL_PATTERN = re.compile(r"^[A-Za-z0-9_-]*$")


def _to_bytes(value: bytes | str) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def base64_url_encode(value: bytes | str) -> str:
    """
    Base64url-encode a value without padding.

    Args:
        value: Raw bytes, or a string which is UTF-8 encoded first

    Returns:
        str: Base64url string with ``=`` padding stripped
    """
    return base64.urlsafe_b64encode(_to_bytes(value)).decode("ascii").rstrip("=")


def base64_url_decode_bytes(value: str) -> bytes:
    """
    Decode an unpadded base64url string to bytes.

    Raises:
        DecodeError: If the input is not valid base64url
    """
    if not isinstance(value, str) or not _BASE64URL_PATTERN.match(value):
        raise DecodeError("Input is not a valid base64url string")
    if len(value) % 4 == 1:
        raise DecodeError("Input has an invalid base64url length")

    padded = value + "=" * (-len(value) % 4)
    try:
        return base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Failed to decode base64url input: {e}") from e


def base64_url_decode(value: str) -> str:
    """
    Decode an unpadded base64url string to text.

    Raises:
        DecodeError: If the input is not valid base64url or not UTF-8
    """
    raw = base64_url_decode_bytes(value)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError("Decoded base64url content is not valid UTF-8") from e


def hash_sha256(data: str) -> bytes:
    """SHA-256 digest of the UTF-8 encoding of ``data``."""
    return hashlib.sha256(data.encode("utf-8")).digest()


def generate_random_bytes(length: int) -> bytes:
    """
    Generate cryptographically secure random bytes from the OS entropy source.

    Args:
        length: Number of bytes to generate

    Returns:
        bytes: ``length`` random bytes
    """
    if length < 0:
        raise ValueError("length must be non-negative")
    return secrets.token_bytes(length)


def _import_jwk(jwk: dict[str, Any]) -> jwt.PyJWK:
    try:
        return jwt.PyJWK(jwk)
    except (jwt.exceptions.PyJWKError, jwt.exceptions.InvalidKeyError) as e:
        raise InvalidKey(f"Unable to import JSON Web Key: {e}") from e
    except (TypeError, ValueError, KeyError) as e:
        raise InvalidKey(f"Malformed JSON Web Key: {e}") from e


def verify_jwt(
    token: str,
    jwk: dict[str, Any],
    algorithms: list[str],
    audience: str,
    issuer: str,
    subject: str | None,
    clock_tolerance: int | float = 0,
) -> bool:
    """
    Verify a JWT against a JSON Web Key.

    Checks the signature, the algorithm whitelist, expiry (with
    ``clock_tolerance`` seconds of leeway), audience, issuer and subject.

    Args:
        token: Compact-serialized JWT
        jwk: JSON Web Key (public key or shared secret) as a dict
        algorithms: Accepted signing algorithms
        audience: Expected ``aud`` claim
        issuer: Expected ``iss`` claim
        subject: Expected ``sub`` claim, or None to skip the check
        clock_tolerance: Allowed clock skew in seconds

    Returns:
        bool: True when every check passes

    Raises:
        InvalidKey: If the JWK cannot be imported or used
        DecodeError: If the token is malformed
        SignatureInvalid: If the signature does not verify
        TokenExpired: If the token is expired beyond the tolerance
        ClaimMismatch: If a claim or the algorithm does not match
    """
    key = _import_jwk(jwk)

    try:
        claims = jwt.decode(
            token,
            key.key,
            algorithms=algorithms,
            audience=audience,
            issuer=issuer,
            leeway=clock_tolerance,
        )
    except jwt.ExpiredSignatureError as e:
        logger.warning("JWT has expired")
        raise TokenExpired("Token has expired") from e
    except jwt.InvalidSignatureError as e:
        logger.warning("JWT signature validation failed")
        raise SignatureInvalid("Invalid token signature") from e
    except jwt.InvalidAudienceError as e:
        logger.warning(f"JWT audience mismatch. Expected: {audience}")
        raise ClaimMismatch("Token audience mismatch") from e
    except jwt.InvalidIssuerError as e:
        logger.warning(f"JWT issuer mismatch. Expected: {issuer}")
        raise ClaimMismatch("Token issuer mismatch") from e
    except jwt.InvalidAlgorithmError as e:
        raise ClaimMismatch(f"Token algorithm not allowed. Allowed: {algorithms}") from e
    except jwt.InvalidKeyError as e:
        raise InvalidKey(f"Key is not applicable to this token: {e}") from e
    except jwt.DecodeError as e:
        raise DecodeError(f"Malformed token: {e}") from e
    except jwt.InvalidTokenError as e:
        raise ClaimMismatch(f"Token claims are invalid: {e}") from e
    except (TypeError, ValueError) as e:
        raise JwtVerificationError(f"Token validation failed: {e}") from e

    if subject is not None and claims.get("sub") != subject:
        logger.warning("JWT subject mismatch")
        raise ClaimMismatch("Token subject mismatch")

    return True


class CryptoUtils:
    """
    Injectable bundle of the crypto primitives used by the auth flows.
    """

    @staticmethod
    def base64_url_encode(value: bytes | str) -> str:
        return base64_url_encode(value)

    @staticmethod
    def base64_url_decode(value: str) -> str:
        return base64_url_decode(value)

    @staticmethod
    def hash_sha256(data: str) -> bytes:
        return hash_sha256(data)

    @staticmethod
    def generate_random_bytes(length: int) -> bytes:
        return generate_random_bytes(length)

    @staticmethod
    def verify_jwt(
        token: str,
        jwk: dict[str, Any],
        algorithms: list[str],
        audience: str,
        issuer: str,
        subject: str | None,
        clock_tolerance: int | float = 0,
    ) -> bool:
        return verify_jwt(token, jwk, algorithms, audience, issuer, subject, clock_tolerance)
