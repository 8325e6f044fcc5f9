from unittest.mock import MagicMock

from agent_auth.crypto_utils import CryptoUtils
from agent_auth.pkce import (
    PKCEManager,
    generate_code_challenge,
    generate_code_verifier,
    validate_code_verifier,
)


def test_code_verifier_format():
    verifier = generate_code_verifier()
    assert len(verifier) == 43
    assert validate_code_verifier(verifier)


def test_code_challenge_rfc7636_vector():
    """Appendix B of RFC 7636."""
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    assert generate_code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_validate_code_verifier_rejects_bad_values():
    assert not validate_code_verifier("short")
    assert not validate_code_verifier("a" * 129)
    assert not validate_code_verifier("a" * 42 + "!")


def test_pkce_pair_matches():
    manager = PKCEManager()
    verifier, challenge = manager.generate_pkce_pair()
    assert manager.verify_challenge(verifier, challenge)
    assert not manager.verify_challenge(verifier, "wrong-challenge")


def test_pkce_uses_injected_crypto():
    crypto = MagicMock(wraps=CryptoUtils())
    crypto.generate_random_bytes.return_value = b"\x00" * 32
    manager = PKCEManager(crypto)

    verifier, _ = manager.generate_pkce_pair()

    crypto.generate_random_bytes.assert_called_once_with(32)
    assert verifier == "A" * 43
