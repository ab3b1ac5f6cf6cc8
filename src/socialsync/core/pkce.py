"""PKCE (RFC 7636) verifier/challenge generation and CSRF state tokens.

Pure functions, no side effects.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
import string
from dataclasses import dataclass

UNRESERVED_CHARACTERS = string.ascii_letters + string.digits + "-._~"
MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128


def generate_code_verifier() -> str:
    """Random verifier of uniformly chosen length in [43, 128] over the unreserved set."""
    length = MIN_VERIFIER_LENGTH + secrets.randbelow(MAX_VERIFIER_LENGTH - MIN_VERIFIER_LENGTH + 1)
    return "".join(secrets.choice(UNRESERVED_CHARACTERS) for _ in range(length))


def generate_code_challenge(code_verifier: str) -> str:
    """S256 challenge: base64url(SHA-256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_state() -> str:
    return secrets.token_hex(16)


def generate_login_id() -> str:
    return secrets.token_hex(8)


@dataclass(frozen=True, slots=True)
class PKCEPair:
    code_verifier: str
    code_challenge: str


def generate_pkce() -> PKCEPair:
    code_verifier = generate_code_verifier()
    return PKCEPair(code_verifier=code_verifier, code_challenge=generate_code_challenge(code_verifier))
