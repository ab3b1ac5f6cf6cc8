"""Unit tests for PKCE verifier/challenge generation and state tokens."""

from socialsync.core.pkce import (
    MAX_VERIFIER_LENGTH,
    MIN_VERIFIER_LENGTH,
    UNRESERVED_CHARACTERS,
    generate_code_challenge,
    generate_code_verifier,
    generate_login_id,
    generate_pkce,
    generate_state,
)


class TestCodeVerifier:
    def test_length_within_bounds(self):
        for _ in range(500):
            verifier = generate_code_verifier()
            assert MIN_VERIFIER_LENGTH <= len(verifier) <= MAX_VERIFIER_LENGTH

    def test_only_unreserved_characters(self):
        allowed = set(UNRESERVED_CHARACTERS)
        for _ in range(200):
            assert set(generate_code_verifier()) <= allowed

    def test_lengths_vary(self):
        lengths = {len(generate_code_verifier()) for _ in range(200)}
        assert len(lengths) > 10

    def test_unique(self):
        assert len({generate_code_verifier() for _ in range(100)}) == 100


class TestCodeChallenge:
    def test_rfc7636_appendix_b(self):
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert generate_code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_url_safe_without_padding(self):
        for _ in range(100):
            challenge = generate_code_challenge(generate_code_verifier())
            assert "=" not in challenge
            assert "+" not in challenge
            assert "/" not in challenge
            assert len(challenge) == 43

    def test_pair_is_consistent(self):
        pair = generate_pkce()
        assert pair.code_challenge == generate_code_challenge(pair.code_verifier)


class TestStateTokens:
    def test_state_is_random_hex(self):
        states = {generate_state() for _ in range(100)}
        assert len(states) == 100
        for state in states:
            assert len(state) == 32
            int(state, 16)

    def test_login_id_has_no_separator(self):
        assert "." not in generate_login_id()
