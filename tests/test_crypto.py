"""
Dashgate - Crypto Primitive Tests

Run with: pytest tests/test_crypto.py -v
"""

import pytest

from dashgate.auth.crypto import (
    constant_time_equals,
    generate_invite_code,
    generate_otp,
    generate_token,
    hash_otp,
    is_valid_email,
    is_valid_invite_code_format,
    normalize_email,
    verify_otp_hash,
)


# =============================================================================
# OTP TESTS
# =============================================================================

class TestOTPGeneration:
    """OTP codes are 6 numeric digits."""

    def test_generate_otp_is_six_digits(self):
        for _ in range(200):
            otp = generate_otp()
            assert len(otp) == 6
            assert otp.isdigit()

    def test_generate_otp_preserves_leading_zeros(self, monkeypatch):
        monkeypatch.setattr("dashgate.auth.crypto.secrets.randbelow", lambda n: 4217)
        assert generate_otp() == "004217"


class TestOTPHashing:
    """bcrypt hashing of OTPs."""

    def test_hash_is_bcrypt(self):
        otp_hash, salt = hash_otp("123456", rounds=4)

        assert otp_hash.startswith("$2b$04$")
        assert otp_hash.startswith(salt)

    def test_verify_correct_code(self):
        otp_hash, salt = hash_otp("123456", rounds=4)
        assert verify_otp_hash("123456", otp_hash, salt) is True

    def test_verify_wrong_code(self):
        otp_hash, salt = hash_otp("123456", rounds=4)
        assert verify_otp_hash("654321", otp_hash, salt) is False

    def test_same_code_different_hashes(self):
        """Fresh salt per hash."""
        first, _ = hash_otp("123456", rounds=4)
        second, _ = hash_otp("123456", rounds=4)
        assert first != second

    def test_malformed_salt_fails_closed(self):
        otp_hash, _ = hash_otp("123456", rounds=4)
        assert verify_otp_hash("123456", otp_hash, "not-a-salt") is False


# =============================================================================
# TOKEN AND CODE TESTS
# =============================================================================

class TestTokens:

    def test_token_is_64_hex_chars(self):
        token = generate_token()
        assert len(token) == 64
        int(token, 16)

    def test_tokens_are_unique(self):
        assert len({generate_token() for _ in range(50)}) == 50

    def test_constant_time_equals(self):
        assert constant_time_equals("abc", "abc") is True
        assert constant_time_equals("abc", "abd") is False
        assert constant_time_equals("abc", "abcd") is False


class TestInviteCodes:

    def test_generated_code_matches_format(self):
        for _ in range(50):
            assert is_valid_invite_code_format(generate_invite_code())

    @pytest.mark.parametrize("code", [
        "DEMO-ANALYST-2024",
        "INV-ABCD",
        "inv-abcd-efgh",
        "INV-AB0D-EFGH",  # 0 is not in the alphabet
        "",
    ])
    def test_rejects_other_formats(self, code):
        assert is_valid_invite_code_format(code) is False


class TestEmails:

    def test_normalize_email(self):
        assert normalize_email("  Alice@Example.COM ") == "alice@example.com"

    @pytest.mark.parametrize("email", ["a@b.co", "first.last@company.com"])
    def test_valid_emails(self, email):
        assert is_valid_email(email)

    @pytest.mark.parametrize("email", ["", "plain", "a@b", "a b@c.com", "@c.com"])
    def test_invalid_emails(self, email):
        assert not is_valid_email(email)
