"""
Dashgate - Crypto Primitives

OTP generation, salted OTP hashing, constant-time comparison and random
tokens. Leaf module; everything security-sensitive funnels through here.

Security:
- All randomness comes from the `secrets` CSPRNG
- OTPs are hashed with bcrypt (salted, tunable work factor)
- Hash comparison uses hmac.compare_digest to avoid timing side-channels
"""

import hmac
import re
import secrets
from typing import Tuple

import bcrypt


# Work factor for OTP hashes. Codes live for minutes, so this is lower
# than a password work factor; decrease further for faster tests.
OTP_HASH_ROUNDS = 10

OTP_DIGITS = 6

INVITE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_CODE_PATTERN = re.compile(r"^INV-[A-HJ-NP-Z2-9]{4}-[A-HJ-NP-Z2-9]{4}$")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def generate_otp() -> str:
    """
    Generate a 6-digit numeric one-time password.

    Leading zeros are preserved ("004217" is a valid code).

    Example:
        >>> otp = generate_otp()
        >>> len(otp) == 6 and otp.isdigit()
        True
    """
    return str(secrets.randbelow(10 ** OTP_DIGITS)).zfill(OTP_DIGITS)


def hash_otp(otp: str, rounds: int = OTP_HASH_ROUNDS) -> Tuple[str, str]:
    """
    Hash an OTP with a fresh bcrypt salt.

    Args:
        otp: Plaintext code
        rounds: bcrypt work factor

    Returns:
        Tuple of (hash, salt), both as strings for storage
    """
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(otp.encode("utf-8"), salt)
    return hashed.decode("utf-8"), salt.decode("utf-8")


def verify_otp_hash(candidate: str, otp_hash: str, salt: str) -> bool:
    """
    Check a candidate code against a stored hash.

    The candidate is re-hashed with the stored salt and the two digests are
    compared in constant time.

    Returns:
        True if the candidate matches, False otherwise (including malformed
        stored values)
    """
    try:
        candidate_hash = bcrypt.hashpw(candidate.encode("utf-8"), salt.encode("utf-8"))
    except (ValueError, TypeError):
        # Invalid salt format
        return False
    return constant_time_equals(candidate_hash.decode("utf-8"), otp_hash)


def constant_time_equals(a: str, b: str) -> bool:
    """Compare two strings without leaking the position of the first mismatch."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def generate_token(num_bytes: int = 32) -> str:
    """Random hex token (64 chars for the default 256 bits)."""
    return secrets.token_hex(num_bytes)


def generate_invite_code() -> str:
    """
    Generate an invitation code in the INV-XXXX-XXXX format.

    The alphabet omits I, O, 0 and 1 so codes survive being read aloud.
    """
    groups = [
        "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(4))
        for _ in range(2)
    ]
    return "INV-" + "-".join(groups)


def is_valid_invite_code_format(code: str) -> bool:
    return bool(INVITE_CODE_PATTERN.match(code))


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(email) and bool(EMAIL_PATTERN.match(email))
