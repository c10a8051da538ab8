"""
CSRF state generation and verification.
"""

import hmac

from authlib.common.security import generate_token


# 43 characters from a 62-symbol alphabet, about 256 bits
STATE_LENGTH = 43


class StateGenerator:
    """Produces and checks opaque, single-use CSRF state values."""

    def __init__(self, length: int = STATE_LENGTH):
        # 22 alphanumeric characters is the shortest that still holds 128 bits
        if length < 22:
            raise ValueError("state length must be at least 22 characters")
        self.length = length

    def generate(self) -> str:
        """Return a new URL-safe state drawn from the system CSPRNG."""
        return generate_token(self.length)

    @staticmethod
    def verify(expected: str | None, received: str | None) -> bool:
        """Exact, constant-time comparison. Absent values never match."""
        if not expected or not received:
            return False
        return hmac.compare_digest(expected.encode(), received.encode())
