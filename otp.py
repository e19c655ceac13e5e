import secrets

import pyotp


class OTPService:
    @staticmethod
    def generate_code(digits: int = 6) -> str:
        """Numeric one-time code mailed with the confirmation link."""
        return pyotp.HOTP(pyotp.random_base32(), digits=digits).at(0)

    @staticmethod
    def generate_token(length_bytes: int = 32) -> str:
        """Generates cryptographically secure URL-safe token"""
        return secrets.token_urlsafe(length_bytes)
