"""
Configuration Module for the Blog Platform Backend

This module manages all security configuration parameters.
CRITICAL: Load all secrets from environment variables in production.

One config object is built at process start (see get_config) and handed to
the services that need it. Nothing reads configuration from a global.
"""

import base64
import binascii
import os
from datetime import timedelta

from dotenv import load_dotenv

from exceptions import ConfigError

load_dotenv()


class SecurityConfig:
    """
    Central configuration class for authentication and session management.
    All security-critical parameters are defined here with secure defaults.
    """

    ENV = os.getenv('ENV', 'production')

    # ==================== TOKEN SECRETS ====================

    # CRITICAL: Load from environment variables - NEVER hardcode in production
    ACCESS_TOKEN_SECRET = os.getenv('ACCESS_TOKEN_SECRET')
    REFRESH_TOKEN_SECRET = os.getenv('REFRESH_TOKEN_SECRET')
    JWT_ALGORITHM = 'HS256'

    # Access token lifetime - short-lived
    ACCESS_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv('ACCESS_TOKEN_EXPIRY', '3600')))

    # Refresh token lifetime - longer but revocable (single slot per user)
    REFRESH_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv('REFRESH_TOKEN_EXPIRY', '604800')))

    # Issue a new refresh token on every refresh
    REFRESH_TOKEN_ROTATE = os.getenv('REFRESH_TOKEN_ROTATE', 'false').lower() == 'true'

    # AES-256-GCM key for refresh tokens at rest (urlsafe base64, 32 bytes)
    DATA_ENCRYPTION_KEY = os.getenv('DATA_ENCRYPTION_KEY')

    # ==================== PASSWORD HASHING ====================

    # Argon2id parameters - memory-hard KDF resistant to GPU attacks
    ARGON2_TIME_COST = 3
    ARGON2_MEMORY_COST = 65536  # 64 MB
    ARGON2_PARALLELISM = 4
    ARGON2_HASH_LENGTH = 32
    ARGON2_SALT_LENGTH = 16

    # ==================== INPUT POLICY ====================

    NAME_MIN_LENGTH = 2
    NAME_MAX_LENGTH = 72
    USERNAME_MIN_LENGTH = 3
    USERNAME_MAX_LENGTH = 30
    PASSWORD_MIN_LENGTH = 8
    PASSWORD_MAX_LENGTH = 64
    COMMENT_MAX_LENGTH = 500
    GUESTBOOK_MESSAGE_MAX_LENGTH = 500

    # ==================== ACCOUNT VERIFICATION ====================

    VERIFICATION_TOKEN_BYTES = 32
    VERIFICATION_CODE_DIGITS = 6

    # Password reset link lifetime
    PASSWORD_RESET_TOKEN_BYTES = 32
    PASSWORD_RESET_WINDOW = timedelta(minutes=15)

    # ==================== COOKIE SECURITY ====================

    ACCESS_TOKEN_COOKIE = 'accessToken'
    REFRESH_TOKEN_COOKIE = 'refreshToken'
    COOKIE_SECURE = True  # HTTPS only - disabled for local dev
    COOKIE_HTTPONLY = True
    COOKIE_SAMESITE = 'Strict'
    COOKIE_DOMAIN = os.getenv('DOMAIN') or None
    COOKIE_PATH = '/api/v1'

    # ==================== SERVER ====================

    SERVER_URL = os.getenv('SERVER_URL', 'http://localhost:3000')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # ==================== DATABASE SETTINGS ====================

    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///blog_auth.db')

    # ==================== EMAIL SETTINGS ====================

    SMTP_HOST = os.getenv('SMTP_HOST', 'localhost')
    SMTP_PORT = int(os.getenv('SMTP_PORT', '587'))
    SMTP_USERNAME = os.getenv('SMTP_USERNAME', '')
    SMTP_PASSWORD = os.getenv('SMTP_PASSWORD', '')
    SMTP_USE_TLS = True
    SMTP_TIMEOUT = 10
    EMAIL_FROM = os.getenv('EMAIL_FROM', 'noreply@blog.local')

    def __init__(self, **overrides):
        for key, value in overrides.items():
            if not hasattr(self, key):
                raise ConfigError(f"Unknown configuration key: {key}")
            setattr(self, key, value)

    @property
    def is_development(self) -> bool:
        return self.ENV == 'development'

    def cookie_options(self) -> dict:
        """Keyword arguments shared by every auth cookie (Flask set_cookie)."""
        return {
            'path': self.COOKIE_PATH,
            'domain': self.COOKIE_DOMAIN,
            'secure': self.COOKIE_SECURE and not self.is_development,
            'httponly': self.COOKIE_HTTPONLY,
            'samesite': self.COOKIE_SAMESITE,
        }

    def validate(self):
        """Fail fast on missing or unsafe secrets."""
        if not self.ACCESS_TOKEN_SECRET or not self.REFRESH_TOKEN_SECRET:
            raise ConfigError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must be set")
        if self.ACCESS_TOKEN_SECRET == self.REFRESH_TOKEN_SECRET:
            raise ConfigError("Access and refresh token secrets must differ")
        if not self.DATA_ENCRYPTION_KEY:
            raise ConfigError("DATA_ENCRYPTION_KEY must be set")
        try:
            key = base64.urlsafe_b64decode(self.DATA_ENCRYPTION_KEY)
        except (binascii.Error, ValueError) as e:
            raise ConfigError(f"Invalid DATA_ENCRYPTION_KEY: {e}")
        if len(key) != 32:
            raise ConfigError("DATA_ENCRYPTION_KEY must decode to 32 bytes (AES-256)")


class DevelopmentConfig(SecurityConfig):
    """Development configuration - less strict for testing"""
    ENV = 'development'
    COOKIE_SECURE = False  # Allow HTTP in development
    LOG_LEVEL = 'DEBUG'


class ProductionConfig(SecurityConfig):
    """Production configuration - maximum security"""
    ENV = 'production'
    COOKIE_SECURE = True
    ACCESS_TOKEN_EXPIRES = timedelta(
        seconds=int(os.getenv('ACCESS_TOKEN_EXPIRY', '900'))
    )


class TestingConfig(SecurityConfig):
    """Cheap hashing parameters and an in-memory database"""
    ENV = 'testing'
    DATABASE_URL = 'sqlite://'
    ARGON2_TIME_COST = 1
    ARGON2_MEMORY_COST = 1024
    ARGON2_PARALLELISM = 1


def get_config(env: str = None) -> SecurityConfig:
    """
    Returns appropriate configuration based on environment.
    Default to production for safety.
    """
    env = env or os.getenv('ENV', 'production')
    if env == 'development':
        return DevelopmentConfig()
    if env == 'testing':
        return TestingConfig()
    return ProductionConfig()
