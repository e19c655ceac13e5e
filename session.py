"""
Session Management Module

Owns every account and session flow: registration, confirmation, login,
logout, access-token refresh, and password reset/change.

Security invariants:
- One live refresh token per user. Login overwrites it, logout deletes it,
  and refresh only succeeds for the exact token currently stored.
- Unknown, unverified and wrong-password logins share one error.
- The verification mail is sent before the account is persisted.
- The Session Manager holds no state between calls; the store is the record.
"""

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from auth import AuthenticatedUser
from config import SecurityConfig
from crypto import PasswordHasher
from email_service import EmailNotifier
from exceptions import (
    AccessDenied,
    AccountNotVerified,
    AlreadyVerified,
    EntityExists,
    Forbidden,
    InvalidCredentials,
    InvalidTokenOrCode,
    NoTokenFound,
    NotFound,
    PasswordSame,
    ReplayDetected,
    Timeout,
    TokenExpired,
    UsernameTaken,
    UserNotFound,
)
from models import User
from otp import OTPService
from store import AccountStore
from tokens import ACCESS, REFRESH, TokenCodec
from utils import Validator, utcnow

logger = logging.getLogger(__name__)

RESET_LINK_INVALID = "Password reset link is invalid or has expired"


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    refresh_token: str
    user: dict


@dataclass(frozen=True)
class RefreshResult:
    access_token: str
    # Set only when refresh-token rotation is enabled
    refresh_token: Optional[str] = None


class SessionManager:
    """
    Orchestrates the account lifecycle over an AccountStore and an EmailNotifier.

    Args:
        store: Account Store for the current request
        notifier: outbound email collaborator
        codec: signs and verifies access/refresh tokens
        hasher: Argon2 credential hasher
        config: process-wide configuration
        clock: returns the current naive-UTC time
    """

    def __init__(
        self,
        store: AccountStore,
        notifier: EmailNotifier,
        codec: TokenCodec,
        hasher: PasswordHasher,
        config: SecurityConfig,
        clock: Callable[[], datetime] = utcnow
    ):
        self.store = store
        self.notifier = notifier
        self.codec = codec
        self.hasher = hasher
        self.config = config
        self.clock = clock
        self.validator = Validator(config)

    # ==================== REGISTRATION ====================

    def register(self, name: str, email: str, username: str, password: str) -> dict:
        data = self.validator.validate_registration({
            'name': name, 'email': email, 'username': username, 'password': password
        })

        if self.store.find_by_email(data['email']):
            raise EntityExists("User")
        if self.store.find_by_username(data['username']):
            raise UsernameTaken()

        password_hash = self.hasher.hash(data['password'])
        token = OTPService.generate_token(self.config.VERIFICATION_TOKEN_BYTES)
        code = OTPService.generate_code(self.config.VERIFICATION_CODE_DIGITS)

        # A failed send aborts here, before anything is written
        self.notifier.send_verification(data['email'], data['name'], token, code)

        user = self.store.create_user_with_confirmation(
            name=data['name'],
            email=data['email'],
            username=data['username'],
            password_hash=password_hash,
            token=token,
            code=code
        )
        logger.info("Registered user %s", user.id)
        return user.to_dict()

    def confirm(self, token: str, code: str) -> dict:
        user = self.store.find_by_confirmation(token, code) if token and code else None
        if not user:
            raise InvalidTokenOrCode()
        if user.is_verified:
            raise AlreadyVerified()

        updated = self.store.confirm_account(user.id, self.clock())
        self.notifier.send_confirmed(updated.email, updated.name)
        logger.info("Confirmed account for user %s", updated.id)
        return updated.to_dict()

    # ==================== SESSIONS ====================

    def login(self, email_or_username: str, password: str) -> LoginResult:
        data = self.validator.validate_login({'email': email_or_username, 'password': password})

        user = self.store.find_verified_by_email_or_username(data['email'])
        password_hash = self.store.get_password_hash(user.id) if user else None
        if not user or not self.hasher.verify(data['password'], password_hash):
            logger.info("Failed login attempt")
            raise InvalidCredentials()

        access_token, refresh_token = self._issue_pair(user)

        now = self.clock()
        self.store.update_last_login(user.id, now)
        # Overwrites any earlier session's refresh token
        self.store.upsert_refresh_token(user.id, refresh_token, now)

        logger.info("User %s logged in", user.id)
        return LoginResult(access_token=access_token, refresh_token=refresh_token, user={
            'userId': user.id,
            'name': user.name,
            'email': user.email,
            'username': user.username
        })

    def logout(self, identity: AuthenticatedUser) -> bool:
        """Returns whether a stored refresh token existed. Repeated logout is fine."""
        existed = self.store.delete_refresh_token(identity.user_id)
        logger.info("User %s logged out", identity.user_id)
        return existed

    def refresh(self, refresh_token: Optional[str], has_access_token: bool) -> RefreshResult:
        """
        Exchange a refresh token for a new access token.

        Only valid once the access token is gone. A cryptographically valid
        refresh token that is not the one currently stored for its subject has
        been superseded (second login, rotation or logout) and is rejected.
        """
        if has_access_token:
            raise AccessDenied()
        if not refresh_token:
            raise NoTokenFound()

        claims = self.codec.verify(refresh_token, self.config.REFRESH_TOKEN_SECRET, REFRESH)

        stored = self.store.get_refresh_token(claims.user_id)
        if stored is None or not hmac.compare_digest(stored, refresh_token):
            logger.warning("Refresh token replay detected for user %s", claims.user_id)
            raise ReplayDetected()

        subject = {'userId': claims.user_id, 'email': claims.email, 'username': claims.username}
        access_token = self.codec.issue(
            subject, self.config.ACCESS_TOKEN_SECRET, self.config.ACCESS_TOKEN_EXPIRES, ACCESS
        )

        new_refresh_token = None
        if self.config.REFRESH_TOKEN_ROTATE:
            new_refresh_token = self.codec.issue(
                subject, self.config.REFRESH_TOKEN_SECRET, self.config.REFRESH_TOKEN_EXPIRES, REFRESH
            )
            self.store.upsert_refresh_token(claims.user_id, new_refresh_token, self.clock())

        logger.info("Access token refreshed for user %s", claims.user_id)
        return RefreshResult(access_token=access_token, refresh_token=new_refresh_token)

    # ==================== PASSWORDS ====================

    def forgot_password(self, email: str):
        data = self.validator.validate_forgot_password({'email': email})

        user = self.store.find_verified_by_email_or_username(data['email'])
        if not user:
            raise UserNotFound()

        token = OTPService.generate_token(self.config.PASSWORD_RESET_TOKEN_BYTES)
        expires_at = self.clock() + self.config.PASSWORD_RESET_WINDOW
        self.store.save_reset_code(user.id, token, expires_at)
        self.notifier.send_reset_link(user.email, user.name, token)
        logger.info("Password reset requested for user %s", user.id)

    def reset_password(self, token: str, new_password: str, confirm_new_password: str):
        data = self.validator.validate_reset_password({
            'newPassword': new_password, 'confirmNewPassword': confirm_new_password
        })

        recovery = self.store.find_recovery_by_token(token)
        if not recovery:
            raise TokenExpired(RESET_LINK_INVALID)

        user = self.store.find_by_id(recovery.user_id)
        if not user:
            raise UserNotFound()
        if not user.is_verified:
            raise AccountNotVerified()

        expires_at = self.store.get_expiry(user.id)
        if not expires_at:
            raise Forbidden()
        now = self.clock()
        if now >= expires_at:
            raise Timeout()

        current_hash = self.store.get_password_hash(user.id)
        if self.hasher.verify(data['newPassword'], current_hash):
            raise PasswordSame()

        self.store.update_password(user.id, self.hasher.hash(data['newPassword']))
        self.store.clear_reset_token(user.id, now)
        self.store.update_last_password_change(user.id, now)
        # Sessions opened before the reset cannot be continued
        self.store.delete_refresh_token(user.id)

        self.notifier.send_password_changed(user.email, user.name)
        logger.info("Password reset completed for user %s", user.id)

    def change_password(
        self,
        identity: AuthenticatedUser,
        old_password: str,
        new_password: str,
        confirm_new_password: str
    ):
        data = self.validator.validate_change_password({
            'oldPassword': old_password,
            'newPassword': new_password,
            'confirmNewPassword': confirm_new_password
        })

        current_hash = self.store.get_password_hash(identity.user_id)
        if not current_hash:
            raise NotFound("Password")
        if not self.hasher.verify(data['oldPassword'], current_hash):
            raise InvalidCredentials()
        if self.hasher.verify(data['newPassword'], current_hash):
            raise PasswordSame()

        self.store.update_password(identity.user_id, self.hasher.hash(data['newPassword']))
        self.store.update_last_password_change(identity.user_id, self.clock())
        self.notifier.send_password_changed(identity.email, identity.name)
        logger.info("Password changed for user %s", identity.user_id)

    # ==================== HELPERS ====================

    def _issue_pair(self, user: User) -> tuple[str, str]:
        claims = {'userId': user.id, 'email': user.email, 'username': user.username}
        access_token = self.codec.issue(
            claims, self.config.ACCESS_TOKEN_SECRET, self.config.ACCESS_TOKEN_EXPIRES, ACCESS
        )
        refresh_token = self.codec.issue(
            claims, self.config.REFRESH_TOKEN_SECRET, self.config.REFRESH_TOKEN_EXPIRES, REFRESH
        )
        return access_token, refresh_token
