"""
Account Store

Durable user, account-confirmation, refresh-token and password-recovery
records. Every method is one independent round-trip that commits on its own;
upserts are keyed on user id, so the last writer wins.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DBSession

from crypto import TokenCipher
from exceptions import EntityExists, UsernameTaken
from models import AccountConfirmation, PasswordRecovery, RefreshToken, User

logger = logging.getLogger(__name__)


class AccountStore:
    def __init__(self, db: DBSession, cipher: TokenCipher):
        self.db = db
        self.cipher = cipher

    # ==================== LOOKUPS ====================

    def find_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def find_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User).filter(User.username == username).first()

    def find_by_id(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def find_verified_by_email_or_username(self, key: str) -> Optional[User]:
        """Unverified accounts are invisible to this lookup."""
        return (
            self.db.query(User)
            .join(AccountConfirmation)
            .filter(
                or_(User.email == key.lower(), User.username == key),
                AccountConfirmation.is_verified.is_(True)
            )
            .first()
        )

    def find_by_confirmation(self, token: str, code: str) -> Optional[User]:
        return (
            self.db.query(User)
            .join(AccountConfirmation)
            .filter(AccountConfirmation.token == token, AccountConfirmation.code == code)
            .first()
        )

    def find_recovery_by_token(self, token: str) -> Optional[PasswordRecovery]:
        if not token:
            return None
        return self.db.query(PasswordRecovery).filter(PasswordRecovery.token == token).first()

    # ==================== REGISTRATION / CONFIRMATION ====================

    def create_user_with_confirmation(
        self,
        name: str,
        email: str,
        username: str,
        password_hash: str,
        token: str,
        code: str
    ) -> User:
        """User and AccountConfirmation are committed together or not at all."""
        user = User(
            name=name,
            email=email,
            username=username,
            password_hash=password_hash,
            account_confirmation=AccountConfirmation(
                token=token,
                code=code,
                is_verified=False,
                verified_at=None
            )
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email/username
            self.db.rollback()
            if self.find_by_email(email):
                raise EntityExists("User")
            raise UsernameTaken()
        return user

    def confirm_account(self, user_id: str, at: datetime) -> User:
        confirmation = self.db.query(AccountConfirmation).filter(
            AccountConfirmation.user_id == user_id
        ).one()
        confirmation.is_verified = True
        confirmation.verified_at = at
        self.db.commit()
        return confirmation.user

    def update_last_login(self, user_id: str, at: datetime):
        self.db.query(User).filter(User.id == user_id).update({User.last_login_at: at})
        self.db.commit()

    # ==================== REFRESH TOKENS ====================

    def upsert_refresh_token(self, user_id: str, token: str, at: datetime):
        self._upsert(RefreshToken, user_id, token_encrypted=self.cipher.encrypt(token), updated_at=at)

    def get_refresh_token(self, user_id: str) -> Optional[str]:
        record = self.db.query(RefreshToken).filter(RefreshToken.user_id == user_id).first()
        if not record:
            return None
        try:
            return self.cipher.decrypt(record.token_encrypted)
        except ValueError:
            logger.warning("Stored refresh token for user %s failed decryption", user_id)
            return None

    def delete_refresh_token(self, user_id: str) -> bool:
        deleted = self.db.query(RefreshToken).filter(RefreshToken.user_id == user_id).delete()
        self.db.commit()
        return bool(deleted)

    # ==================== PASSWORD RECOVERY ====================

    def save_reset_code(self, user_id: str, token: str, expires_at: datetime):
        self._upsert(PasswordRecovery, user_id, token=token, expires_at=expires_at)

    def get_expiry(self, user_id: str) -> Optional[datetime]:
        record = self.db.query(PasswordRecovery).filter(
            PasswordRecovery.user_id == user_id
        ).first()
        return record.expires_at if record else None

    def clear_reset_token(self, user_id: str, at: datetime):
        """Token and expiry are cleared; the record and its last-reset stamp persist."""
        self.db.query(PasswordRecovery).filter(PasswordRecovery.user_id == user_id).update({
            PasswordRecovery.token: None,
            PasswordRecovery.expires_at: None,
            PasswordRecovery.last_reset_at: at
        })
        self.db.commit()

    # ==================== PASSWORDS ====================

    def get_password_hash(self, user_id: str) -> Optional[str]:
        row = self.db.query(User.password_hash).filter(User.id == user_id).first()
        return row[0] if row else None

    def update_password(self, user_id: str, password_hash: str):
        self.db.query(User).filter(User.id == user_id).update({User.password_hash: password_hash})
        self.db.commit()

    def update_last_password_change(self, user_id: str, at: datetime):
        self.db.query(User).filter(User.id == user_id).update({User.password_changed_at: at})
        self.db.commit()

    # ==================== HELPERS ====================

    def _upsert(self, model, user_id: str, **values):
        """Write the single row ``model`` keeps per user. Concurrent writers race; the last one wins."""
        record = self.db.query(model).filter(model.user_id == user_id).first()
        if record is None:
            self.db.add(model(user_id=user_id, **values))
            try:
                self.db.commit()
                return
            except IntegrityError:
                # Another writer inserted the row after our lookup
                self.db.rollback()
                record = self.db.query(model).filter(model.user_id == user_id).one()
        for key, value in values.items():
            setattr(record, key, value)
        self.db.commit()
