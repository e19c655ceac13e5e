import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = 'users'

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(72), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(30), unique=True, nullable=False, index=True)

    # Argon2id PHC string; never serialized
    password_hash = Column(String(255), nullable=False)

    last_login_at = Column(DateTime, nullable=True)
    password_changed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    account_confirmation = relationship(
        "AccountConfirmation", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    refresh_token = relationship(
        "RefreshToken", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    password_recovery = relationship(
        "PasswordRecovery", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    likes = relationship("Like", back_populates="user", cascade="all, delete-orphan")
    comments = relationship("Comment", back_populates="user", cascade="all, delete-orphan")
    saved_posts = relationship("SavedPost", back_populates="user", cascade="all, delete-orphan")
    guestbook_messages = relationship(
        "GuestbookMessage", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def is_verified(self) -> bool:
        return bool(self.account_confirmation and self.account_confirmation.is_verified)

    def to_dict(self) -> dict:
        """Public view of the account. The password hash is never included."""
        confirmation = self.account_confirmation
        return {
            'userId': self.id,
            'name': self.name,
            'email': self.email,
            'username': self.username,
            'lastLoginAt': self.last_login_at.isoformat() if self.last_login_at else None,
            'accountConfirmation': {
                'isVerified': bool(confirmation and confirmation.is_verified),
                'timestamp': (confirmation.verified_at.isoformat()
                              if confirmation and confirmation.verified_at else None),
            },
        }


class AccountConfirmation(Base):
    __tablename__ = 'account_confirmations'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey('users.id'), unique=True, nullable=False)

    token = Column(String(128), nullable=False, index=True)
    code = Column(String(12), nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    verified_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="account_confirmation")


class RefreshToken(Base):
    """Single live refresh token per user; overwritten on login, removed on logout"""
    __tablename__ = 'refresh_tokens'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey('users.id'), unique=True, nullable=False)

    token_encrypted = Column(Text, nullable=False)  # AES-256-GCM
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="refresh_token")


class PasswordRecovery(Base):
    __tablename__ = 'password_recoveries'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey('users.id'), unique=True, nullable=False)

    token = Column(String(128), nullable=True, index=True)
    expires_at = Column(DateTime, nullable=True)
    last_reset_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="password_recovery")


# ==================== BLOG ENGAGEMENT ====================

class Post(Base):
    __tablename__ = 'posts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    headline = Column(String(255), nullable=True)
    content = Column(Text, nullable=False)
    author_name = Column(String(72), nullable=True)
    created_at = Column(DateTime, default=func.now())


class Like(Base):
    __tablename__ = 'likes'
    __table_args__ = (UniqueConstraint('user_id', 'post_id'),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey('users.id'), nullable=False)
    post_id = Column(Integer, ForeignKey('posts.id'), nullable=False, index=True)
    created_at = Column(DateTime, default=func.now())

    user = relationship("User", back_populates="likes")


class Comment(Base):
    __tablename__ = 'comments'
    __table_args__ = (UniqueConstraint('user_id', 'post_id'),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey('users.id'), nullable=False)
    post_id = Column(Integer, ForeignKey('posts.id'), nullable=False, index=True)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    user = relationship("User", back_populates="comments")

    def to_dict(self) -> dict:
        return {
            'commentId': self.id,
            'blogId': self.post_id,
            'userId': self.user_id,
            'username': self.user.username if self.user else None,
            'text': self.text,
        }


class SavedPost(Base):
    __tablename__ = 'saved_posts'
    __table_args__ = (UniqueConstraint('user_id', 'post_id'),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey('users.id'), nullable=False)
    post_id = Column(Integer, ForeignKey('posts.id'), nullable=False, index=True)
    created_at = Column(DateTime, default=func.now())

    user = relationship("User", back_populates="saved_posts")


class GuestbookMessage(Base):
    __tablename__ = 'guestbook_messages'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey('users.id'), nullable=False, index=True)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime, default=func.now())

    user = relationship("User", back_populates="guestbook_messages")

    def to_dict(self) -> dict:
        return {
            'messageId': self.id,
            'userId': self.user_id,
            'username': self.user.username if self.user else None,
            'message': self.message,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }
