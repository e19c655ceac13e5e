"""
Request identity

The HTTP boundary verifies the access token once per request and hands the
resulting AuthenticatedUser to the service explicitly. Services never look
the caller up from a global or a request object.
"""

from dataclasses import dataclass
from typing import Optional

from config import SecurityConfig
from exceptions import Unauthorized, UserNotFound
from store import AccountStore
from tokens import ACCESS, TokenCodec


@dataclass(frozen=True)
class AuthenticatedUser:
    user_id: str
    name: str
    email: str
    username: str


class Authenticator:
    def __init__(self, store: AccountStore, codec: TokenCodec, config: SecurityConfig):
        self.store = store
        self.codec = codec
        self.config = config

    def authenticate(self, access_token: Optional[str]) -> AuthenticatedUser:
        """
        Raises Unauthorized when no token is supplied, a TokenError subclass
        when verification fails, and UserNotFound when the subject is gone.
        """
        if not access_token:
            raise Unauthorized()
        claims = self.codec.verify(access_token, self.config.ACCESS_TOKEN_SECRET, ACCESS)
        user = self.store.find_by_id(claims.user_id)
        if not user:
            raise UserNotFound()
        return AuthenticatedUser(
            user_id=user.id,
            name=user.name,
            email=user.email,
            username=user.username
        )
