"""
JWT Token Management for cookie-based sessions

Access and refresh tokens are both signed JWTs. They are signed with two
independent secrets, so a token presented to the wrong verifier fails its
signature check instead of being accepted.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from exceptions import TokenExpired, TokenInvalid, TokenMalformed

ACCESS = 'access'
REFRESH = 'refresh'


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    email: str
    username: str
    issued_at: datetime
    expires_at: datetime
    token_type: str


class TokenCodec:
    """Signs and verifies expiring, tamper-evident session tokens"""

    def __init__(self, algorithm: str = 'HS256'):
        self.algorithm = algorithm

    def issue(self, claims: dict, secret: str, ttl: timedelta, token_type: str = ACCESS) -> str:
        """
        Create a signed token carrying userId, email and username.
        A random jti keeps two tokens issued in the same second distinct.

        `exp` is iat + ttl; a non-positive ttl yields an already-expired token.
        """
        now = datetime.now(timezone.utc)
        payload = {
            'userId': claims['userId'],
            'email': claims['email'],
            'username': claims['username'],
            'type': token_type,
            'jti': uuid.uuid4().hex,
            'iat': now,
            'exp': now + ttl
        }
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def verify(self, token: str, secret: str, token_type: str = ACCESS) -> TokenClaims:
        if not token or not isinstance(token, str):
            raise TokenMalformed()
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={'require': ['exp', 'iat']}
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpired()
        except jwt.InvalidSignatureError:
            raise TokenInvalid()
        except jwt.DecodeError:
            # DecodeError covers segments that are not valid base64/JSON
            raise TokenMalformed()
        except jwt.InvalidTokenError:
            raise TokenInvalid()

        if payload.get('type') != token_type:
            raise TokenInvalid()
        try:
            return TokenClaims(
                user_id=payload['userId'],
                email=payload['email'],
                username=payload['username'],
                issued_at=datetime.fromtimestamp(payload['iat'], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload['exp'], tz=timezone.utc),
                token_type=payload['type']
            )
        except KeyError:
            raise TokenMalformed()
