"""Error taxonomy for the authentication and session subsystem.

Every domain failure is an AuthError carrying the HTTP status it maps to.
Anything else reaching the HTTP boundary is rendered as a generic 500.
"""


class AuthError(Exception):
    """Base class for failures surfaced to the caller"""
    status_code = 500
    message = "Something went wrong"

    def __init__(self, message: str = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


# ==================== 400 ====================

class ValidationError(AuthError):
    status_code = 400
    message = "Invalid inputs"


class AlreadyVerified(AuthError):
    status_code = 400
    message = "Account already verified"


# ==================== 401 ====================

class InvalidCredentials(AuthError):
    """Shared by every login failure branch so callers cannot tell them apart"""
    status_code = 401
    message = "Invalid credentials"


class InvalidTokenOrCode(AuthError):
    status_code = 401
    message = "Invalid account confirmation token or code"


class NoTokenFound(AuthError):
    status_code = 401
    message = "No token found"


class ReplayDetected(AuthError):
    status_code = 401
    message = "Refresh token no longer valid for this session"


class Unauthorized(AuthError):
    status_code = 401
    message = "Authentication required"


class TokenError(AuthError):
    """Raised by the token codec"""
    status_code = 401
    message = "Invalid token"


class TokenInvalid(TokenError):
    message = "Invalid token"


class TokenExpired(TokenError):
    message = "Token expired"


class TokenMalformed(TokenError):
    message = "Malformed token"


# ==================== 403 ====================

class AccountNotVerified(AuthError):
    status_code = 403
    message = "Account not verified"


class AccessDenied(AuthError):
    status_code = 403
    message = "Access denied"


class Forbidden(AuthError):
    status_code = 403
    message = "Forbidden"


class Timeout(AuthError):
    status_code = 403
    message = "Password reset link has expired"


# ==================== 404 ====================

class UserNotFound(AuthError):
    status_code = 404
    message = "User not found"


class NotFound(AuthError):
    status_code = 404
    message = "Not found"

    def __init__(self, entity: str = None):
        super().__init__(f"{entity} not found" if entity else None)


# ==================== 409 ====================

class EntityExists(AuthError):
    status_code = 409
    message = "Entity already exists"

    def __init__(self, entity: str = None):
        super().__init__(f"{entity} already exists" if entity else None)


class UsernameTaken(AuthError):
    status_code = 409
    message = "Username already taken"


class PasswordSame(AuthError):
    status_code = 409
    message = "New password must differ from the current one"


# ==================== NON-DOMAIN ====================

class ConfigError(Exception):
    """Invalid or missing configuration"""


class EmailDeliveryError(Exception):
    """Outbound email could not be sent; aborts the calling flow"""
