import re
from datetime import datetime, timezone

from config import SecurityConfig
from exceptions import ValidationError

EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+\-]+@[A-Za-z0-9\-]+(\.[A-Za-z0-9\-]+)*\.[A-Za-z]{2,}$")


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the database columns store"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Validator:
    """Request body checks. Every failing rule is reported in one ValidationError."""

    def __init__(self, config: SecurityConfig):
        self.config = config

    @staticmethod
    def _require_str(data: dict, field: str, errors: list) -> str:
        value = data.get(field)
        if not isinstance(value, str):
            errors.append(f"{field} is required")
            return ''
        return value

    def _check_length(self, label: str, value: str, lo: int, hi: int, errors: list):
        if len(value) < lo:
            errors.append(f"{label} must be at least {lo} characters long")
        elif len(value) > hi:
            errors.append(f"{label} must be at most {hi} characters long")

    def _check_password(self, label: str, value: str, errors: list):
        self._check_length(label, value, self.config.PASSWORD_MIN_LENGTH,
                           self.config.PASSWORD_MAX_LENGTH, errors)

    @staticmethod
    def _raise_if(errors: list):
        if errors:
            raise ValidationError(', '.join(errors))

    @staticmethod
    def is_valid_email(email: str) -> bool:
        return bool(EMAIL_RE.match(email or ''))

    def validate_registration(self, data: dict) -> dict:
        errors = []
        name = self._require_str(data, 'name', errors).strip()
        email = self._require_str(data, 'email', errors).strip().lower()
        username = self._require_str(data, 'username', errors).strip()
        password = self._require_str(data, 'password', errors)

        if isinstance(data.get('name'), str):
            self._check_length('Name', name, self.config.NAME_MIN_LENGTH,
                               self.config.NAME_MAX_LENGTH, errors)
        if isinstance(data.get('email'), str) and not self.is_valid_email(email):
            errors.append("Invalid email address")
        if isinstance(data.get('username'), str):
            self._check_length('Username', username, self.config.USERNAME_MIN_LENGTH,
                               self.config.USERNAME_MAX_LENGTH, errors)
        if isinstance(data.get('password'), str):
            self._check_password('Password', password, errors)

        self._raise_if(errors)
        return {'name': name, 'email': email, 'username': username, 'password': password}

    def validate_login(self, data: dict) -> dict:
        errors = []
        key = self._require_str(data, 'email', errors).strip()
        password = self._require_str(data, 'password', errors)
        if isinstance(data.get('email'), str) and not key:
            errors.append("email is required")
        if isinstance(data.get('password'), str):
            self._check_password('Password', password, errors)
        self._raise_if(errors)
        return {'email': key, 'password': password}

    def validate_forgot_password(self, data: dict) -> dict:
        errors = []
        email = self._require_str(data, 'email', errors).strip().lower()
        if isinstance(data.get('email'), str) and not self.is_valid_email(email):
            errors.append("Invalid email address")
        self._raise_if(errors)
        return {'email': email}

    def _validate_new_password(self, data: dict, errors: list) -> str:
        new_password = self._require_str(data, 'newPassword', errors)
        confirm = self._require_str(data, 'confirmNewPassword', errors)
        if isinstance(data.get('newPassword'), str):
            self._check_password('New password', new_password, errors)
        if new_password != confirm:
            errors.append("Passwords do not match")
        return new_password

    def validate_reset_password(self, data: dict) -> dict:
        errors = []
        new_password = self._validate_new_password(data, errors)
        self._raise_if(errors)
        return {'newPassword': new_password}

    def validate_change_password(self, data: dict) -> dict:
        errors = []
        old_password = self._require_str(data, 'oldPassword', errors)
        new_password = self._validate_new_password(data, errors)
        self._raise_if(errors)
        return {'oldPassword': old_password, 'newPassword': new_password}

    def validate_comment(self, data: dict) -> str:
        errors = []
        text = self._require_str(data, 'text', errors).strip()
        if isinstance(data.get('text'), str):
            self._check_length('Comment', text, 1, self.config.COMMENT_MAX_LENGTH, errors)
        self._raise_if(errors)
        return text

    def validate_guestbook_message(self, data: dict) -> str:
        errors = []
        message = self._require_str(data, 'message', errors).strip()
        if isinstance(data.get('message'), str):
            self._check_length('Message', message, 1, self.config.GUESTBOOK_MESSAGE_MAX_LENGTH, errors)
        self._raise_if(errors)
        return message
