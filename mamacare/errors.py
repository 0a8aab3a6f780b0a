"""Error taxonomy shared by the storage, auth, migration and session layers."""
from __future__ import annotations

from enum import Enum
from typing import Optional


class AuthErrorCode(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    USER_NOT_FOUND = "user_not_found"
    EMAIL_ALREADY_IN_USE = "email_already_in_use"
    WEAK_PASSWORD = "weak_password"
    NETWORK_ERROR = "network_error"
    NOT_AUTHENTICATED = "not_authenticated"
    UNKNOWN = "unknown"


AUTH_ERROR_MESSAGES = {
    AuthErrorCode.INVALID_CREDENTIALS: "Invalid email or password. Please try again.",
    AuthErrorCode.USER_NOT_FOUND: "No account found with this email.",
    AuthErrorCode.EMAIL_ALREADY_IN_USE: "An account with this email already exists.",
    AuthErrorCode.WEAK_PASSWORD: "Password must be at least 6 characters.",
    AuthErrorCode.NETWORK_ERROR: "Please check your internet connection.",
    AuthErrorCode.NOT_AUTHENTICATED: "You need to sign in first.",
}


class AuthError(Exception):
    """Identity provider failure, mapped onto a closed set of codes."""

    def __init__(self, code: AuthErrorCode, detail: Optional[str] = None) -> None:
        self.code = code
        self.detail = detail
        super().__init__(self.message)

    @property
    def message(self) -> str:
        if self.code == AuthErrorCode.UNKNOWN:
            return self.detail or "Something went wrong. Please try again."
        return AUTH_ERROR_MESSAGES[self.code]

    @classmethod
    def unknown(cls, detail: str) -> "AuthError":
        return cls(AuthErrorCode.UNKNOWN, detail)


class StorageErrorKind(str, Enum):
    NETWORK = "network"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    LOCAL = "local"


class StorageError(Exception):
    def __init__(self, kind: StorageErrorKind, detail: str) -> None:
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind.value}: {detail}")


class DecryptionError(Exception):
    """Raised by a cipher when the payload was tampered with or the key is wrong."""


class MigrationError(Exception):
    """Legacy data could not be imported; the legacy blob is left in place."""


class ValidationError(Exception):
    """Malformed onboarding input. ``step`` names the form section that failed."""

    def __init__(self, step: str, detail: str) -> None:
        self.step = step
        self.detail = detail
        super().__init__(f"{step}: {detail}")
