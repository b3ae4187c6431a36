"""Exception hierarchy for tokenauth."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .models import Token


class TokenAuthError(Exception):
    """Base class for all tokenauth errors."""


class ConfigurationError(TokenAuthError, ValueError):
    """Backend or application configuration is missing or malformed."""


class RegistryError(TokenAuthError):
    """Store registration or lookup failed."""


class StoreError(TokenAuthError):
    """Base class for failures raised by a token store."""


class StoreClosedError(StoreError):
    """The store has not been opened, or has been closed."""


class InvalidRecordError(StoreError, ValueError):
    """An audience or token was rejected before reaching storage."""


class AudienceNotFoundError(StoreError):
    """A token references an audience that has not been saved."""


class TokenNotFoundError(StoreError):
    """The token value is not present in the store."""


class BucketError(StoreError):
    """Misuse of the bucket layer."""


class BucketExistsError(BucketError):
    pass


class BucketNotFoundError(BucketError):
    pass


class TxNotWritableError(BucketError):
    pass


class ValidationError(TokenAuthError):
    """Token validation failure carrying a stable code and message."""

    code: str = ""
    msg: str = ""

    def __init__(self, code: Optional[str] = None, msg: Optional[str] = None) -> None:
        if code is not None:
            self.code = code
        if msg is not None:
            self.msg = msg
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"{self.code}:{self.msg}"

    def to_dict(self) -> dict[str, str]:
        return {"errcode": self.code, "errmsg": self.msg}


class InvalidTokenError(ValidationError):
    code = "40001"
    msg = "Invalid token"


class TokenEmptyError(ValidationError):
    code = "41001"
    msg = "Token is empty"


class TokenExpiredError(ValidationError):
    """Raised after an expired token has been removed from the store.

    The stale record is kept on ``token`` so callers can report its deadline.
    """

    code = "42001"
    msg = "Token is expired"

    def __init__(self, token: Optional["Token"] = None) -> None:
        self.token = token
        super().__init__()


__all__ = [
    "TokenAuthError",
    "ConfigurationError",
    "RegistryError",
    "StoreError",
    "StoreClosedError",
    "InvalidRecordError",
    "AudienceNotFoundError",
    "TokenNotFoundError",
    "BucketError",
    "BucketExistsError",
    "BucketNotFoundError",
    "TxNotWritableError",
    "ValidationError",
    "InvalidTokenError",
    "TokenEmptyError",
    "TokenExpiredError",
]
