"""Default secret and token string providers."""

from __future__ import annotations

import base64
import hmac
import secrets
import time
from hashlib import sha256
from typing import Callable, Optional

from .models import Audience

ALPHANUM = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
SECRET_LENGTH = 32

SecretFunc = Callable[[str], str]
TokenFunc = Callable[[Audience], str]


def generate_random_string(size: int, encode_to_base32: bool = False) -> str:
    """Return ``size`` random alphanumeric characters, optionally base32 encoded."""
    value = "".join(secrets.choice(ALPHANUM) for _ in range(size))
    if encode_to_base32:
        return base64.b32encode(value.encode()).decode()
    return value


class DefaultProvider:
    """Random secrets and HMAC-SHA256 token strings."""

    def __init__(self, name: str = "default") -> None:
        self.name = name

    def generate_secret_string(self, client_id: str) -> str:
        return generate_random_string(SECRET_LENGTH)

    def generate_token_string(self, audience: Optional[Audience]) -> str:
        if audience is None:
            raise ValueError("audience is None")
        info = f"{audience.id}:{generate_random_string(6)}:{int(time.time())}"
        digest = hmac.new(audience.secret.encode(), info.encode(), sha256).digest()
        return base64.b64encode(digest).decode()
