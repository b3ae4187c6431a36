"""Audience and token records."""

from __future__ import annotations

import time

from pydantic import BaseModel, ConfigDict, Field


def _now() -> int:
    return int(time.time())


class Audience(BaseModel):
    """A client principal that tokens are issued against.

    ``token_period`` is the lifetime, in seconds, given to new tokens. Zero
    means tokens issued for this audience never expire.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(default="", alias="Name")
    id: str = Field(default="", alias="ID")
    secret: str = Field(default="", alias="Secret")
    token_period: int = Field(default=0, alias="TokenPeriod", ge=0)

    def to_json_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode()

    @classmethod
    def from_json_bytes(cls, data: bytes) -> "Audience":
        return cls.model_validate_json(data)


class Token(BaseModel):
    """An issued bearer token.

    Exactly one of ``client_id`` (audience token) and ``single_id``
    (single-slot token) is set on a valid token. ``deadline`` is a unix
    timestamp; zero means the token never expires.
    """

    model_config = ConfigDict(populate_by_name=True)

    client_id: str = Field(default="", alias="ClientID")
    single_id: str = Field(default="", alias="SingleID")
    value: str = Field(default="", alias="Value")
    deadline: int = Field(default=0, alias="DeadLine")

    def expired(self) -> bool:
        if self.deadline == 0:
            return False
        return _now() >= self.deadline

    def is_single(self) -> bool:
        return not self.client_id and bool(self.single_id)

    def to_json_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode()

    @classmethod
    def from_json_bytes(cls, data: bytes) -> "Token":
        return cls.model_validate_json(data)
