"""In-memory implementation of the token store."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Set

from ..config import StoreConfigLike
from ..errors import (
    AudienceNotFoundError,
    InvalidRecordError,
    StoreClosedError,
    TokenNotFoundError,
)
from ..models import Audience, Token
from .base import TokenStore, validate_token_record

logger = logging.getLogger(__name__)


class InMemoryTokenStore(TokenStore):
    """Store audiences and tokens in local memory.

    Useful for tests or short-lived processes. Data is not persisted across
    process restarts and ``open`` ignores its config.
    """

    def __init__(self) -> None:
        self._audiences: Dict[str, Audience] = {}
        self._audience_tokens: Dict[str, Set[str]] = {}
        self._tokens: Dict[str, Token] = {}
        self._single_ids: Dict[str, str] = {}
        self._lock = asyncio.Lock()
        self._opened = False

    # ------------------------------------------------------------------
    async def open(self, config: StoreConfigLike = None) -> None:
        self._opened = True

    async def _close(self) -> None:
        self._opened = False

    def _check_open(self) -> None:
        if not self._opened:
            raise StoreClosedError("token store is not open")

    def _delete_audience(self, audience_id: str) -> None:
        if self._audiences.pop(audience_id, None) is None:
            return
        for value in self._audience_tokens.pop(audience_id, set()):
            self._tokens.pop(value, None)

    def _delete_token(self, value: str) -> Token:
        token = self._tokens.pop(value, None)
        if token is None:
            raise TokenNotFoundError("token not found")
        if token.is_single():
            if self._single_ids.get(token.single_id) == value:
                del self._single_ids[token.single_id]
        else:
            self._audience_tokens.get(token.client_id, set()).discard(value)
        return token

    # ------------------------------------------------------------------
    async def save_audience(self, audience: Optional[Audience]) -> None:
        if audience is None or not audience.id:
            raise InvalidRecordError("audience id is empty")
        async with self._lock:
            self._check_open()
            self._delete_audience(audience.id)
            self._audiences[audience.id] = audience.model_copy(deep=True)
            self._audience_tokens[audience.id] = set()

    async def delete_audience(self, audience_id: str) -> None:
        if not audience_id:
            raise InvalidRecordError("audience id is empty")
        async with self._lock:
            self._check_open()
            self._delete_audience(audience_id)

    async def get_audience(self, audience_id: str) -> Optional[Audience]:
        if not audience_id:
            raise InvalidRecordError("audience id is empty")
        self._check_open()
        audience = self._audiences.get(audience_id)
        return audience.model_copy(deep=True) if audience else None

    async def save_token(self, token: Optional[Token]) -> None:
        token = validate_token_record(token)
        async with self._lock:
            self._check_open()
            if token.is_single():
                old_value = self._single_ids.get(token.single_id)
                if old_value is not None and old_value in self._tokens:
                    self._delete_token(old_value)
            elif token.client_id not in self._audiences:
                raise AudienceNotFoundError(
                    f"audience {token.client_id} not found, save the audience before its tokens"
                )

            if token.value in self._tokens:
                self._delete_token(token.value)

            if token.is_single():
                self._single_ids[token.single_id] = token.value
            else:
                self._audience_tokens[token.client_id].add(token.value)
            self._tokens[token.value] = token.model_copy(deep=True)

    async def delete_token(self, value: str) -> None:
        if not value:
            raise InvalidRecordError("token value is empty")
        async with self._lock:
            self._check_open()
            self._delete_token(value)

    async def get_token(self, value: str) -> Optional[Token]:
        if not value:
            return None
        self._check_open()
        token = self._tokens.get(value)
        return token.model_copy(deep=True) if token else None

    async def list_tokens(self, audience_id: str) -> list[Token]:
        if not audience_id:
            raise InvalidRecordError("audience id is empty")
        self._check_open()
        return [
            self._tokens[value].model_copy(deep=True)
            for value in sorted(self._audience_tokens.get(audience_id, set()))
            if value in self._tokens
        ]

    async def delete_expired(self) -> int:
        if not self._opened:
            return 0
        async with self._lock:
            expired = [t.value for t in self._tokens.values() if t.expired()]
            for value in expired:
                self._delete_token(value)
        if expired:
            logger.debug(f"Expiry sweep removed {len(expired)} tokens")
        return len(expired)
