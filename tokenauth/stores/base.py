"""Base token store interface."""

from __future__ import annotations

import abc
from typing import Optional

from ..config import StoreConfigLike
from ..errors import InvalidRecordError
from ..janitor import Janitor
from ..models import Audience, Token


class TokenStore(metaclass=abc.ABCMeta):
    """Abstract persistence backend for audiences and tokens.

    Every operation is atomic with respect to the backend. Lookups report a
    missing record as ``None`` rather than raising.
    """

    _janitor: Optional[Janitor] = None

    @abc.abstractmethod
    async def open(self, config: StoreConfigLike) -> None:
        """Open the backend described by ``config``.

        Re-opening the same target is a no-op; opening a different target
        closes the previous one first.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Stop the attached janitor and release the backend."""
        await self.stop_janitor()
        await self._close()

    @abc.abstractmethod
    async def _close(self) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def save_audience(self, audience: Optional[Audience]) -> None:
        """Save ``audience``, replacing any audience with the same id.

        Replacing an audience deletes every token issued against it.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_audience(self, audience_id: str) -> None:
        """Delete an audience and all of its tokens; missing ids are ignored."""
        raise NotImplementedError

    @abc.abstractmethod
    async def get_audience(self, audience_id: str) -> Optional[Audience]:
        """Return the audience or ``None``."""
        raise NotImplementedError

    @abc.abstractmethod
    async def save_token(self, token: Optional[Token]) -> None:
        """Persist ``token`` and index it by audience or single id."""
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_token(self, value: str) -> None:
        """Delete a token; raises if it does not exist."""
        raise NotImplementedError

    @abc.abstractmethod
    async def get_token(self, value: str) -> Optional[Token]:
        """Return the token or ``None``. Expired tokens are still returned."""
        raise NotImplementedError

    @abc.abstractmethod
    async def list_tokens(self, audience_id: str) -> list[Token]:
        """Return the tokens indexed under ``audience_id``."""
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_expired(self) -> int:
        """Delete every expired token and return how many were removed."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Janitor lifecycle
    def start_janitor(self, interval: float) -> Janitor:
        """Attach and start a janitor sweeping this store every ``interval`` s."""
        if self._janitor is not None and self._janitor.running:
            raise RuntimeError("janitor already running for this store")
        self._janitor = Janitor(self, interval)
        self._janitor.start()
        return self._janitor

    async def stop_janitor(self) -> None:
        if self._janitor is None:
            return
        janitor, self._janitor = self._janitor, None
        await janitor.stop()

    @property
    def janitor(self) -> Optional[Janitor]:
        return self._janitor


def validate_token_record(token: Optional[Token]) -> Token:
    """Reject tokens that may never be stored."""
    if token is None or not token.value:
        raise InvalidRecordError("token value is empty")
    if not token.client_id and not token.single_id:
        raise InvalidRecordError("token needs a client id or a single id")
    if token.client_id and token.single_id:
        raise InvalidRecordError("token cannot have both a client id and a single id")
    if token.expired():
        raise InvalidRecordError("token is expired, not saving it")
    return token
