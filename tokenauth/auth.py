"""Audience and token issuing on top of a token store."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Optional

from .config import DEFAULT_TOKEN_PERIOD, TokenAuthConfig, load_config
from .errors import (
    InvalidTokenError,
    TokenEmptyError,
    TokenExpiredError,
    TokenNotFoundError,
)
from .models import Audience, Token
from .providers import SecretFunc, TokenFunc
from .stores import StoreRegistry, TokenStore, get_store

logger = logging.getLogger(__name__)


class TokenAuth:
    """Issues audiences and tokens and validates presented tokens.

    The store is passed in explicitly, so several independent instances can
    live in one process.
    """

    def __init__(
        self, store: TokenStore, token_period: int = DEFAULT_TOKEN_PERIOD
    ) -> None:
        if store is None:
            raise ValueError("tokenauth: store is None")
        self.store = store
        self.token_period = token_period

    @classmethod
    async def from_config(
        cls,
        config: Optional[TokenAuthConfig] = None,
        registry: Optional[StoreRegistry] = None,
    ) -> "TokenAuth":
        """Open the configured store and wrap it.

        With no configuration this opens the ``default`` backend at
        ``./data/tokendb.bolt``.
        """
        config = config or load_config()
        store = await get_store(config=config, registry=registry)
        return cls(store, token_period=config.token_period)

    async def change_store(self, new_store: TokenStore) -> None:
        """Close the current store and switch to ``new_store``."""
        if new_store is None:
            raise ValueError("tokenauth: new store is None")
        if new_store is self.store:
            return
        await self.store.close()
        self.store = new_store

    async def close(self) -> None:
        await self.store.close()

    # ------------------------------------------------------------------
    # Audiences
    def new_audience_not_store(self, name: str, secret_func: SecretFunc) -> Audience:
        """Build an audience with a fresh id and secret without saving it."""
        audience = Audience(
            name=name,
            id=uuid.uuid4().hex,
            token_period=self.token_period,
        )
        audience.secret = secret_func(audience.id)
        return audience

    async def new_audience(self, name: str, secret_func: SecretFunc) -> Audience:
        audience = self.new_audience_not_store(name, secret_func)
        await self.store.save_audience(audience)
        logger.info(f"Created audience {audience.id} ({name})")
        return audience

    async def rotate_secret(self, audience: Audience, secret_func: SecretFunc) -> Audience:
        """Give ``audience`` a new secret and save it.

        Saving replaces the stored audience, which also drops its tokens.
        """
        audience.secret = secret_func(audience.id)
        await self.store.save_audience(audience)
        return audience

    # ------------------------------------------------------------------
    # Tokens
    @staticmethod
    def _deadline(audience: Audience) -> int:
        if audience.token_period == 0:
            return 0
        return int(time.time()) + audience.token_period

    async def new_token(self, audience: Audience, token_func: TokenFunc) -> Token:
        """Issue and save a token bound to ``audience``."""
        token = Token(
            client_id=audience.id,
            value=token_func(audience),
            deadline=self._deadline(audience),
        )
        await self.store.save_token(token)
        return token

    async def new_single_token(
        self, single_id: str, audience: Audience, token_func: TokenFunc
    ) -> Token:
        """Issue and save the only live token for ``single_id``.

        Any token previously issued for ``single_id`` is deleted.
        """
        token = Token(
            single_id=single_id,
            value=token_func(audience),
            deadline=self._deadline(audience),
        )
        await self.store.save_token(token)
        return token

    async def validate_token(self, value: str) -> Token:
        """Return the stored token for ``value``.

        Raises:
            TokenEmptyError: ``value`` is empty.
            InvalidTokenError: no such token.
            TokenExpiredError: the token had expired; it has been deleted and
                is available as ``exc.token``.
        """
        if not value:
            raise TokenEmptyError()

        token = await self.store.get_token(value)
        if token is None or not token.value:
            raise InvalidTokenError()

        if token.expired():
            try:
                await self.store.delete_token(token.value)
            except TokenNotFoundError:
                # already swept
                pass
            logger.debug(f"Deleted expired token (deadline={token.deadline})")
            raise TokenExpiredError(token)

        return token
