"""Name-keyed lookup of token store backends."""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from ..config import DEFAULT_JANITOR_INTERVAL, StoreConfigLike
from ..errors import ConfigurationError, RegistryError
from .base import TokenStore

logger = logging.getLogger(__name__)

StoreFactory = Callable[[], TokenStore]


class StoreRegistry:
    """Maps backend names to factories that build token stores.

    Stores created through :meth:`new_store` are opened and get a janitor
    attached that sweeps expired tokens every ``janitor_interval`` seconds
    until the store is closed.
    """

    def __init__(self, janitor_interval: float = DEFAULT_JANITOR_INTERVAL) -> None:
        self.janitor_interval = _check_interval(janitor_interval)
        self._factories: Dict[str, StoreFactory] = {}

    def register(self, name: str, factory: Optional[StoreFactory]) -> None:
        """Register ``factory`` under ``name``.

        Raises:
            RegistryError: ``name`` is empty, ``factory`` is ``None`` or the
                name is already taken.
        """
        if not name:
            raise RegistryError("tokenStore: register called with an empty name")
        if factory is None:
            raise RegistryError(f"tokenStore: register factory for {name!r} is None")
        if name in self._factories:
            raise RegistryError(f"tokenStore: register called twice for store {name!r}")
        self._factories[name] = factory

    def names(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    async def new_store(
        self,
        name: str,
        config: StoreConfigLike = None,
        janitor_interval: Optional[float] = None,
    ) -> TokenStore:
        """Build, open and start the janitor of the store registered as ``name``."""
        factory = self._factories.get(name)
        if factory is None:
            raise RegistryError(
                f"tokenStore: unknown store name {name!r} (forgot registration?)"
            )
        interval = (
            self.janitor_interval
            if janitor_interval is None
            else _check_interval(janitor_interval)
        )
        store = factory()
        await store.open(config)
        try:
            store.start_janitor(interval)
        except BaseException:
            await store.close()
            raise
        logger.info(f"Created token store {name!r}")
        return store


def _check_interval(interval: float) -> float:
    if interval <= 0:
        raise ConfigurationError(f"janitor interval must be positive, got {interval}")
    return interval
