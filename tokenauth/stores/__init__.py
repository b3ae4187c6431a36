"""Token store backends and factory."""

from __future__ import annotations

from typing import Optional

from ..config import TokenAuthConfig, load_config
from .base import TokenStore, validate_token_record
from .bucketfile import BucketFileStore
from .inmemory import InMemoryTokenStore
from .registry import StoreFactory, StoreRegistry


def default_registry(janitor_interval: Optional[float] = None) -> StoreRegistry:
    """Return a registry with the built-in backends.

    ``default`` is the file-backed :class:`BucketFileStore`; ``inmemory`` keeps
    everything in process memory.
    """

    registry = (
        StoreRegistry(janitor_interval)
        if janitor_interval is not None
        else StoreRegistry()
    )
    registry.register("default", BucketFileStore)
    registry.register("inmemory", InMemoryTokenStore)
    return registry


async def get_store(
    backend: Optional[str] = None,
    config: Optional[TokenAuthConfig] = None,
    registry: Optional[StoreRegistry] = None,
) -> TokenStore:
    """Factory function to open the configured store.

    The backend is taken from ``backend`` or the loaded configuration and
    looked up in ``registry`` (the built-in backends by default).
    """

    config = config or load_config()
    registry = registry or default_registry(config.janitor_interval)
    return await registry.new_store(
        (backend or config.backend).lower(),
        config.store,
        janitor_interval=config.janitor_interval,
    )


__all__ = [
    "TokenStore",
    "BucketFileStore",
    "InMemoryTokenStore",
    "StoreFactory",
    "StoreRegistry",
    "default_registry",
    "get_store",
    "validate_token_record",
]
