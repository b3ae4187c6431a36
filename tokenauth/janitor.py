"""Background sweeper for expired tokens."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .stores.base import TokenStore

logger = logging.getLogger(__name__)


class Janitor:
    """Periodically calls ``delete_expired`` on a store.

    Sweeps run one after another on a single task. ``stop`` wakes an idle
    janitor immediately and waits for an in-flight sweep to finish.
    """

    def __init__(self, store: "TokenStore", interval: float) -> None:
        if interval <= 0:
            raise ValueError("janitor interval must be positive")
        self.store = store
        self.interval = interval
        self.sweeps = 0
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop."""
        if self._task is not None:
            raise RuntimeError("janitor can only be started once")
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(
            self._run(self._stop_event), name="tokenauth-janitor"
        )
        logger.info(f"Janitor started (interval={self.interval}s)")

    async def stop(self) -> None:
        """Stop the loop. Calling this more than once is a no-op."""
        if self._task is None or self._stop_event is None:
            return
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        await self._task
        logger.info(f"Janitor stopped after {self.sweeps} sweeps")

    async def run_once(self) -> int:
        """Run a single sweep, logging instead of raising on failure."""
        try:
            removed = await self.store.delete_expired()
        except Exception:
            logger.exception("Janitor sweep failed")
            return 0
        finally:
            self.sweeps += 1
        if removed:
            logger.info(f"Janitor removed {removed} expired tokens")
        return removed

    async def _run(self, stop_event: asyncio.Event) -> None:
        while True:
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
                return
            except asyncio.TimeoutError:
                pass
            await self.run_once()
