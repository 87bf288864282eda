"""
CSRF state store for the OAuth2 authorization redirect.

Every state issued by /authorize may be consumed once by the callback.
Abandoned states are purged by a periodic background sweep.
"""

import asyncio
import logging
import time
import uuid
from typing import Callable, Dict, Optional

from ...config import STATE_MAX_AGE, STATE_SWEEP_INTERVAL

logger = logging.getLogger(__name__)


class CsrfStateStore:
    """In-memory store of outstanding OAuth2 ``state`` values."""

    def __init__(
        self,
        max_age: float = STATE_MAX_AGE,
        sweep_interval: float = STATE_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.time,
    ):
        self.max_age = max_age
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._states: Dict[str, float] = {}
        self._sweep_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._states)

    def create(self) -> str:
        """Issue a fresh random state and remember when it was created."""
        state = str(uuid.uuid4())
        self._states[state] = self._clock()
        logger.debug(f"Created OAuth2 state {state[:8]}****")
        return state

    def consume(self, state: Optional[str]) -> bool:
        """
        Validate and remove a state.

        Args:
            state: Value returned by the authorization server

        Returns:
            True the first time a known state is presented, False otherwise
        """
        if not state:
            return False
        created = self._states.pop(state, None)
        if created is None:
            logger.warning(f"Rejected unknown or reused OAuth2 state {state[:8]}****")
            return False
        return True

    def sweep(self) -> int:
        """
        Purge states older than ``max_age``.

        Returns:
            Number of states removed
        """
        cutoff = self._clock() - self.max_age
        expired = [state for state, created in self._states.items() if created < cutoff]
        for state in expired:
            del self._states[state]
        if expired:
            logger.info(f"Purged {len(expired)} expired OAuth2 state(s)")
        return len(expired)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.debug(f"State sweep started (every {self.sweep_interval}s)")

    async def stop(self) -> None:
        """Cancel the periodic sweep and wait for it to finish."""
        task = self._sweep_task
        self._sweep_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("State sweep stopped")
