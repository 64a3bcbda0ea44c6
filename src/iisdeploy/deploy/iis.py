"""Stop and start IIS app pools with a bounded wait."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from iisdeploy.config.defaults import DEFAULT_TIMEOUTS
from iisdeploy.lib.errors import PoolStopTimeoutError
from iisdeploy.models.deployment import PoolState
from iisdeploy.platform.base import AppPoolManager

logger = logging.getLogger(__name__)


class AppPoolController:
    """Drive an app pool to a target state and wait for it.

    ``clock`` and ``sleep`` are injectable so the polling wait can be
    exercised without real delays.
    """

    def __init__(
        self,
        manager: AppPoolManager,
        poll_interval: float = DEFAULT_TIMEOUTS["pool_poll_interval"],
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.manager = manager
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

    def stop_pool(
        self, name: str, timeout: float = DEFAULT_TIMEOUTS["pool_stop"]
    ) -> PoolState:
        """Stop the pool and wait until it reports Stopped.

        Stopping an already stopped pool is a no-op.

        Raises:
            PoolStopTimeoutError: If the pool is not stopped within timeout
            PoolOperationError: If the pool cannot be queried or stopped
        """
        state = self.manager.get_state(name)
        if state == PoolState.STOPPED:
            logger.info(f"App pool '{name}' already stopped")
            return state

        if state != PoolState.STOPPING:
            self.manager.stop(name)
        logger.info(f"Stopping app pool '{name}' (waiting up to {timeout:g}s)")

        deadline = self._clock() + timeout
        while True:
            state = self.manager.get_state(name)
            if state == PoolState.STOPPED:
                logger.info(f"App pool '{name}' stopped")
                return state
            if self._clock() >= deadline:
                raise PoolStopTimeoutError(name, timeout, state.value)
            logger.debug(f"App pool '{name}' is {state.value}; waiting")
            self._sleep(self.poll_interval)

    def start_pool(self, name: str) -> PoolState:
        """Start the pool; starting a running pool is a no-op.

        Raises:
            PoolOperationError: If the pool cannot be queried or started
        """
        state = self.manager.get_state(name)
        if state == PoolState.STARTED:
            logger.info(f"App pool '{name}' already started")
            return state
        self.manager.start(name)
        state = self.manager.get_state(name)
        logger.info(f"Started app pool '{name}' ({state.value})")
        return state
