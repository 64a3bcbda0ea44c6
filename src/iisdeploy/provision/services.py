"""Locate and start exactly one runner service."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from iisdeploy.config.defaults import DEFAULT_TIMEOUTS
from iisdeploy.lib.errors import ServiceNotFoundError, ServiceStartError
from iisdeploy.models.provision import ServiceHandle, ServiceQuery
from iisdeploy.platform.base import ServiceControl

logger = logging.getLogger(__name__)


class ServiceLifecycleManager:
    """Start the runner service named by an (owner, repo, runner) query.

    Only the exact service name is ever touched. When it is missing, other
    runner services are listed for the operator but never started, so a
    different project's or machine's runner cannot be started by accident.
    """

    def __init__(
        self,
        control: ServiceControl,
        settle_seconds: float = DEFAULT_TIMEOUTS["service_settle"],
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._control = control
        self.settle_seconds = settle_seconds
        self._sleep = sleep

    def locate_service(self, query: ServiceQuery) -> ServiceHandle:
        """Find the service for the query.

        Raises:
            ServiceNotFoundError: When the exact service does not exist; the
                error lists sibling runner services found on the machine
        """
        name = query.service_name
        status = self._control.get_status(name)
        if status is not None:
            logger.info(f"Found service '{name}' ({status})")
            return ServiceHandle(name=name, status=status)

        siblings = self._control.list_services(query.sibling_pattern)
        sibling_names = sorted(s for s in siblings if s.lower() != name.lower())
        for sibling in sibling_names:
            logger.warning(
                f"Not touching other runner service '{sibling}' ({siblings[sibling]})"
            )
        raise ServiceNotFoundError(name, sibling_names)

    def ensure_running(self, handle: ServiceHandle) -> ServiceHandle:
        """Start the service if needed and confirm it is running.

        Raises:
            ServiceStartError: If the service is not running after the settle wait
        """
        if handle.is_running:
            logger.info(f"Service '{handle.name}' is already running")
            return handle

        logger.info(f"Starting service '{handle.name}'")
        self._control.start(handle.name)
        self._sleep(self.settle_seconds)

        status = self._control.get_status(handle.name) or "Missing"
        updated = ServiceHandle(name=handle.name, status=status)
        if not updated.is_running:
            raise ServiceStartError(handle.name, status)
        logger.info(f"Service '{handle.name}' is running")
        return updated
