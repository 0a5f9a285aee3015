"""Envoy admin endpoint health checking."""

import asyncio
import time
from typing import Optional, Protocol

import aiohttp

from ..core.log import Logger
from ..core.types import HealthStatus, TimeoutConfig


class HealthChecker(Protocol):
    """Protocol for proxy health checkers to enable dependency injection."""

    def check_readiness(self, endpoint: str) -> bool:
        """Check if the proxy is ready to serve traffic."""

    def check_health(self, endpoint: str, timeout: float = 2.0) -> HealthStatus:
        """Perform a health check with detailed status."""


class EnvoyHealthChecker:
    """Polls Envoy's admin ``/ready`` endpoint."""

    def __init__(self, logger: Logger, timeout_config: Optional[TimeoutConfig] = None) -> None:
        self._logger = logger
        self._timeout_config = timeout_config or TimeoutConfig()

    def check_readiness(self, endpoint: str) -> bool:
        health = self.check_health(
            endpoint, timeout=self._timeout_config.health_check_quick
        )
        if not health.is_healthy:
            self._logger.debug(
                "Readiness check failed for %s: %s", endpoint, health.error_message
            )
        return health.is_healthy

    def check_health(self, endpoint: str, timeout: float = 2.0) -> HealthStatus:
        start_time = time.time()
        try:
            return asyncio.run(self._async_health_check(endpoint, timeout))
        except (aiohttp.ClientError, OSError, RuntimeError) as e:
            return HealthStatus(
                is_healthy=False,
                response_time=time.time() - start_time,
                error_message=f"Health check error: {e}",
            )

    async def _async_health_check(self, endpoint: str, timeout: float) -> HealthStatus:
        start_time = time.time()
        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=timeout)
            ) as session:
                async with session.get(f"{endpoint}/ready") as response:
                    response_time = time.time() - start_time
                    state = (await response.text()).strip()
                    if response.status == 200:
                        return HealthStatus(
                            is_healthy=True,
                            response_time=response_time,
                            details={"state": state},
                        )
                    return HealthStatus(
                        is_healthy=False,
                        response_time=response_time,
                        error_message=f"HTTP {response.status}: {state or response.reason}",
                        details={"state": state},
                    )
        except asyncio.TimeoutError:
            return HealthStatus(
                is_healthy=False,
                response_time=time.time() - start_time,
                error_message="Connection timeout",
            )
        except (aiohttp.ClientError, OSError) as e:
            return HealthStatus(
                is_healthy=False,
                response_time=time.time() - start_time,
                error_message=f"Connection error: {e}",
            )
