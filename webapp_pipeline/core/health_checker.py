"""
Health Checker - Deployment verification via HTTP health checks.

Provides:
- Single HTTP probe
- Fixed-count retry without backoff
- Response validation
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any, List

import httpx

from .logger import get_logger


@dataclass
class HealthCheckResult:
    """Result of a health check."""
    healthy: bool
    url: str = ""
    status_code: Optional[int] = None
    response_time_ms: float = 0
    message: str = ""
    checks_performed: int = 0
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "healthy": self.healthy,
            "url": self.url,
            "status_code": self.status_code,
            "response_time_ms": self.response_time_ms,
            "message": self.message,
            "checks_performed": self.checks_performed,
            "last_error": self.last_error,
        }


class HealthChecker:
    """
    HTTP health check client.

    Usage:
        checker = HealthChecker()
        result = await checker.check_once("http://localhost:3000/health")
        if result.healthy:
            print("Deployment verified!")
    """

    def __init__(
        self,
        timeout: float = 10.0,
        expected_status_codes: List[int] = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        """
        Initialize health checker.

        Args:
            timeout: HTTP request timeout in seconds
            expected_status_codes: Status codes that indicate healthy (default: any 2xx)
            transport: Optional httpx transport, used by tests
        """
        self.timeout = timeout
        self.expected_status_codes = expected_status_codes
        self.transport = transport
        self.logger = get_logger("HealthChecker")

    def _is_expected(self, status_code: int) -> bool:
        if self.expected_status_codes:
            return status_code in self.expected_status_codes
        return 200 <= status_code < 300

    async def check_once(
        self,
        url: str,
        headers: Dict[str, str] = None,
    ) -> HealthCheckResult:
        """Perform a single probe. Network errors become an unhealthy result."""
        result = HealthCheckResult(healthy=False, url=url, checks_performed=1)
        start_time = datetime.now()

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url, headers=headers or {})
        except httpx.HTTPError as e:
            result.last_error = str(e) or e.__class__.__name__
            result.message = f"Request failed: {result.last_error}"
            self.logger.warning("Health probe failed", url=url, error=result.last_error)
            return result

        result.status_code = response.status_code
        result.response_time_ms = (datetime.now() - start_time).total_seconds() * 1000

        if not self._is_expected(response.status_code):
            result.message = f"Unexpected status code: {response.status_code}"
            self.logger.warning("Health probe unhealthy", url=url, status_code=response.status_code)
            return result

        result.healthy = True
        result.message = "OK"
        self.logger.info(
            f"Health check passed in {result.response_time_ms:.0f}ms", url=url
        )
        return result

    async def check(
        self,
        url: str,
        max_retries: int = 3,
        retry_delay: float = 0.0,
        headers: Dict[str, str] = None,
    ) -> HealthCheckResult:
        """
        Probe up to `max_retries` times with a fixed delay between attempts.

        Returns:
            The first healthy result, or the last unhealthy one
        """
        result = HealthCheckResult(healthy=False, url=url)

        for attempt in range(1, max_retries + 1):
            self.logger.info(f"Health check attempt {attempt}/{max_retries}: {url}")
            result = await self.check_once(url, headers)
            result.checks_performed = attempt

            if result.healthy:
                return result

            if attempt < max_retries and retry_delay > 0:
                await asyncio.sleep(retry_delay)

        result.message = f"Health check failed after {max_retries} attempts: {result.message}"
        self.logger.error(result.message)
        return result
