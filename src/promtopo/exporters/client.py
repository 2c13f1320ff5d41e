"""
Prometheus HTTP API client.

Runs instant queries with retry on transient failures and a circuit
breaker around the source.
"""

from __future__ import annotations

import time
from typing import Any

import httpx
import structlog
from circuitbreaker import CircuitBreaker
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from promtopo.exporters.base import ExporterHealth

logger = structlog.get_logger()

DEFAULT_USER_AGENT = "promtopo/0.1.0"


class PrometheusClientError(RuntimeError):
    """Raised when the Prometheus API cannot answer a request."""


class RetryableHTTPError(PrometheusClientError):
    """HTTP errors that should be retried."""


class PermanentHTTPError(PrometheusClientError):
    """HTTP errors that should not be retried."""


class PrometheusQueryError(PrometheusClientError):
    """Raised when Prometheus rejects a query."""


def is_retryable_status(status_code: int) -> bool:
    """Determine if HTTP status code is retryable."""
    return status_code in (408, 429, 500, 502, 503, 504)


class PrometheusClient:
    """Async client for the Prometheus HTTP API."""

    def __init__(
        self,
        url: str,
        *,
        username: str | None = None,
        password: str | None = None,
        bearer_token: str | None = None,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
    ) -> None:
        self.url = url.rstrip("/")
        self._auth = (username, password) if username and password else None
        self._bearer_token = bearer_token
        self._timeout = timeout
        self._user_agent = user_agent

        # Each source trips its own breaker
        self.breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            expected_exception=RetryableHTTPError,
            name=self.url,
        )
        self._guarded_request = self.breaker(self._request)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": self._user_agent}
        if self._bearer_token:
            headers["Authorization"] = f"Bearer {self._bearer_token}"
        return headers

    @retry(
        retry=retry_if_exception_type(RetryableHTTPError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=2, min=1, max=30),
        reraise=True,
    )
    async def _request(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Execute a GET request with retry. Callers go through the breaker."""
        url = f"{self.url}{path}"

        try:
            async with httpx.AsyncClient(auth=self._auth, timeout=self._timeout) as client:
                response = await client.get(url, params=params, headers=self._headers())

                if is_retryable_status(response.status_code):
                    logger.warning(
                        "http_retryable_error",
                        status=response.status_code,
                        url=url,
                    )
                    raise RetryableHTTPError(f"HTTP {response.status_code}: {response.text}")

                response.raise_for_status()
                return response.json() if response.content else {}

        except httpx.HTTPStatusError as exc:
            logger.error(
                "http_permanent_error",
                status=exc.response.status_code,
                url=url,
                error=str(exc),
            )
            raise PermanentHTTPError(str(exc)) from exc
        except (httpx.TimeoutException, httpx.ConnectError, httpx.ReadError) as exc:
            logger.warning("http_network_error", url=url, error=str(exc))
            raise RetryableHTTPError(str(exc)) from exc
        except ValueError as exc:
            # Body was not JSON
            logger.error("http_invalid_response", url=url, error=str(exc))
            raise PermanentHTTPError(f"Invalid JSON from {url}: {exc}") from exc

    async def query(self, promql: str) -> list[dict[str, Any]]:
        """
        Execute a PromQL instant query.

        Returns:
            The result vector (list of ``{"metric": ..., "value": ...}``)

        Raises:
            PrometheusClientError: If the request or the query fails
        """
        result = await self._guarded_request("/api/v1/query", params={"query": promql})

        if result.get("status") != "success":
            raise PrometheusQueryError(
                f"Prometheus query failed: {result.get('error', 'Unknown')}"
            )

        data = result.get("data", {})
        if data.get("resultType", "vector") != "vector":
            raise PrometheusQueryError(
                f"Expected an instant vector, got {data.get('resultType')}"
            )
        return data.get("result", [])

    async def health_check(self) -> ExporterHealth:
        """Check Prometheus connectivity."""
        start = time.time()

        try:
            async with httpx.AsyncClient(auth=self._auth, timeout=10.0) as client:
                response = await client.get(
                    f"{self.url}/api/v1/status/buildinfo", headers=self._headers()
                )
                latency = (time.time() - start) * 1000

                if response.status_code == 200:
                    return ExporterHealth(
                        healthy=True,
                        message="Connected to Prometheus",
                        latency_ms=latency,
                    )
                return ExporterHealth(
                    healthy=False,
                    message=f"Prometheus returned {response.status_code}",
                    latency_ms=latency,
                )
        except httpx.TimeoutException:
            return ExporterHealth(
                healthy=False,
                message="Prometheus connection timed out",
            )
        except httpx.HTTPError as e:
            return ExporterHealth(
                healthy=False,
                message=f"Prometheus connection failed: {e}",
            )
