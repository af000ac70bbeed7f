"""
Health probing for deployed services.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import requests

from .config import RunConfiguration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Endpoint:
    name: str
    url: str


@dataclass
class HealthCheckResult:
    name: str
    url: str
    healthy: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "healthy": self.healthy,
            "status_code": self.status_code,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


@dataclass
class HealthReport:
    results: List[HealthCheckResult]

    @property
    def healthy_count(self) -> int:
        return sum(1 for r in self.results if r.healthy)

    @property
    def unhealthy(self) -> List[HealthCheckResult]:
        return [r for r in self.results if not r.healthy]

    @property
    def all_healthy(self) -> bool:
        return not self.unhealthy

    def summary(self) -> str:
        return f"{self.healthy_count}/{len(self.results)} endpoints healthy"


def default_endpoints(config: RunConfiguration) -> List[Endpoint]:
    """
    Endpoints to probe after a deploy.

    Configured ``health_endpoints`` win; otherwise the backend liveness route
    and the frontend root, plus the proxy's own routes when it is enabled.
    """
    if config.health_endpoints:
        return [Endpoint(name, url) for name, url in config.health_endpoints]

    proxy = config.proxy
    endpoints = [
        Endpoint("Backend API", f"{proxy.backend_url}:{proxy.backend_port}/health"),
        Endpoint("Frontend", f"{proxy.frontend_url}:{proxy.frontend_port}"),
    ]
    if config.enable_reverse_proxy:
        if config.enable_tls:
            base = "https://localhost"
        elif proxy.listen_port == 80:
            base = "http://localhost"
        else:
            base = f"http://localhost:{proxy.listen_port}"
        endpoints += [
            Endpoint("Proxy", f"{base}/health"),
            Endpoint("Proxy API", f"{base}/api/health"),
        ]
    return endpoints


def probe_endpoint(endpoint: Endpoint, timeout: float = 10.0,
                   session: Optional[requests.Session] = None) -> HealthCheckResult:
    """
    Probe a single endpoint once.

    Never raises: connection errors and timeouts become an unhealthy result.

    Args:
        endpoint: Endpoint to probe
        timeout: Request timeout in seconds
        session: Optional requests session

    Returns:
        HealthCheckResult
    """
    http = session or requests
    start = time.monotonic()
    try:
        response = http.get(endpoint.url, timeout=timeout)
    except requests.exceptions.RequestException as e:
        return HealthCheckResult(
            name=endpoint.name,
            url=endpoint.url,
            healthy=False,
            error=f"Request failed: {str(e)}",
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    healthy = response.status_code < 400
    return HealthCheckResult(
        name=endpoint.name,
        url=endpoint.url,
        healthy=healthy,
        status_code=response.status_code,
        error=None if healthy else f"HTTP {response.status_code}",
        duration_ms=int((time.monotonic() - start) * 1000),
    )


def probe_endpoints(endpoints: Sequence[Endpoint], timeout: float = 10.0,
                    session: Optional[requests.Session] = None) -> HealthReport:
    """Probe each endpoint once, in order; one result per endpoint."""
    results = []
    for endpoint in endpoints:
        result = probe_endpoint(endpoint, timeout=timeout, session=session)
        if result.healthy:
            logger.info(f"✅ {endpoint.name} healthy ({endpoint.url})")
        else:
            logger.warning(f"❌ {endpoint.name} unhealthy ({endpoint.url}): {result.error}")
        results.append(result)
    return HealthReport(results)
