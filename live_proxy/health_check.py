"""
Health Check Utility for the Gemini Live Proxy

Probes the proxy's /health endpoint and reports a standardized result:
- "healthy": proxy answered 200 with status "ok"
- "degraded": proxy answered but reported a problem (503 or missing project)
- "unhealthy": proxy unreachable or returned an error

CLI Usage:
    python -m live_proxy.health_check
    python -m live_proxy.health_check --url http://localhost:3001/health --timeout 2
"""

import argparse
import asyncio
import logging
import sys
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_HEALTH_URL = "http://localhost:3001/health"


@dataclass
class HealthCheckResult:
    """
    Standardized health check result.

    Attributes:
        service_name: Name of the service being checked
        status: "healthy", "unhealthy", or "degraded"
        latency_ms: Response time in milliseconds
        details: Response body or error information
        timestamp: Unix timestamp when check was performed
    """
    service_name: str
    status: str
    latency_ms: float
    details: Dict[str, Any]
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def is_healthy(self) -> bool:
        return self.status == "healthy"


async def check_proxy_health(
    url: str = DEFAULT_HEALTH_URL,
    timeout: float = 5.0,
    service_name: str = "live-proxy",
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> HealthCheckResult:
    """
    Check the proxy health endpoint.

    Args:
        url: Health check endpoint URL
        timeout: Request timeout in seconds (default: 5.0)
        service_name: Name used in the result
        transport: Optional httpx transport (used by tests)

    Returns:
        HealthCheckResult: Health check result with HTTP metrics
    """
    start_time = time.time()

    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(url)
    except httpx.TimeoutException:
        logger.error(f"{service_name} health check timed out after {timeout}s")
        return HealthCheckResult(
            service_name=service_name,
            status="unhealthy",
            latency_ms=timeout * 1000,
            details={"error": f"Request timed out after {timeout}s"},
            timestamp=time.time(),
        )
    except httpx.HTTPError as e:
        logger.error(f"{service_name} health check failed: {e}")
        return HealthCheckResult(
            service_name=service_name,
            status="unhealthy",
            latency_ms=(time.time() - start_time) * 1000,
            details={"error": str(e)},
            timestamp=time.time(),
        )

    latency_ms = (time.time() - start_time) * 1000

    try:
        details = response.json()
    except ValueError:
        details = {"raw_response": response.text[:200]}
    if not isinstance(details, dict):
        details = {"raw_response": details}
    details["status_code"] = response.status_code

    if response.status_code == 200 and details.get("status") == "ok":
        status = "degraded" if not details.get("project") else "healthy"
    elif response.status_code in (200, 503):
        status = "degraded"
    else:
        status = "unhealthy"

    return HealthCheckResult(
        service_name=service_name,
        status=status,
        latency_ms=latency_ms,
        details=details,
        timestamp=time.time(),
    )


def _print_result(result: HealthCheckResult) -> None:
    print(f"\n{result.service_name.upper()}")
    print(f"   Status: {result.status}")
    print(f"   Latency: {result.latency_ms:.2f}ms")

    if result.details:
        print("   Details:")
        for key, value in result.details.items():
            print(f"      {key}: {value}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Health check utility for the Gemini Live Proxy",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m live_proxy.health_check
  python -m live_proxy.health_check --url http://localhost:8080/health
        """
    )
    parser.add_argument(
        "--url",
        default=DEFAULT_HEALTH_URL,
        help=f"Health endpoint URL (default: {DEFAULT_HEALTH_URL})"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=5.0,
        help="HTTP request timeout in seconds (default: 5.0)"
    )
    return parser


async def _cli_main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    result = await check_proxy_health(args.url, timeout=args.timeout)
    _print_result(result)

    return 0 if result.is_healthy() else 1


def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(
        level=logging.WARNING,
        format="%(levelname)s: %(message)s"
    )
    sys.exit(asyncio.run(_cli_main(argv)))


if __name__ == "__main__":
    main()
