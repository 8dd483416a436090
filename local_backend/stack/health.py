"""
Stack Health Checker - verify the compose containers are up and healthy.

Uses the Docker Engine API to confirm each configured container exists, is
running, and (when the compose file declares a health check) reports
``healthy``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import docker
from docker.errors import DockerException, NotFound

from local_backend.core.config import Settings
from local_backend.core.exceptions import StackUnhealthyError
from local_backend.core.logging import get_logger

if TYPE_CHECKING:
    from docker.models.containers import Container

logger = get_logger("stack.health")


@dataclass
class HealthCheckResult:
    """Result of a health check."""

    name: str
    healthy: bool
    message: str
    details: dict | None = None


class StackHealthChecker:
    """
    Verify the compose stack's containers.

    Checks:
    1. Container exists
    2. Container is running
    3. Container health status (if a health check is configured)
    """

    def __init__(
        self,
        settings: Settings,
        services: list[str] | None = None,
        client: "docker.DockerClient | None" = None,
    ):
        self.settings = settings
        self.containers = {
            service: name
            for service, name in settings.containers.items()
            if services is None or service in services
        }
        self._client = client

    @property
    def client(self) -> "docker.DockerClient":
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    def check_all(self) -> list[HealthCheckResult]:
        """Run all health checks and return results."""
        return [
            self._check_container(service, name)
            for service, name in self.containers.items()
        ]

    def assert_healthy(self) -> list[HealthCheckResult]:
        """Raise StackUnhealthyError if any container is not healthy."""
        results = self.check_all()
        failures = [r for r in results if not r.healthy]

        if failures:
            messages = "\n".join(f"  ❌ {r.name}: {r.message}" for r in failures)
            raise StackUnhealthyError(
                f"Stack health check failed:\n{messages}\n\n"
                f"Start the stack with: {self.settings.compose_command} up -d",
                details={r.name: r.message for r in failures},
            )
        return results

    def wait_for_healthy(
        self,
        timeout: float | None = None,
        poll_interval: float = 2.0,
    ) -> list[HealthCheckResult]:
        """Poll until every container is healthy or the timeout passes."""
        timeout = timeout or self.settings.stack_startup_timeout
        start = time.monotonic()

        while (time.monotonic() - start) < timeout:
            try:
                return self.assert_healthy()
            except StackUnhealthyError:
                logger.debug(f"Stack not healthy yet, retrying in {poll_interval}s")
                time.sleep(poll_interval)

        # Final check with full error
        return self.assert_healthy()

    def _check_container(self, service: str, container_name: str) -> HealthCheckResult:
        """Check if a container is running and healthy."""
        name = f"container:{service}"
        try:
            container: Container = self.client.containers.get(container_name)
            container.reload()
        except NotFound:
            return HealthCheckResult(
                name=name,
                healthy=False,
                message=f"Container {container_name} not found",
            )
        except DockerException as e:
            return HealthCheckResult(
                name=name,
                healthy=False,
                message=f"Error checking container: {e}",
            )

        if container.status != "running":
            return HealthCheckResult(
                name=name,
                healthy=False,
                message=f"Container not running (status: {container.status})",
            )

        health = container.attrs.get("State", {}).get("Health", {})
        if health:
            status = health.get("Status", "unknown")
            if status != "healthy":
                return HealthCheckResult(
                    name=name,
                    healthy=False,
                    message=f"Container unhealthy (health: {status})",
                    details=health,
                )
            return HealthCheckResult(name=name, healthy=True, message="Container healthy")

        return HealthCheckResult(
            name=name,
            healthy=True,
            message="Container running (no health check)",
        )

    def get_container_logs(self, service: str, tail: int = 50) -> str:
        """Get recent logs from a container for debugging."""
        container_name = self.containers.get(service)
        if not container_name:
            return f"Service '{service}' not configured"

        try:
            container = self.client.containers.get(container_name)
            return container.logs(tail=tail).decode("utf-8", errors="replace")
        except DockerException as e:
            return f"Error fetching logs: {e}"


def render_health(results: list[HealthCheckResult]) -> str:
    """Status block in the same layout as the doctor tables."""
    lines = ["", "=" * 60, "STACK HEALTH STATUS", "=" * 60]
    for result in results:
        icon = "✅" if result.healthy else "❌"
        lines.append(f"  {icon} {result.name}: {result.message}")
    lines.append("=" * 60)
    return "\n".join(lines)
