"""
System Test Configuration - pytest fixtures for the live compose stack.

Tests here talk to real containers:
1. Every item is skipped unless SYSTEM_TEST_LIVE=1
2. The stack must be healthy before the first test runs
3. Container logs are scanned for fatal errors at startup

The tests/ folder keeps its own conftest with fakes.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Generator

import docker
import pytest

from local_backend.core.config import Settings, get_settings
from local_backend.core.exceptions import StackUnhealthyError
from local_backend.stack import StackHealthChecker
from system_tests.config import SystemTestConfig, get_config


SYSTEM_TESTS_DIR = Path(__file__).resolve().parent


def pytest_collection_modifyitems(config, items):
    if get_config().live:
        return
    skip_live = pytest.mark.skip(reason="set SYSTEM_TEST_LIVE=1 to run against the live stack")
    for item in items:
        # The hook sees the whole session; leave the offline tests alone
        if SYSTEM_TESTS_DIR in Path(item.path).resolve().parents:
            item.add_marker(skip_live)


# =============================================================================
# CONFIGURATION
# =============================================================================


@pytest.fixture(scope="session")
def system_config() -> SystemTestConfig:
    """Load system test configuration from environment."""
    return get_config()


@pytest.fixture(scope="session")
def settings() -> Settings:
    return get_settings()


# =============================================================================
# DOCKER CLIENT AND STACK
# =============================================================================


@pytest.fixture(scope="session")
def docker_client() -> Generator[docker.DockerClient, None, None]:
    """Create Docker client for container interaction."""
    client = docker.from_env()
    yield client
    client.close()


@pytest.fixture(scope="session")
def stack_health(
    settings: Settings,
    system_config: SystemTestConfig,
    docker_client: docker.DockerClient,
) -> StackHealthChecker:
    return StackHealthChecker(settings, services=system_config.services, client=docker_client)


@pytest.fixture(scope="session", autouse=True)
def verify_stack_healthy(
    stack_health: StackHealthChecker,
    system_config: SystemTestConfig,
):
    """Wait for the stack before any live test runs."""
    print("\n" + "=" * 60)
    print("🔍 Verifying compose stack health...")
    print("=" * 60)

    try:
        results = stack_health.wait_for_healthy(timeout=system_config.stack_startup_timeout)
    except StackUnhealthyError as e:
        pytest.fail(e.message, pytrace=False)

    for result in results:
        print(f"  ✅ {result.name}: {result.message}")
    print("=" * 60 + "\n")


@pytest.fixture(scope="session")
def startup_errors(
    stack_health: StackHealthChecker,
    system_config: SystemTestConfig,
) -> dict[str, list[str]]:
    """Log lines matching the configured error patterns, per service."""
    patterns = [re.compile(p, re.IGNORECASE) for p in system_config.error_patterns]
    found: dict[str, list[str]] = {}

    for service in system_config.services:
        logs = stack_health.get_container_logs(service, tail=system_config.log_tail_lines)
        matches = [
            line for line in logs.splitlines()
            if any(p.search(line) for p in patterns)
        ]
        if matches:
            found[service] = matches

    return found
