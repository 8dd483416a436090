"""
System Test Configuration.

Live-stack tests only run when SYSTEM_TEST_LIVE=1; the stack must already
be up (``local-backend stack up``).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from local_backend.core.config import SERVICES


def _services_from_env() -> list[str]:
    raw = os.getenv("SYSTEM_TEST_SERVICES", "")
    names = [s.strip() for s in raw.split(",") if s.strip()]
    return names or list(SERVICES)


@dataclass
class SystemTestConfig:
    """Configuration for system tests."""

    live: bool = False

    # Services the smoke tests cover
    services: list[str] = field(default_factory=_services_from_env)

    # Container log patterns that fail the startup log check (case-insensitive regex)
    error_patterns: list[str] = field(
        default_factory=lambda: [
            r"FATAL",
            r"OutOfMemoryError",
            r"Traceback \(most recent call last\)",
            r"panic:",
        ]
    )

    # Timeouts (seconds)
    stack_startup_timeout: float = 120.0

    # Log settings
    log_tail_lines: int = 500

    @classmethod
    def from_env(cls) -> "SystemTestConfig":
        """Load config from environment variables."""
        return cls(
            live=os.getenv("SYSTEM_TEST_LIVE", "0") == "1",
            stack_startup_timeout=float(os.getenv("SYSTEM_TEST_STARTUP_TIMEOUT", "120")),
        )


# Global default config instance
_config: SystemTestConfig | None = None


def get_config() -> SystemTestConfig:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = SystemTestConfig.from_env()
    return _config
