"""
Compose stack control: lifecycle, health and volume maintenance.
"""

from local_backend.stack.compose import ComposeStack
from local_backend.stack.health import HealthCheckResult, StackHealthChecker, render_health
from local_backend.stack.volumes import (
    SERVICE_DIRECTORIES,
    ResetReport,
    fix_volume_directories,
    fix_volumes,
    reset_stack,
)

__all__ = [
    "ComposeStack",
    "HealthCheckResult",
    "StackHealthChecker",
    "render_health",
    "SERVICE_DIRECTORIES",
    "ResetReport",
    "fix_volume_directories",
    "fix_volumes",
    "reset_stack",
]
