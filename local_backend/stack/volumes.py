"""
Volume maintenance for the bind-mounted service directories.

``reset_stack`` tears the stack down and empties every data directory from
inside a throwaway Alpine container, which sidesteps the root-owned files
the services leave behind. ``fix_volume_directories`` recreates the
directory skeleton on the host with predictable permissions.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import docker
from docker.errors import DockerException

from local_backend.core.config import Settings
from local_backend.core.exceptions import CommandFailedError
from local_backend.core.logging import get_logger
from local_backend.stack.compose import ComposeStack

if TYPE_CHECKING:
    from docker import DockerClient

logger = get_logger("stack.volumes")

SERVICE_DIRECTORIES = (
    "elasticsearch/data",
    "elasticsearch/logs",
    "kibana/data",
    "kibana/logs",
    "mongodb/data",
    "mongodb/configdb",
    "kafka/data",
    "kafka/logs",
    "zookeeper/data",
    "zookeeper/logs",
    "sqlserver/data",
    "sqlserver/backup",
    "sqlserver/logs",
    "shared",
)

CLEANUP_IMAGE = "alpine:latest"

# Runs inside the cleanup container with the project mounted at /workspace
CLEANUP_SCRIPT = """
find . -type d \\( -name data -o -name logs -o -name backup -o -name configdb \\) | while read dir; do
  echo "Cleaning: $dir"
  rm -rf "$dir"/* "$dir"/.[!.]* 2>/dev/null
  touch "$dir/.gitkeep"
done
if [ -d shared ]; then
  echo "Cleaning: shared"
  rm -rf shared/* shared/.[!.]* 2>/dev/null
  touch shared/.gitkeep
fi
"""


@dataclass
class ResetReport:
    """What reset_stack did, step by step."""

    steps: list[str] = field(default_factory=list)
    cleaned: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def reset_stack(
    settings: Settings,
    client: "DockerClient | None" = None,
    compose: ComposeStack | None = None,
) -> ResetReport:
    """Stop the stack, prune containers and volumes, and empty data directories."""
    report = ResetReport()
    compose = compose or ComposeStack(settings)
    client = client or docker.from_env()

    result = compose.down(volumes=True, check=False)
    report.steps.append("compose down -v")
    if not result.success:
        report.warnings.append(f"compose down: {result.error or 'no containers running'}")

    try:
        client.containers.prune()
        report.steps.append("container prune")
    except DockerException as e:
        report.warnings.append(f"container prune: {e}")

    try:
        client.volumes.prune()
        report.steps.append("volume prune")
    except DockerException as e:
        report.warnings.append(f"volume prune: {e}")

    workspace = str(settings.project_dir.resolve())
    logger.info(f"Cleaning data directories under {workspace} with {CLEANUP_IMAGE}")
    try:
        output = client.containers.run(
            CLEANUP_IMAGE,
            ["sh", "-c", CLEANUP_SCRIPT],
            volumes={workspace: {"bind": "/workspace", "mode": "rw"}},
            working_dir="/workspace",
            remove=True,
        )
    except DockerException as e:
        raise CommandFailedError(f"Cleaning data directories failed: {e}") from e

    text = output.decode("utf-8", errors="replace") if isinstance(output, bytes) else str(output)
    report.cleaned = [
        line.split("Cleaning:", 1)[1].strip()
        for line in text.splitlines()
        if line.startswith("Cleaning:")
    ]
    report.steps.append("clean data directories")

    for warning in report.warnings:
        logger.warning(warning)
    return report


def fix_volume_directories(
    root: Path,
    directories: tuple[str, ...] = SERVICE_DIRECTORIES,
) -> list[Path]:
    """Remove and recreate each service directory with a .gitkeep and mode 755."""
    created = []
    for rel in directories:
        path = root / rel
        try:
            if path.exists():
                logger.info(f"Removing existing directory {path}")
                shutil.rmtree(path)
            path.mkdir(parents=True, exist_ok=True)
            (path / ".gitkeep").touch()
            path.chmod(0o755)
        except OSError as e:
            raise CommandFailedError(
                f"Could not recreate {path}: {e}. Files written by the containers may be "
                "owned by root; use `local-backend stack reset` to clean them from a container."
            ) from e
        created.append(path)
    return created


def fix_volumes(
    settings: Settings,
    client: "DockerClient | None" = None,
    compose: ComposeStack | None = None,
) -> list[Path]:
    """Stop the stack and prune volumes, then recreate the service directories."""
    compose = compose or ComposeStack(settings)
    client = client or docker.from_env()

    result = compose.down(check=False)
    if not result.success:
        logger.warning(f"compose down: {result.error or 'no containers running'}")

    try:
        client.volumes.prune()
    except DockerException as e:
        logger.warning(f"volume prune: {e}")

    return fix_volume_directories(settings.project_dir)
