"""docker-compose wrapper for bringing the stack up and down."""

from __future__ import annotations

import shlex
from pathlib import Path

from local_backend.core.config import Settings
from local_backend.core.exceptions import CommandFailedError
from local_backend.core.logging import get_logger
from local_backend.shell.command import CommandResult, run_command

logger = get_logger("stack.compose")

COMPOSE_TIMEOUT = 600.0


class ComposeStack:
    """Runs docker-compose against the project's manifest."""

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def compose_file(self) -> Path:
        return self.settings.resolve(self.settings.compose_file)

    def _base(self) -> list[str]:
        return [*shlex.split(self.settings.compose_command), "-f", str(self.compose_file)]

    def _run(self, *args: str, check: bool = True, timeout: float = COMPOSE_TIMEOUT) -> CommandResult:
        result = run_command(
            [*self._base(), *args],
            timeout=timeout,
            cwd=self.settings.project_dir,
        )
        if check and not result.success:
            raise CommandFailedError(
                f"{self.settings.compose_command} {args[0]} failed", result=result
            )
        return result

    def up(self, services: list[str] | None = None, build: bool = False) -> CommandResult:
        args = ["up", "-d"]
        if build:
            args.append("--build")
        args.extend(services or [])
        logger.info(f"Starting stack: {' '.join(services) if services else 'all services'}")
        return self._run(*args)

    def down(self, volumes: bool = False, check: bool = True) -> CommandResult:
        args = ["down"]
        if volumes:
            args.append("-v")
        logger.info("Stopping stack" + (" and removing volumes" if volumes else ""))
        return self._run(*args, check=check)

    def ps(self) -> CommandResult:
        return self._run("ps", timeout=60.0)
