"""
External command invocation.

Every interaction with the stack's native tooling (docker, docker-compose,
openssl, keytool, and the service CLIs reached through ``docker exec``) goes
through ``run_command``. Tool failures never raise here: they come back as a
``CommandResult`` with ``success=False`` so callers can decide whether the
failure is benign.
"""

from __future__ import annotations

import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

from local_backend.core.logging import get_logger

logger = get_logger("shell")

# Flags whose following argument is a secret
SECRET_FLAGS = {
    "-p",
    "-P",
    "--password",
    "-passout",
    "-passin",
    "-storepass",
    "-srcstorepass",
    "-deststorepass",
}


@dataclass
class CommandResult:
    """Outcome of an external command or HTTP call."""

    success: bool
    output: str = ""
    error: str = ""
    exit_code: int | None = None
    duration: float = 0.0
    timed_out: bool = False
    details: Any = None
    command: list[str] = field(default_factory=list)

    @property
    def combined(self) -> str:
        """Stdout and stderr together, for substring matching."""
        return f"{self.output}\n{self.error}".strip()

    def contains(self, needle: str) -> bool:
        return needle.lower() in self.combined.lower()


def redact_args(args: Sequence[str]) -> list[str]:
    """Return a copy of args with secret values replaced."""
    redacted: list[str] = []
    hide_next = False
    for arg in args:
        if hide_next:
            redacted.append("***")
            hide_next = False
            continue
        if arg in SECRET_FLAGS:
            hide_next = True
        elif arg.startswith("pass:"):
            arg = "pass:***"
        redacted.append(arg)
    return redacted


def run_command(
    args: Sequence[str],
    timeout: float = 30.0,
    input: str | None = None,
    env: Mapping[str, str] | None = None,
    cwd: Path | str | None = None,
) -> CommandResult:
    """
    Run a command without a shell and capture its output.

    Args:
        args: Program and arguments
        timeout: Seconds before the child is killed
        input: Optional text written to stdin
        env: Optional full environment for the child
        cwd: Optional working directory

    Returns:
        CommandResult with stdout in ``output`` and stderr in ``error``
    """
    args = [str(a) for a in args]
    printable = " ".join(redact_args(args))
    logger.debug(f"Running: {printable}")

    start = time.perf_counter()
    try:
        proc = subprocess.run(
            args,
            input=input,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=dict(env) if env is not None else None,
            cwd=str(cwd) if cwd is not None else None,
        )
    except FileNotFoundError:
        return CommandResult(
            success=False,
            error=f"Command not found: {args[0]}",
            duration=time.perf_counter() - start,
            command=args,
        )
    except subprocess.TimeoutExpired as e:
        logger.warning(f"Command timed out after {timeout}s: {printable}")
        return CommandResult(
            success=False,
            output=_decode(e.stdout),
            error=f"Timed out after {timeout}s",
            duration=time.perf_counter() - start,
            timed_out=True,
            command=args,
        )

    duration = time.perf_counter() - start
    result = CommandResult(
        success=proc.returncode == 0,
        output=proc.stdout or "",
        error=(proc.stderr or "").strip(),
        exit_code=proc.returncode,
        duration=duration,
        command=args,
    )
    if not result.success:
        logger.debug(f"Exit {proc.returncode} from {args[0]}: {result.error[:200]}")
    return result


def docker_exec(
    container: str,
    args: Sequence[str],
    timeout: float = 30.0,
    input: str | None = None,
    user: str | None = None,
) -> CommandResult:
    """Run a command inside a running container via ``docker exec``."""
    cmd = ["docker", "exec"]
    if input is not None:
        cmd.append("-i")
    if user:
        cmd.extend(["-u", user])
    cmd.append(container)
    cmd.extend(args)
    return run_command(cmd, timeout=timeout, input=input)


def _decode(value: bytes | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
