"""
Shell invocation package.
"""

from local_backend.shell.command import (
    CommandResult,
    docker_exec,
    redact_args,
    run_command,
)

__all__ = [
    "CommandResult",
    "docker_exec",
    "redact_args",
    "run_command",
]
