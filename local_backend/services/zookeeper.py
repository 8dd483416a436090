"""Zookeeper invoker: zookeeper-shell.sh inside the Zookeeper container."""

from __future__ import annotations

import re

from local_backend.core.config import Settings
from local_backend.shell.command import CommandResult, docker_exec

ZOOKEEPER_SHELL = "/opt/kafka/bin/zookeeper-shell.sh"

_ZNODE_LIST = re.compile(r"^\[(.*)\]$")

# zookeeper-shell exits 0 on most server-side errors
_ERROR_MARKERS = (
    "Node does not exist",
    "Node already exists",
    "KeeperErrorCode",
    "Exception",
)


def invoke_zookeeper_command(
    settings: Settings,
    *command: str,
    timeout: float | None = None,
) -> CommandResult:
    """Run a single zookeeper-shell command such as ``ls /`` or ``get /x``."""
    result = docker_exec(
        settings.zookeeper_container,
        [ZOOKEEPER_SHELL, settings.zookeeper_connect, *command],
        timeout=timeout or settings.command_timeout,
    )
    if result.success:
        for marker in _ERROR_MARKERS:
            if marker in result.output:
                result.success = False
                result.error = _last_line(result.output)
                break
    return result


def parse_znode_list(output: str) -> list[str] | None:
    """Children from ``ls`` output, e.g. ``[brokers, zookeeper]``."""
    for line in reversed(output.strip().splitlines()):
        match = _ZNODE_LIST.match(line.strip())
        if match:
            inner = match.group(1).strip()
            if not inner:
                return []
            return [child.strip() for child in inner.split(",")]
    return None


def parse_znode_data(output: str) -> str:
    """Data printed by ``get``: the last line of output."""
    return _last_line(output)


def _last_line(output: str) -> str:
    lines = [line for line in output.strip().splitlines() if line.strip()]
    return lines[-1].strip() if lines else ""
