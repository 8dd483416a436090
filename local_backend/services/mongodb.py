"""MongoDB invoker: mongosh inside the MongoDB container."""

from __future__ import annotations

import json
from typing import Any

from local_backend.core.config import Settings
from local_backend.shell.command import CommandResult, docker_exec


def invoke_mongo_command(
    settings: Settings,
    script: str,
    database: str = "admin",
    timeout: float | None = None,
) -> CommandResult:
    """Evaluate a mongosh script as the root user against ``database``."""
    args = [
        "mongosh",
        f"mongodb://localhost:27017/{database}",
        "--quiet",
        "--username", settings.mongo_root_username,
        "--password", settings.mongo_root_password,
        "--authenticationDatabase", "admin",
        "--eval", script,
    ]
    return docker_exec(
        settings.mongodb_container,
        args,
        timeout=timeout or settings.command_timeout,
    )


def mongo_json(
    settings: Settings,
    expression: str,
    database: str = "admin",
    timeout: float | None = None,
) -> CommandResult:
    """
    Evaluate a JavaScript expression and decode its value as JSON.

    The expression is printed through ``EJSON.stringify`` in relaxed mode so
    ObjectIds and dates come back as plain JSON. The decoded value lands in
    ``details``.
    """
    script = f"print(EJSON.stringify({expression}, {{relaxed: true}}))"
    result = invoke_mongo_command(settings, script, database=database, timeout=timeout)
    if not result.success:
        return result

    value = parse_json_output(result.output)
    if value is _MISSING:
        result.success = False
        result.error = f"Could not parse mongosh output: {result.output.strip()[:200]}"
        return result

    result.details = value
    return result


_MISSING = object()


def parse_json_output(output: str) -> Any:
    """Decode the last JSON line in mongosh output (warnings may precede it)."""
    for line in reversed(output.strip().splitlines()):
        line = line.strip()
        if not line:
            continue
        try:
            return json.loads(line)
        except ValueError:
            continue
    return _MISSING
