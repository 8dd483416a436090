"""SQL Server invoker: sqlcmd inside the SQL Server container."""

from __future__ import annotations

import re

from local_backend.core.config import Settings
from local_backend.core.logging import get_logger
from local_backend.shell.command import CommandResult, docker_exec

logger = get_logger("services.sqlserver")

# mssql-tools18 ships with SQL Server 2022 images; older images use mssql-tools.
# Only the 18.x client understands -C (trust server certificate).
SQLCMD_CANDIDATES = (
    ("/opt/mssql-tools18/bin/sqlcmd", True),
    ("/opt/mssql-tools/bin/sqlcmd", False),
)

_ROWS_AFFECTED = re.compile(r"^\(\d+ rows? affected\)$")


def invoke_sqlserver_command(
    settings: Settings,
    query: str,
    database: str = "master",
    timeout: float | None = None,
) -> CommandResult:
    """Run a T-SQL batch as sa; rows come back pipe-separated without headers."""
    result = CommandResult(success=False, error="sqlcmd not found in container")
    for path, trust_flag in SQLCMD_CANDIDATES:
        args = [
            path,
            "-S", "localhost",
            "-U", "sa",
            "-P", settings.sqlserver_sa_password,
            "-d", database,
            "-b",
            "-h", "-1",
            "-W",
            "-s", "|",
            "-Q", f"SET NOCOUNT ON; {query}",
        ]
        if trust_flag:
            args.insert(1, "-C")

        result = docker_exec(
            settings.sqlserver_container,
            args,
            timeout=timeout or settings.command_timeout,
        )
        if not _binary_missing(result):
            return result
        logger.debug(f"{path} not present in {settings.sqlserver_container}")
    return result


def parse_sqlcmd_rows(output: str) -> list[tuple[str, ...]]:
    """Split sqlcmd output into row tuples, dropping blanks and row counts."""
    rows = []
    for line in output.splitlines():
        line = line.strip()
        if not line or _ROWS_AFFECTED.match(line):
            continue
        rows.append(tuple(value.strip() for value in line.split("|")))
    return rows


def sqlserver_scalar(result: CommandResult) -> str | None:
    rows = parse_sqlcmd_rows(result.output)
    if not rows:
        return None
    return rows[0][0]


def _binary_missing(result: CommandResult) -> bool:
    if result.success:
        return False
    return result.exit_code in (126, 127) or result.contains("no such file or directory")
