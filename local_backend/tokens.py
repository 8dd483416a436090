"""
Kibana service token management.

Tokens are created for the ``elastic/kibana`` service account with the
``elasticsearch-service-tokens`` CLI inside the Elasticsearch container and
written to the shared directory, where Kibana's entrypoint picks them up.
"""

from __future__ import annotations

import re
import time
from pathlib import Path
from typing import Callable, Iterable

from local_backend.core.config import Settings
from local_backend.core.exceptions import TokenError
from local_backend.core.logging import get_logger
from local_backend.shell.command import CommandResult, docker_exec

logger = get_logger("tokens")

SERVICE_ACCOUNT = "elastic/kibana"
TOKEN_PREFIX = "kibana-token-"
TOKENS_BIN = "/usr/share/elasticsearch/bin/elasticsearch-service-tokens"
TOKEN_FILENAME = "kibana_service_token.txt"

_TOKEN_LINE = re.compile(r"SERVICE_TOKEN\s+\S+\s*=\s*(\S+)")
_TOKEN_NAME = re.compile(rf"{TOKEN_PREFIX}(\d+)")
_YML_TOKEN_LINE = re.compile(r"^(\s*)elasticsearch\.serviceAccountToken:.*$", re.MULTILINE)


def token_name(now: float | None = None) -> str:
    return f"{TOKEN_PREFIX}{int(now if now is not None else time.time())}"


def parse_token_output(output: str) -> str | None:
    """Extract the value from ``SERVICE_TOKEN <name> = <value>``."""
    for line in output.splitlines():
        match = _TOKEN_LINE.search(line)
        if match:
            return match.group(1)
    return None


def parse_token_names(output: str) -> list[str]:
    """Token names from ``list`` output, e.g. ``elastic/kibana/kibana-token-1700000000``."""
    names = []
    for line in output.splitlines():
        match = _TOKEN_NAME.search(line)
        if match and match.group(0) not in names:
            names.append(match.group(0))
    return names


def stale_token_names(names: Iterable[str], now: float, max_age_days: int) -> list[str]:
    """Names whose embedded timestamp is older than ``max_age_days``."""
    cutoff = now - max_age_days * 24 * 3600
    stale = []
    for name in names:
        match = _TOKEN_NAME.fullmatch(name.strip())
        if match and int(match.group(1)) < cutoff:
            stale.append(match.group(0))
    return stale


def inject_kibana_token(kibana_yml: Path, token: str) -> bool:
    """Rewrite the serviceAccountToken line in kibana.yml. False for an empty token."""
    token = token.strip()
    if not token:
        logger.warning("Service token is empty, kibana.yml left unchanged")
        return False

    text = kibana_yml.read_text(encoding="utf-8")
    replacement = f'elasticsearch.serviceAccountToken: "{token}"'
    new_text, count = _YML_TOKEN_LINE.subn(lambda m: m.group(1) + replacement, text)
    if count == 0:
        new_text = text.rstrip("\n") + "\n" + replacement + "\n"
    kibana_yml.write_text(new_text, encoding="utf-8")
    logger.info(f"Populated elasticsearch.serviceAccountToken in {kibana_yml}")
    return True


class ServiceTokenManager:
    """Creates, stores and prunes Kibana service tokens."""

    def __init__(
        self,
        settings: Settings,
        executor: Callable[..., CommandResult] = docker_exec,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self._exec = executor
        self._clock = clock

    @property
    def token_file(self) -> Path:
        return self.settings.resolve(self.settings.shared_dir) / TOKEN_FILENAME

    def _tokens(self, *args: str) -> CommandResult:
        return self._exec(
            self.settings.elasticsearch_container,
            [TOKENS_BIN, *args],
            timeout=self.settings.command_timeout,
        )

    def list_tokens(self) -> list[str]:
        result = self._tokens("list", SERVICE_ACCOUNT)
        if not result.success:
            logger.warning(f"Could not list service tokens: {result.error}")
            return []
        return parse_token_names(result.output)

    def cleanup_old_tokens(self) -> list[str]:
        stale = stale_token_names(
            self.list_tokens(), self._clock(), self.settings.max_token_age_days
        )
        removed = []
        for name in stale:
            result = self._tokens("delete", SERVICE_ACCOUNT, name)
            if result.success:
                logger.info(f"Removed old token {name}")
                removed.append(name)
            else:
                logger.warning(f"Could not remove token {name}: {result.error}")
        return removed

    def create_token(self) -> str:
        name = token_name(self._clock())
        logger.info(f"Creating service token for {SERVICE_ACCOUNT} with name {name}")
        result = self._tokens("create", SERVICE_ACCOUNT, name)
        if not result.success:
            raise TokenError(
                "Failed to create service token",
                details={"exit_code": result.exit_code, "error": result.error[:500]},
            )
        token = parse_token_output(result.output)
        if not token:
            raise TokenError("Service token missing from create output")
        return token

    def ensure_token(self, force: bool | None = None) -> str:
        """Return a usable token, reusing the shared file unless forced."""
        force = self.settings.force_new_token if force is None else force
        token_file = self.token_file

        if not force and token_file.is_file():
            existing = token_file.read_text(encoding="utf-8").strip()
            if existing:
                logger.info(f"Using existing token from {token_file}")
                return existing
            logger.info("Token file is empty, creating a new token")

        if self.settings.cleanup_old_tokens:
            self.cleanup_old_tokens()

        token = self.create_token()
        token_file.parent.mkdir(parents=True, exist_ok=True)
        token_file.write_text(token + "\n", encoding="utf-8")

        if not token_file.read_text(encoding="utf-8").strip():
            raise TokenError(f"Token file {token_file} is empty after writing")
        logger.info(f"New token saved to {token_file}")
        return token
