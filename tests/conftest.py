"""Pytest configuration and fixtures."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Iterator

import pytest

from local_backend.core.config import Settings, get_settings
from local_backend.services import http as http_module


@pytest.fixture(autouse=True)
def _reset_caches() -> Iterator[None]:
    """Settings and the one-shot TLS warning are process-wide."""
    get_settings.cache_clear()
    http_module._warned_insecure.clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted at a temporary project directory, no .env lookup."""
    return Settings(
        _env_file=None,
        project_dir=tmp_path,
        command_timeout=5.0,
        kafka_delete_delay=0.0,
        kafka_consume_timeout_ms=1000,
        bootstrap_password="test-password",
        sqlserver_sa_password="Sql!Passw0rd",
        mongo_root_username="admin",
        mongo_root_password="mongo-password",
    )


class FakeSubprocess:
    """
    Stand-in for subprocess.run.

    Register responses with ``on(needle, ...)``: the first rule whose needle
    occurs in the space-joined command line answers. A rule with several
    responses hands them out in order and then repeats the last one.
    Unmatched commands succeed with empty output.
    """

    def __init__(self):
        self.calls: list[dict] = []
        self._rules: list[tuple[str, list]] = []

    def on(self, needle: str, *responses) -> "FakeSubprocess":
        self._rules.append((needle, list(responses)))
        return self

    @staticmethod
    def ok(stdout: str = "", stderr: str = "") -> tuple:
        return (0, stdout, stderr)

    @staticmethod
    def fail(stderr: str = "", returncode: int = 1, stdout: str = "") -> tuple:
        return (returncode, stdout, stderr)

    def commands(self, needle: str = "") -> list[list[str]]:
        return [c["args"] for c in self.calls if needle in " ".join(c["args"])]

    def __call__(self, args, **kwargs):
        args = list(args)
        self.calls.append({"args": args, **kwargs})
        line = " ".join(args)
        for needle, responses in self._rules:
            if needle in line:
                response = responses.pop(0) if len(responses) > 1 else responses[0]
                if isinstance(response, BaseException):
                    raise response
                returncode, stdout, stderr = response
                return subprocess.CompletedProcess(args, returncode, stdout, stderr)
        return subprocess.CompletedProcess(args, 0, "", "")


@pytest.fixture
def fake_subprocess(monkeypatch: pytest.MonkeyPatch) -> FakeSubprocess:
    fake = FakeSubprocess()
    monkeypatch.setattr("local_backend.shell.command.subprocess.run", fake)
    return fake
