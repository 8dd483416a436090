"""Shared httpx plumbing for the Elasticsearch and Kibana invokers."""

from __future__ import annotations

import time
from typing import Any

import httpx

from local_backend.core.config import Settings
from local_backend.core.logging import get_logger
from local_backend.shell.command import CommandResult

logger = get_logger("services.http")

_warned_insecure: set[str] = set()


def tls_verify(settings: Settings, url: str) -> str | bool:
    """CA bundle path for https URLs, or False when the local CA is missing."""
    if not url.startswith("https://"):
        return True
    ca_path = settings.resolve(settings.ca_cert_path)
    if ca_path.exists():
        return str(ca_path)
    if url not in _warned_insecure:
        _warned_insecure.add(url)
        logger.warning(
            f"CA certificate {ca_path} not found, TLS verification disabled for {url}"
        )
    return False


def http_request(
    client: httpx.Client,
    method: str,
    path: str,
    **kwargs: Any,
) -> CommandResult:
    """
    Perform one request and reduce it to a CommandResult.

    The response body is kept in ``output`` and the decoded JSON (when the
    body is JSON) in ``details``. Status codes >= 400 and transport errors
    produce ``success=False``; nothing is raised.
    """
    start = time.perf_counter()
    try:
        response = client.request(method, path, **kwargs)
    except httpx.TimeoutException as e:
        return CommandResult(
            success=False,
            error=f"{method} {path} timed out: {e}",
            duration=time.perf_counter() - start,
            timed_out=True,
        )
    except httpx.RequestError as e:
        return CommandResult(
            success=False,
            error=f"{method} {path} failed: {e}",
            duration=time.perf_counter() - start,
        )

    duration = time.perf_counter() - start
    details = None
    if response.headers.get("content-type", "").startswith("application/json"):
        try:
            details = response.json()
        except ValueError:
            details = None

    ok = response.status_code < 400
    return CommandResult(
        success=ok,
        output=response.text,
        error="" if ok else f"HTTP {response.status_code}: {response.text[:300]}",
        exit_code=response.status_code,
        duration=duration,
        details=details,
    )
