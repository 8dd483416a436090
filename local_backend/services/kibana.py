"""Kibana REST invoker."""

from __future__ import annotations

from typing import Any

import httpx

from local_backend.core.config import Settings
from local_backend.services.http import http_request, tls_verify
from local_backend.shell.command import CommandResult


def kibana_client(
    settings: Settings,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """HTTP client for the Kibana API (kbn-xsrf header set)."""
    return httpx.Client(
        base_url=settings.kibana_url,
        auth=("elastic", settings.bootstrap_password),
        headers={"kbn-xsrf": "true"},
        verify=tls_verify(settings, settings.kibana_url),
        timeout=settings.http_timeout,
        transport=transport,
    )


def invoke_kibana_request(
    settings: Settings,
    method: str,
    path: str,
    json: Any = None,
    client: httpx.Client | None = None,
    authenticated: bool = True,
    **kwargs: Any,
) -> CommandResult:
    """Send one request to Kibana; unauthenticated requests drop the basic auth."""
    if json is not None:
        kwargs["json"] = json
    if not authenticated:
        kwargs["auth"] = None

    if client is not None:
        return http_request(client, method, path, **kwargs)

    with kibana_client(settings) as owned:
        return http_request(owned, method, path, **kwargs)


def overall_level(status_body: dict[str, Any] | None) -> str | None:
    """
    Extract the overall status level from /api/status.

    Kibana 8 reports ``status.overall.level`` ("available", "degraded", ...);
    7.x reported ``status.overall.state`` ("green", ...).
    """
    if not isinstance(status_body, dict):
        return None
    overall = status_body.get("status", {}).get("overall", {})
    return overall.get("level") or overall.get("state")


def elasticsearch_level(status_body: dict[str, Any] | None) -> str | None:
    """Level of Kibana's elasticsearch core service, if reported."""
    if not isinstance(status_body, dict):
        return None
    core = status_body.get("status", {}).get("core", {})
    es = core.get("elasticsearch", {})
    return es.get("level")
