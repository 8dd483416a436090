"""Elasticsearch REST invoker."""

from __future__ import annotations

import json as jsonlib
from typing import Any

import httpx

from local_backend.core.config import Settings
from local_backend.services.http import http_request, tls_verify
from local_backend.shell.command import CommandResult


def elasticsearch_client(
    settings: Settings,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """HTTP client authenticated as the elastic superuser."""
    return httpx.Client(
        base_url=settings.elasticsearch_url,
        auth=("elastic", settings.bootstrap_password),
        verify=tls_verify(settings, settings.elasticsearch_url),
        timeout=settings.http_timeout,
        transport=transport,
    )


def invoke_elasticsearch_request(
    settings: Settings,
    method: str,
    path: str,
    json: Any = None,
    client: httpx.Client | None = None,
    **kwargs: Any,
) -> CommandResult:
    """
    Send one request to Elasticsearch.

    A fresh client is used if none is given. Extra keyword arguments
    (``content``, ``headers``, ``params``, ``auth``) go to httpx as is.
    """
    if json is not None:
        kwargs["json"] = json

    if client is not None:
        return http_request(client, method, path, **kwargs)

    with elasticsearch_client(settings) as owned:
        return http_request(owned, method, path, **kwargs)


def bulk_body(index: str, documents: list[dict[str, Any]]) -> str:
    """NDJSON body for the _bulk API."""
    lines = []
    for doc in documents:
        lines.append(jsonlib.dumps({"index": {"_index": index}}))
        lines.append(jsonlib.dumps(doc))
    return "\n".join(lines) + "\n"
