"""Kibana health checks. Read-only: nothing is created in Kibana."""

from __future__ import annotations

import httpx

from local_backend.core.config import Settings
from local_backend.core.exceptions import expect
from local_backend.doctor.results import Category
from local_backend.doctor.suite import Check, ServiceSuite
from local_backend.services.kibana import (
    elasticsearch_level,
    invoke_kibana_request,
    kibana_client,
    overall_level,
)

HEALTHY_LEVELS = ("available", "green")


class KibanaSuite(ServiceSuite):
    service = "kibana"

    def __init__(
        self,
        settings: Settings,
        skip_cleanup: bool = False,
        transport: httpx.BaseTransport | None = None,
    ):
        super().__init__(settings, skip_cleanup)
        self.transport = transport
        self.client: httpx.Client | None = None
        self._status: dict | None = None

    def setup(self) -> None:
        self.client = kibana_client(self.settings, transport=self.transport)

    def teardown(self) -> None:
        if self.client is not None:
            self.client.close()

    def checks(self) -> list[Check]:
        return [
            ("Status API reachable", Category.CONNECTIVITY, self.check_status_api),
            ("Overall status available", Category.CLUSTER, self.check_overall_status),
            ("Elasticsearch connection", Category.CLUSTER, self.check_elasticsearch_link),
            ("Authenticate as elastic", Category.AUTHENTICATION, self.check_authenticate),
            ("Reject anonymous access", Category.SECURITY, self.check_rejects_anonymous),
            ("List spaces", Category.CRUD, self.check_spaces),
            ("Find saved objects", Category.CRUD, self.check_saved_objects),
        ]

    def _request(self, method: str, path: str, **kwargs):
        return invoke_kibana_request(self.settings, method, path, client=self.client, **kwargs)

    def check_status_api(self):
        result = self.require(self._request("GET", "/api/status"), "GET /api/status")
        self._status = result.details if isinstance(result.details, dict) else {}
        return {"version": self._status.get("version", {}).get("number")}

    def check_overall_status(self):
        level = overall_level(self._status)
        expect(level in HEALTHY_LEVELS, f"overall status is {level!r}")
        return {"level": level}

    def check_elasticsearch_link(self):
        level = elasticsearch_level(self._status)
        expect(level is not None, "status does not report the elasticsearch service")
        expect(level in HEALTHY_LEVELS, f"elasticsearch service level is {level!r}")
        return {"level": level}

    def check_authenticate(self):
        self.require(
            self._request("GET", "/api/security/role"), "list roles as elastic"
        )

    def check_rejects_anonymous(self):
        result = self._request("GET", "/api/spaces/space", authenticated=False)
        expect(
            result.exit_code == 401,
            f"expected HTTP 401 without credentials, got {result.exit_code or result.error}",
        )

    def check_spaces(self):
        result = self.require(
            self._request("GET", "/api/spaces/space"), "list spaces"
        )
        spaces = [s.get("id") for s in (result.details or []) if isinstance(s, dict)]
        expect("default" in spaces, f"default space missing (found {spaces})")
        return {"spaces": spaces}

    def check_saved_objects(self):
        result = self.require(
            self._request(
                "GET",
                "/api/saved_objects/_find",
                params={"type": "index-pattern", "per_page": 1},
            ),
            "find saved objects",
        )
        body = result.details or {}
        expect("total" in body, "saved objects response has no total")
        return {"total": body["total"]}
