"""Elasticsearch health and functional checks."""

from __future__ import annotations

import time

import httpx

from local_backend.core.config import Settings
from local_backend.core.exceptions import expect
from local_backend.doctor.results import Category
from local_backend.doctor.suite import Check, ServiceSuite
from local_backend.services.elasticsearch import (
    bulk_body,
    elasticsearch_client,
    invoke_elasticsearch_request,
)
from local_backend.services.http import tls_verify


class ElasticsearchSuite(ServiceSuite):
    service = "elasticsearch"

    def __init__(
        self,
        settings: Settings,
        skip_cleanup: bool = False,
        transport: httpx.BaseTransport | None = None,
    ):
        super().__init__(settings, skip_cleanup)
        self.transport = transport
        self.client: httpx.Client | None = None

    @property
    def index(self) -> str:
        return self.artifact_name

    def setup(self) -> None:
        self.client = elasticsearch_client(self.settings, transport=self.transport)

    def teardown(self) -> None:
        if self.client is not None:
            self.client.close()

    def checks(self) -> list[Check]:
        return [
            ("Cluster reachable", Category.CONNECTIVITY, self.check_reachable),
            ("Authenticate as elastic", Category.AUTHENTICATION, self.check_authenticate),
            ("Reject bad credentials", Category.SECURITY, self.check_rejects_bad_credentials),
            ("TLS with local CA", Category.SECURITY, self.check_tls),
            ("Cluster health", Category.CLUSTER, self.check_cluster_health),
            ("Node info", Category.CLUSTER, self.check_nodes),
            ("Create index", Category.CRUD, self.check_create_index),
            ("Index document", Category.CRUD, self.check_index_document),
            ("Search document", Category.CRUD, self.check_search_document),
            ("Bulk index performance", Category.PERFORMANCE, self.check_bulk_performance),
        ]

    def cleanup_checks(self) -> list[Check]:
        return [("Delete index", Category.CLEANUP, self.check_delete_index)]

    def _request(self, method: str, path: str, **kwargs):
        return invoke_elasticsearch_request(
            self.settings, method, path, client=self.client, **kwargs
        )

    def check_reachable(self):
        result = self.require(self._request("GET", "/"), "GET /")
        body = result.details or {}
        return {"version": body.get("version", {}).get("number")}

    def check_authenticate(self):
        result = self.require(
            self._request("GET", "/_security/_authenticate"), "authenticate"
        )
        username = (result.details or {}).get("username")
        expect(username == "elastic", f"authenticated as {username!r}, expected 'elastic'")
        return {"username": username}

    def check_rejects_bad_credentials(self):
        result = self._request("GET", "/", auth=("elastic", "doctor-wrong-password"))
        expect(
            result.exit_code == 401,
            f"expected HTTP 401 for bad credentials, got {result.exit_code or result.error}",
        )

    def check_tls(self):
        expect(
            self.settings.elasticsearch_url.startswith("https://"),
            f"{self.settings.elasticsearch_url} is not served over https",
        )
        verify = tls_verify(self.settings, self.settings.elasticsearch_url)
        expect(
            isinstance(verify, str),
            f"CA certificate {self.settings.resolve(self.settings.ca_cert_path)} not found",
        )
        return {"ca": verify}

    def check_cluster_health(self):
        result = self.require(self._request("GET", "/_cluster/health"), "cluster health")
        status = (result.details or {}).get("status")
        expect(status in ("green", "yellow"), f"cluster status is {status!r}")
        return {"status": status}

    def check_nodes(self):
        result = self.require(
            self._request("GET", "/_cat/nodes", params={"format": "json"}), "cat nodes"
        )
        nodes = result.details or []
        expect(len(nodes) > 0, "no nodes reported")
        return {"nodes": len(nodes)}

    def check_create_index(self):
        self.require(
            self._request(
                "PUT",
                f"/{self.index}",
                json={"settings": {"number_of_shards": 1, "number_of_replicas": 0}},
            ),
            f"create index {self.index}",
        )

    def check_index_document(self):
        result = self.require(
            self._request(
                "PUT",
                f"/{self.index}/_doc/1",
                params={"refresh": "true"},
                json={"service": "elasticsearch", "message": f"doctor {self.run_id}"},
            ),
            "index document",
        )
        return {"result": (result.details or {}).get("result")}

    def check_search_document(self):
        result = self.require(
            self._request(
                "POST",
                f"/{self.index}/_search",
                json={"query": {"match": {"message": self.run_id}}},
            ),
            "search",
        )
        hits = (result.details or {}).get("hits", {}).get("total", {})
        count = hits.get("value", 0) if isinstance(hits, dict) else hits
        expect(count >= 1, f"search returned {count} hits")
        return {"hits": count}

    def check_bulk_performance(self):
        count = self.settings.es_bulk_documents
        documents = [
            {"service": "elasticsearch", "message": f"bulk {self.run_id}", "seq": i}
            for i in range(count)
        ]
        start = time.perf_counter()
        result = self.require(
            self._request(
                "POST",
                "/_bulk",
                params={"refresh": "true"},
                content=bulk_body(self.index, documents),
                headers={"Content-Type": "application/x-ndjson"},
            ),
            "bulk index",
        )
        elapsed = time.perf_counter() - start
        expect(not (result.details or {}).get("errors"), "bulk response reported errors")
        threshold = self.settings.es_bulk_threshold_seconds
        expect(
            elapsed < threshold,
            f"bulk indexing {count} documents took {elapsed:.2f}s (limit {threshold}s)",
        )
        return {"documents": count, "seconds": round(elapsed, 3)}

    def check_delete_index(self):
        self.require(self._request("DELETE", f"/{self.index}"), f"delete index {self.index}")
