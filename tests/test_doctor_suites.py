"""Tests for the doctor suites: check recording and per-service behavior."""

from __future__ import annotations

import base64
import json

import httpx
import pytest

from local_backend.core.exceptions import expect
from local_backend.doctor.results import Category, CheckStatus
from local_backend.doctor.suite import ServiceSuite
from local_backend.doctor.suites import (
    SUITES,
    ElasticsearchSuite,
    KafkaSuite,
    KibanaSuite,
    MongoDBSuite,
    SqlServerSuite,
    ZookeeperSuite,
)
from local_backend.doctor.suites import elasticsearch as es_suite
from local_backend.doctor.suites import kibana as kibana_suite


class DummySuite(ServiceSuite):
    service = "dummy"

    def __init__(self, settings, skip_cleanup=False, checks=None, cleanup=None):
        super().__init__(settings, skip_cleanup)
        self._checks = checks or []
        self._cleanup = cleanup or []
        self.torn_down = False

    def checks(self):
        return self._checks

    def cleanup_checks(self):
        return self._cleanup

    def teardown(self):
        self.torn_down = True


def _raise(message):
    def check():
        raise RuntimeError(message)

    return check


class TestServiceSuite:
    def test_records_success_details_and_failures(self, settings):
        suite = DummySuite(
            settings,
            checks=[
                ("ok", Category.CRUD, lambda: {"n": 1}),
                ("bad", Category.CRUD, lambda: expect(False, "value mismatch")),
            ],
        )

        report = suite.run()

        assert [r.success for r in report.results] == [True, False]
        assert report.results[0].details == {"n": 1}
        assert report.results[1].error == "value mismatch"
        assert report.status == CheckStatus.WARNING
        assert suite.torn_down is True
        assert report.finished_at is not None

    def test_connectivity_failure_blocks_later_checks(self, settings):
        called = []
        suite = DummySuite(
            settings,
            checks=[
                ("connect", Category.CONNECTIVITY, _raise("refused")),
                ("crud", Category.CRUD, lambda: called.append("crud")),
            ],
            cleanup=[("cleanup", Category.CLEANUP, lambda: called.append("cleanup"))],
        )

        report = suite.run()

        assert called == []
        assert [r.error for r in report.results] == [
            "refused",
            "Not run: connect failed",
            "Not run: connect failed",
        ]
        assert report.status == CheckStatus.FAILURE

    def test_skip_cleanup(self, settings):
        called = []
        suite = DummySuite(
            settings,
            skip_cleanup=True,
            checks=[("ok", Category.CRUD, lambda: None)],
            cleanup=[("cleanup", Category.CLEANUP, lambda: called.append("cleanup"))],
        )

        report = suite.run()

        assert called == []
        assert report.total == 1

    def test_exception_without_message_uses_type_name(self, settings):
        def check():
            raise KeyError

        suite = DummySuite(settings, checks=[("k", Category.CRUD, check)])

        assert suite.run().results[0].error == "KeyError"

    def test_artifact_names_are_unique_per_run(self, settings):
        a, b = DummySuite(settings), DummySuite(settings)
        assert a.artifact_name.startswith("doctor-test-")
        assert a.artifact_name != b.artifact_name

    def test_registry_covers_every_service(self):
        assert set(SUITES) == {
            "zookeeper", "kafka", "elasticsearch", "kibana", "mongodb", "sqlserver",
        }


# =============================================================================
# KAFKA
# =============================================================================


class TestKafkaSuite:
    @pytest.fixture
    def kafka_settings(self, settings):
        return settings.model_copy(update={"kafka_throughput_messages": 3})

    def test_all_checks_pass(self, kafka_settings, fake_subprocess):
        suite = KafkaSuite(kafka_settings)
        fake_subprocess.on("--describe", fake_subprocess.ok("Topic: t\tPartitionCount: 3\n"))
        fake_subprocess.on("--max-messages 1 --", fake_subprocess.ok(f"{suite.payload}\n"))
        fake_subprocess.on(
            "--max-messages 4 --",
            fake_subprocess.ok("\n".join(f"m{i}" for i in range(4)) + "\n"),
        )
        fake_subprocess.on("kafka-consumer-groups", fake_subprocess.ok(f"{suite.group}\n"))

        report = suite.run()

        assert [r.error for r in report.results if not r.success] == []
        assert report.status == CheckStatus.SUCCESS
        assert report.results[-1].category == "Cleanup"
        assert fake_subprocess.commands(f"--delete --topic {suite.topic}")

    def test_broker_down_fails_everything(self, kafka_settings, fake_subprocess):
        fake_subprocess.on(
            "kafka-broker-api-versions", fake_subprocess.fail("Connection refused")
        )

        report = KafkaSuite(kafka_settings).run()

        assert report.passed == 0
        assert report.status == CheckStatus.FAILURE
        assert len(fake_subprocess.calls) == 1

    def test_wrong_partition_count_is_warning(self, kafka_settings, fake_subprocess):
        suite = KafkaSuite(kafka_settings)
        fake_subprocess.on("--describe", fake_subprocess.ok("PartitionCount: 1\n"))
        fake_subprocess.on("--max-messages 1 --", fake_subprocess.ok(f"{suite.payload}\n"))
        fake_subprocess.on("--max-messages 4 --", fake_subprocess.ok("a\nb\nc\nd\n"))
        fake_subprocess.on("kafka-consumer-groups", fake_subprocess.ok(f"{suite.group}\n"))

        report = suite.run()

        failed = [r for r in report.results if not r.success]
        assert [r.name for r in failed] == ["Describe topic"]
        assert "expected 3" in failed[0].error
        assert report.status == CheckStatus.WARNING


# =============================================================================
# ZOOKEEPER
# =============================================================================


class TestZookeeperSuite:
    def test_all_checks_pass(self, settings, fake_subprocess):
        suite = ZookeeperSuite(settings)
        fake_subprocess.on("ls /brokers/ids", fake_subprocess.ok("[1]\n"))
        fake_subprocess.on("ls /", fake_subprocess.ok("[brokers, zookeeper]\n"))
        fake_subprocess.on(f"get {suite.znode}", fake_subprocess.ok(f"{suite.run_id}\n"))

        report = suite.run()

        assert report.status == CheckStatus.SUCCESS
        assert report.total == 5
        assert fake_subprocess.commands(f"create {suite.znode} {suite.run_id}")
        assert fake_subprocess.commands(f"delete {suite.znode}")

    def test_no_brokers_registered(self, settings, fake_subprocess):
        suite = ZookeeperSuite(settings)
        fake_subprocess.on("ls /brokers/ids", fake_subprocess.ok("[]\n"))
        fake_subprocess.on("ls /", fake_subprocess.ok("[zookeeper]\n"))
        fake_subprocess.on("get ", fake_subprocess.ok(f"{suite.run_id}\n"))

        report = suite.run()

        failed = [r.name for r in report.results if not r.success]
        assert failed == ["Kafka broker registered"]


# =============================================================================
# MONGODB
# =============================================================================


class TestMongoDBSuite:
    def test_all_checks_pass(self, settings, fake_subprocess):
        suite = MongoDBSuite(settings)
        replies = {
            "ping": {"ok": 1},
            "connectionStatus": {"authInfo": {"authenticatedUsers": [{"user": "admin", "db": "admin"}]}},
            "db.version()": "7.0.5",
            "insertOne": {"acknowledged": True, "insertedId": "doctor-1"},
            "findOne": {"_id": "doctor-1", "run": suite.run_id},
            "updateOne": {"acknowledged": True, "modifiedCount": 1},
            "createIndex": "run_1",
            "aggregate": [{"n": 1}],
            "deleteOne": {"acknowledged": True, "deletedCount": 1},
            "dropDatabase": {"ok": 1, "dropped": suite.database},
        }
        for needle, reply in replies.items():
            fake_subprocess.on(needle, fake_subprocess.ok(json.dumps(reply) + "\n"))

        report = suite.run()

        assert [r.error for r in report.results if not r.success] == []
        assert report.total == 10
        uris = {c["args"][4] for c in fake_subprocess.calls}
        assert f"mongodb://localhost:27017/{suite.database}" in uris

    def test_wrong_user(self, settings, fake_subprocess):
        fake_subprocess.on("ping", fake_subprocess.ok('{"ok":1}\n'))
        fake_subprocess.on(
            "connectionStatus",
            fake_subprocess.ok('{"authInfo":{"authenticatedUsers":[]}}\n'),
        )

        report = MongoDBSuite(settings).run()

        auth = report.results[1]
        assert auth.success is False
        assert "do not include admin" in auth.error


# =============================================================================
# SQL SERVER
# =============================================================================


class TestSqlServerSuite:
    def _happy(self, fake):
        fake.on("@@VERSION", fake.ok("Microsoft SQL Server 2022 (RTM) - 16.0\n"))
        fake.on("SUSER_SNAME", fake.ok("sa\n"))
        fake.on("ORDER BY id", fake.ok("1|alpha|10\n2|beta|20\n"))
        fake.on("SET value = 11", fake.ok("11\n"))
        fake.on("COUNT(*)", fake.ok("1\n"))

    def test_all_checks_pass(self, settings, fake_subprocess):
        self._happy(fake_subprocess)

        report = SqlServerSuite(settings).run()

        assert [r.error for r in report.results if not r.success] == []
        assert report.status == CheckStatus.SUCCESS
        drop = fake_subprocess.calls[-1]["args"][-1]
        assert "SET SINGLE_USER WITH ROLLBACK IMMEDIATE" in drop

    def test_existing_database_is_benign(self, settings, fake_subprocess):
        fake_subprocess.on(
            "CREATE DATABASE",
            fake_subprocess.fail("Database 'doctor_test_x' already exists."),
        )
        self._happy(fake_subprocess)

        report = SqlServerSuite(settings).run()

        create = next(r for r in report.results if r.name == "Create database")
        assert create.success is True
        assert create.details == {"benign": "already exists"}


# =============================================================================
# ELASTICSEARCH
# =============================================================================


def _basic(user: str, password: str) -> str:
    return "Basic " + base64.b64encode(f"{user}:{password}".encode()).decode()


class TestElasticsearchSuite:
    def _handler(self, settings, cluster_status="green"):
        good = _basic("elastic", settings.bootstrap_password)

        def handler(request: httpx.Request) -> httpx.Response:
            if request.headers.get("authorization") != good:
                return httpx.Response(401, json={"error": "unauthorized"})
            path, method = request.url.path, request.method
            if path == "/":
                return httpx.Response(200, json={"version": {"number": "8.13.0"}})
            if path == "/_security/_authenticate":
                return httpx.Response(200, json={"username": "elastic"})
            if path == "/_cluster/health":
                return httpx.Response(200, json={"status": cluster_status})
            if path == "/_cat/nodes":
                return httpx.Response(200, json=[{"name": "es01"}])
            if path.endswith("/_search"):
                return httpx.Response(200, json={"hits": {"total": {"value": 1}}})
            if path == "/_bulk":
                return httpx.Response(200, json={"errors": False, "items": []})
            if method in ("PUT", "DELETE"):
                return httpx.Response(200, json={"acknowledged": True, "result": "created"})
            return httpx.Response(404)

        return handler

    def _with_ca(self, settings):
        ca = settings.resolve(settings.ca_cert_path)
        ca.parent.mkdir(parents=True, exist_ok=True)
        ca.write_text("-----BEGIN CERTIFICATE-----\n")

    def test_all_checks_pass(self, settings):
        self._with_ca(settings)
        transport = httpx.MockTransport(self._handler(settings))

        report = ElasticsearchSuite(settings, transport=transport).run()

        assert [r.error for r in report.results if not r.success] == []
        assert report.total == 11
        assert report.status == CheckStatus.SUCCESS

    def test_requests_go_through_invoker(self, settings, monkeypatch):
        paths = []
        original = es_suite.invoke_elasticsearch_request

        def recording(settings, method, path, **kwargs):
            paths.append(path)
            return original(settings, method, path, **kwargs)

        monkeypatch.setattr(es_suite, "invoke_elasticsearch_request", recording)
        transport = httpx.MockTransport(self._handler(settings))

        ElasticsearchSuite(settings, transport=transport).run()

        assert "/_cluster/health" in paths
        assert "/_bulk" in paths

    def test_red_cluster_and_missing_ca(self, settings):
        transport = httpx.MockTransport(self._handler(settings, cluster_status="red"))

        report = ElasticsearchSuite(settings, transport=transport).run()

        failed = {r.name: r.error for r in report.results if not r.success}
        assert set(failed) == {"TLS with local CA", "Cluster health"}
        assert "'red'" in failed["Cluster health"]
        assert report.status == CheckStatus.WARNING

    def test_unreachable(self, settings):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        report = ElasticsearchSuite(settings, transport=httpx.MockTransport(handler)).run()

        assert report.passed == 0
        assert report.status == CheckStatus.FAILURE


# =============================================================================
# KIBANA
# =============================================================================


class TestKibanaSuite:
    def _handler(self, settings, overall="available"):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            if request.headers.get("authorization") is None:
                return httpx.Response(401)
            path = request.url.path
            if path == "/api/status":
                return httpx.Response(200, json={
                    "version": {"number": "8.13.0"},
                    "status": {
                        "overall": {"level": overall},
                        "core": {"elasticsearch": {"level": "available"}},
                    },
                })
            if path == "/api/security/role":
                return httpx.Response(200, json=[])
            if path == "/api/spaces/space":
                return httpx.Response(200, json=[{"id": "default"}])
            if path == "/api/saved_objects/_find":
                return httpx.Response(200, json={"total": 0, "saved_objects": []})
            return httpx.Response(404)

        return handler

    def test_all_checks_pass_read_only(self, settings):
        report = KibanaSuite(settings, transport=httpx.MockTransport(self._handler(settings))).run()

        assert [r.error for r in report.results if not r.success] == []
        assert report.total == 7

    def test_requests_go_through_invoker(self, settings, monkeypatch):
        calls = []
        original = kibana_suite.invoke_kibana_request

        def recording(settings, method, path, **kwargs):
            calls.append((method, path, kwargs.get("authenticated", True)))
            return original(settings, method, path, **kwargs)

        monkeypatch.setattr(kibana_suite, "invoke_kibana_request", recording)

        KibanaSuite(settings, transport=httpx.MockTransport(self._handler(settings))).run()

        assert ("GET", "/api/status", True) in calls
        assert ("GET", "/api/spaces/space", False) in calls

    def test_degraded_is_warning(self, settings):
        transport = httpx.MockTransport(self._handler(settings, overall="degraded"))

        report = KibanaSuite(settings, transport=transport).run()

        assert [r.name for r in report.results if not r.success] == ["Overall status available"]
        assert report.status == CheckStatus.WARNING
