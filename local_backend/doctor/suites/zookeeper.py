"""Zookeeper checks through zookeeper-shell."""

from __future__ import annotations

from local_backend.core.exceptions import expect
from local_backend.doctor.results import Category
from local_backend.doctor.suite import Check, ServiceSuite
from local_backend.services.zookeeper import (
    invoke_zookeeper_command,
    parse_znode_data,
    parse_znode_list,
)


class ZookeeperSuite(ServiceSuite):
    service = "zookeeper"

    @property
    def znode(self) -> str:
        return f"/{self.artifact_name}"

    def checks(self) -> list[Check]:
        return [
            ("Shell connects", Category.CONNECTIVITY, self.check_connect),
            ("Kafka broker registered", Category.CLUSTER, self.check_brokers),
            ("Create znode", Category.CRUD, self.check_create),
            ("Read znode", Category.CRUD, self.check_read),
        ]

    def cleanup_checks(self) -> list[Check]:
        return [("Delete znode", Category.CLEANUP, self.check_delete)]

    def check_connect(self):
        result = self.require(invoke_zookeeper_command(self.settings, "ls", "/"), "ls /")
        children = parse_znode_list(result.output)
        expect(children is not None, "could not parse ls / output")
        expect("zookeeper" in children, f"root znodes {children} lack 'zookeeper'")
        return {"children": children}

    def check_brokers(self):
        result = self.require(
            invoke_zookeeper_command(self.settings, "ls", "/brokers/ids"), "ls /brokers/ids"
        )
        ids = parse_znode_list(result.output) or []
        expect(ids, "no Kafka brokers registered")
        return {"broker_ids": ids}

    def check_create(self):
        self.require(
            invoke_zookeeper_command(self.settings, "create", self.znode, self.run_id),
            f"create {self.znode}",
        )

    def check_read(self):
        result = self.require(
            invoke_zookeeper_command(self.settings, "get", self.znode), f"get {self.znode}"
        )
        data = parse_znode_data(result.output)
        expect(data == self.run_id, f"znode holds {data!r}, expected {self.run_id!r}")

    def check_delete(self):
        self.require(
            invoke_zookeeper_command(self.settings, "delete", self.znode),
            f"delete {self.znode}",
        )
