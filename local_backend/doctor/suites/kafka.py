"""Kafka broker and messaging checks through the bundled CLI tools."""

from __future__ import annotations

import time
import uuid

from local_backend.core.exceptions import expect
from local_backend.doctor.results import Category
from local_backend.doctor.suite import Check, ServiceSuite
from local_backend.services import kafka

PARTITIONS = 3


class KafkaSuite(ServiceSuite):
    service = "kafka"

    def __init__(self, settings, skip_cleanup: bool = False):
        super().__init__(settings, skip_cleanup)
        self.payload = f"doctor-{self.run_id}-{uuid.uuid4().hex[:8]}"

    @property
    def topic(self) -> str:
        return self.artifact_name

    @property
    def group(self) -> str:
        return f"doctor-group-{self.run_id}"

    def checks(self) -> list[Check]:
        return [
            ("Broker reachable", Category.CONNECTIVITY, self.check_broker),
            ("List topics", Category.MESSAGING, self.check_list_topics),
            ("Create topic", Category.MESSAGING, self.check_create_topic),
            ("Describe topic", Category.MESSAGING, self.check_describe_topic),
            ("Produce message", Category.MESSAGING, self.check_produce),
            ("Consume message", Category.MESSAGING, self.check_consume),
            ("List consumer groups", Category.MESSAGING, self.check_consumer_groups),
            ("Produce/consume throughput", Category.PERFORMANCE, self.check_throughput),
        ]

    def cleanup_checks(self) -> list[Check]:
        return [("Delete topic", Category.CLEANUP, self.check_delete_topic)]

    def check_broker(self):
        self.require(kafka.broker_api_versions(self.settings), "broker API versions")

    def check_list_topics(self):
        result = self.require(kafka.list_topics(self.settings), "list topics")
        return {"topics": len(result.details or [])}

    def check_create_topic(self):
        result = self.require(
            kafka.create_topic(self.settings, self.topic, partitions=PARTITIONS),
            f"create topic {self.topic}",
        )
        return result.details

    def check_describe_topic(self):
        result = self.require(
            kafka.describe_topic(self.settings, self.topic), f"describe topic {self.topic}"
        )
        partitions = (result.details or {}).get("partitions")
        expect(partitions == PARTITIONS, f"topic has {partitions} partitions, expected {PARTITIONS}")
        return result.details

    def check_produce(self):
        self.require(
            kafka.produce_messages(self.settings, self.topic, [self.payload]),
            "produce message",
        )

    def check_consume(self):
        result = self.require(
            kafka.consume_messages(self.settings, self.topic, max_messages=1, group=self.group),
            "consume message",
        )
        messages = result.details or []
        expect(self.payload in messages, f"consumed {messages!r}, expected {self.payload!r}")

    def check_consumer_groups(self):
        result = self.require(kafka.list_consumer_groups(self.settings), "list consumer groups")
        groups = result.details or []
        expect(self.group in groups, f"consumer group {self.group} not listed")
        return {"groups": len(groups)}

    def check_throughput(self):
        count = self.settings.kafka_throughput_messages
        batch = [f"{self.payload}-{i}" for i in range(count)]

        start = time.perf_counter()
        self.require(kafka.produce_messages(self.settings, self.topic, batch), "produce batch")
        # The first payload is still on the topic, so expect count + 1
        result = self.require(
            kafka.consume_messages(self.settings, self.topic, max_messages=count + 1),
            "consume batch",
        )
        elapsed = time.perf_counter() - start

        consumed = len(result.details or [])
        expect(consumed >= count + 1, f"consumed {consumed} of {count + 1} messages")
        threshold = self.settings.kafka_throughput_threshold_seconds
        expect(
            elapsed < threshold,
            f"round trip of {count} messages took {elapsed:.2f}s (limit {threshold}s)",
        )
        return {"messages": count, "seconds": round(elapsed, 3)}

    def check_delete_topic(self):
        result = self.require(kafka.delete_topic(self.settings, self.topic), f"delete topic {self.topic}")
        return result.details
