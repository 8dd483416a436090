"""
Kafka invoker: the broker's bundled CLI tools run inside the Kafka container.

Benign failures:
- creating a topic that already exists
- deleting a topic when the broker keeps reporting AccessDeniedException
  (a known race when the log directory is renamed on bind-mounted volumes)
"""

from __future__ import annotations

import re

from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_fixed

from local_backend.core.config import Settings
from local_backend.core.logging import get_logger
from local_backend.shell.command import CommandResult, docker_exec

logger = get_logger("services.kafka")

KAFKA_BIN = "/opt/kafka/bin"

_PARTITION_COUNT = re.compile(r"PartitionCount:\s*(\d+)")


def invoke_kafka_command(
    settings: Settings,
    tool: str,
    args: list[str],
    input: str | None = None,
    timeout: float | None = None,
) -> CommandResult:
    """Run ``/opt/kafka/bin/<tool>.sh`` with the given arguments."""
    return docker_exec(
        settings.kafka_container,
        [f"{KAFKA_BIN}/{tool}.sh", *args],
        timeout=timeout or settings.command_timeout,
        input=input,
    )


def _bootstrap(settings: Settings) -> list[str]:
    return ["--bootstrap-server", settings.kafka_bootstrap_server]


def broker_api_versions(settings: Settings) -> CommandResult:
    return invoke_kafka_command(settings, "kafka-broker-api-versions", _bootstrap(settings))


def list_topics(settings: Settings) -> CommandResult:
    """List topics; names land in ``details``."""
    result = invoke_kafka_command(
        settings, "kafka-topics", [*_bootstrap(settings), "--list"]
    )
    if result.success:
        result.details = [line.strip() for line in result.output.splitlines() if line.strip()]
    return result


def create_topic(
    settings: Settings,
    topic: str,
    partitions: int = 1,
    replication_factor: int = 1,
) -> CommandResult:
    result = invoke_kafka_command(
        settings,
        "kafka-topics",
        [
            *_bootstrap(settings),
            "--create",
            "--topic", topic,
            "--partitions", str(partitions),
            "--replication-factor", str(replication_factor),
        ],
    )
    if not result.success and result.contains("already exists"):
        logger.info(f"Topic {topic} already exists, continuing")
        result.success = True
        result.details = {"benign": "already exists"}
    return result


def describe_topic(settings: Settings, topic: str) -> CommandResult:
    """Describe a topic; ``details`` holds the partition count."""
    result = invoke_kafka_command(
        settings, "kafka-topics", [*_bootstrap(settings), "--describe", "--topic", topic]
    )
    if result.success:
        match = _PARTITION_COUNT.search(result.output)
        if match:
            partitions = int(match.group(1))
        else:
            partitions = sum(
                1 for line in result.output.splitlines() if "Partition:" in line
            )
        result.details = {"partitions": partitions}
    return result


def produce_messages(settings: Settings, topic: str, messages: list[str]) -> CommandResult:
    """Write messages (one per line) through the console producer."""
    payload = "\n".join(messages) + "\n"
    return invoke_kafka_command(
        settings,
        "kafka-console-producer",
        [*_bootstrap(settings), "--topic", topic],
        input=payload,
    )


def consume_messages(
    settings: Settings,
    topic: str,
    max_messages: int = 1,
    timeout_ms: int | None = None,
    group: str | None = None,
) -> CommandResult:
    """
    Read up to ``max_messages`` from the beginning of a topic.

    The console consumer exits non-zero when it hits its timeout, so the
    result is judged on what was read: ``details`` holds the message lines
    and ``success`` is true when at least one message arrived.
    """
    timeout_ms = timeout_ms or settings.kafka_consume_timeout_ms
    args = [
        *_bootstrap(settings),
        "--topic", topic,
        "--from-beginning",
        "--max-messages", str(max_messages),
        "--timeout-ms", str(timeout_ms),
    ]
    if group:
        args.extend(["--group", group])

    result = invoke_kafka_command(
        settings,
        "kafka-console-consumer",
        args,
        timeout=max(settings.command_timeout, timeout_ms / 1000 + 15),
    )
    messages = [line for line in result.output.splitlines() if line.strip()]
    result.details = messages
    if result.timed_out:
        return result
    result.success = bool(messages)
    if not messages and not result.error:
        result.error = f"No messages consumed from {topic} within {timeout_ms}ms"
    return result


def list_consumer_groups(settings: Settings) -> CommandResult:
    result = invoke_kafka_command(
        settings, "kafka-consumer-groups", [*_bootstrap(settings), "--list"]
    )
    if result.success:
        result.details = [line.strip() for line in result.output.splitlines() if line.strip()]
    return result


def _should_retry_delete(result: CommandResult) -> bool:
    # Only the log-directory lock race clears up on its own
    return not result.success and result.contains("AccessDeniedException")


def delete_topic(
    settings: Settings,
    topic: str,
    attempts: int | None = None,
    delay: float | None = None,
) -> CommandResult:
    """
    Delete a topic, retrying AccessDeniedException a fixed number of times.

    Any other failure is returned after the first attempt.

    If the final attempt still fails with AccessDeniedException the
    deletion is treated as benign: the broker has marked the topic for
    deletion and finishes it when the directory lock is released.
    """
    attempts = attempts or settings.kafka_delete_attempts
    delay = settings.kafka_delete_delay if delay is None else delay

    def _attempt() -> CommandResult:
        return invoke_kafka_command(
            settings, "kafka-topics", [*_bootstrap(settings), "--delete", "--topic", topic]
        )

    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(delay),
        retry=retry_if_result(_should_retry_delete),
        before_sleep=lambda state: logger.info(
            f"Delete of {topic} failed (attempt {state.attempt_number}/{attempts}), retrying in {delay}s"
        ),
        retry_error_callback=lambda state: state.outcome.result(),
    )
    result = retrying(_attempt)

    if not result.success and result.contains("AccessDeniedException"):
        logger.warning(
            f"Topic {topic} deletion hit AccessDeniedException after {attempts} attempts, treating as benign"
        )
        result.success = True
        result.details = {"benign": "AccessDeniedException"}
    return result
