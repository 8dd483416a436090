"""Render the single-broker server.properties from KAFKA_* variables."""

from __future__ import annotations

import os
import socket
from pathlib import Path
from typing import Mapping

from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_delay, wait_fixed

from local_backend.core.exceptions import StackUnhealthyError
from local_backend.core.logging import get_logger

logger = get_logger("kafka_config")

DEFAULT_ZOOKEEPER_PORT = 2181

BROKER_SETTINGS = {
    "num.network.threads": "3",
    "num.io.threads": "8",
    "socket.send.buffer.bytes": "102400",
    "socket.receive.buffer.bytes": "102400",
    "socket.request.max.bytes": "104857600",
    "log.retention.hours": "168",
    "log.segment.bytes": "1073741824",
    "log.retention.check.interval.ms": "300000",
    "delete.topic.enable": "true",
    "offsets.topic.replication.factor": "1",
    "transaction.state.log.replication.factor": "1",
    "transaction.state.log.min.isr": "1",
    "group.initial.rebalance.delay.ms": "0",
}


def parse_zookeeper_connect(connect: str) -> tuple[str, int]:
    """First host of a connect string as (host, port)."""
    first = connect.split(",", 1)[0].strip()
    # Drop a chroot suffix such as host:2181/kafka
    first = first.split("/", 1)[0]
    host, _, port = first.partition(":")
    return host, int(port) if port else DEFAULT_ZOOKEEPER_PORT


def wait_for_zookeeper(
    connect: str,
    timeout: float = 120.0,
    interval: float = 2.0,
) -> tuple[str, int]:
    """Block until the first ZooKeeper host in ``connect`` accepts TCP connections."""
    host, port = parse_zookeeper_connect(connect)

    def _probe() -> None:
        with socket.create_connection((host, port), timeout=interval or 1.0):
            pass

    retrying = Retrying(
        stop=stop_after_delay(timeout),
        wait=wait_fixed(interval),
        retry=retry_if_exception_type(OSError),
        before_sleep=lambda state: logger.info(
            f"ZooKeeper at {host}:{port} not available yet, waiting {interval}s"
        ),
    )
    try:
        retrying(_probe)
    except RetryError as e:
        raise StackUnhealthyError(
            f"ZooKeeper at {host}:{port} not reachable within {timeout:g}s",
            details={"error": str(e.last_attempt.exception())},
        ) from e

    logger.info(f"ZooKeeper at {host}:{port} is available")
    return host, port


def render_server_properties(env: Mapping[str, str] | None = None) -> str:
    env = os.environ if env is None else env

    def get(key: str) -> str:
        return env.get(key, "")

    lines = [
        "# Basic Kafka configuration",
        "broker.id=1",
        "log.dirs=/var/lib/kafka/data",
        "",
        "# ZooKeeper connection",
        f"zookeeper.connect={get('KAFKA_ZOOKEEPER_CONNECT')}",
        "zookeeper.connection.timeout.ms=18000",
        "",
        "# Network and listeners",
        f"listeners={get('KAFKA_LISTENERS')}",
        f"advertised.listeners={get('KAFKA_ADVERTISED_LISTENERS')}",
        f"listener.security.protocol.map={get('KAFKA_LISTENER_SECURITY_PROTOCOL_MAP')}",
        f"inter.broker.listener.name={get('KAFKA_INTER_BROKER_LISTENER_NAME')}",
        "",
        "# Broker settings",
        *(f"{key}={value}" for key, value in BROKER_SETTINGS.items()),
    ]

    keystore = get("KAFKA_SSL_KEYSTORE_LOCATION")
    if keystore and Path(keystore).is_file():
        lines += [
            "",
            "# SSL Configuration",
            f"ssl.keystore.location={keystore}",
            f"ssl.keystore.password={get('KAFKA_SSL_KEYSTORE_PASSWORD')}",
            f"ssl.truststore.location={get('KAFKA_SSL_TRUSTSTORE_LOCATION')}",
            f"ssl.truststore.password={get('KAFKA_SSL_TRUSTSTORE_PASSWORD')}",
        ]

    return "\n".join(lines) + "\n"


def write_server_properties(path: Path, env: Mapping[str, str] | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_server_properties(env), encoding="utf-8")
    return path
