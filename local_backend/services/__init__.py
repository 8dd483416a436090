"""Per-service invokers wrapping each service's native CLI or HTTP API."""

from local_backend.services.elasticsearch import invoke_elasticsearch_request
from local_backend.services.kafka import invoke_kafka_command
from local_backend.services.kibana import invoke_kibana_request
from local_backend.services.mongodb import invoke_mongo_command
from local_backend.services.sqlserver import invoke_sqlserver_command
from local_backend.services.zookeeper import invoke_zookeeper_command

__all__ = [
    "invoke_elasticsearch_request",
    "invoke_kafka_command",
    "invoke_kibana_request",
    "invoke_mongo_command",
    "invoke_sqlserver_command",
    "invoke_zookeeper_command",
]
