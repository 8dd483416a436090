"""
Per-service doctor suites, keyed by service name.
"""

from local_backend.doctor.suites.elasticsearch import ElasticsearchSuite
from local_backend.doctor.suites.kafka import KafkaSuite
from local_backend.doctor.suites.kibana import KibanaSuite
from local_backend.doctor.suites.mongodb import MongoDBSuite
from local_backend.doctor.suites.sqlserver import SqlServerSuite
from local_backend.doctor.suites.zookeeper import ZookeeperSuite

SUITES = {
    "zookeeper": ZookeeperSuite,
    "kafka": KafkaSuite,
    "elasticsearch": ElasticsearchSuite,
    "kibana": KibanaSuite,
    "mongodb": MongoDBSuite,
    "sqlserver": SqlServerSuite,
}

__all__ = [
    "SUITES",
    "ElasticsearchSuite",
    "KafkaSuite",
    "KibanaSuite",
    "MongoDBSuite",
    "SqlServerSuite",
    "ZookeeperSuite",
]
