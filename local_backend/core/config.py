"""Local backend settings with Pydantic validation and environment loading."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Dict

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SERVICES = ("zookeeper", "kafka", "elasticsearch", "kibana", "mongodb", "sqlserver")


class Settings(BaseSettings):
    """Settings loaded from environment variables and the project's .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Project layout
    project_dir: Path = Field(
        default=Path("."), description="Root of the compose project"
    )
    compose_file: str = Field(
        default="docker-compose.yml", description="Compose manifest, relative to project_dir"
    )
    compose_command: str = Field(
        default="docker-compose",
        description="Compose binary, e.g. 'docker-compose' or 'docker compose'",
    )
    results_dir: Path = Field(
        default=Path("test-results"), description="Where doctor exports its reports"
    )

    # Images
    registry_prefix: str = Field(default="", description="Registry/namespace for images")
    image_tag: str = Field(default="latest")
    registry_username: str = Field(default="")
    registry_password: str = Field(default="")

    # Credentials - env vars keep the names used by docker-compose.yml
    bootstrap_password: str = Field(
        default="changeme", alias="LOCAL_BACKEND_BOOTSTRAP_PASSWORD"
    )
    sqlserver_sa_password: str = Field(default="YourStrong!Passw0rd")
    kibana_encryption_key: str = Field(default="")
    mongo_root_username: str = Field(
        default="admin", min_length=1, alias="MONGO_INITDB_ROOT_USERNAME"
    )
    mongo_root_password: str = Field(
        default="changeme", alias="MONGO_INITDB_ROOT_PASSWORD"
    )

    # Endpoints
    elasticsearch_url: str = Field(default="https://localhost:9200")
    kibana_url: str = Field(default="http://localhost:5601")
    ca_cert_path: Path = Field(default=Path("certs/ca/ca.crt"))
    kafka_bootstrap_server: str = Field(
        default="localhost:9092", description="Bootstrap server as seen from inside the Kafka container"
    )
    zookeeper_connect: str = Field(default="localhost:2181")

    # Container names
    elasticsearch_container: str = Field(default="artemis-elasticsearch")
    kibana_container: str = Field(default="artemis-kibana")
    mongodb_container: str = Field(default="artemis-mongodb")
    kafka_container: str = Field(default="artemis-kafka")
    zookeeper_container: str = Field(default="artemis-zookeeper")
    sqlserver_container: str = Field(default="artemis-sqlserver")

    # Timeouts (seconds unless noted)
    command_timeout: float = Field(default=30.0, gt=0)
    http_timeout: float = Field(default=15.0, gt=0)
    job_timeout: float = Field(default=300.0, gt=0, description="Per-service timeout in parallel mode")
    stack_startup_timeout: float = Field(default=120.0, gt=0)
    kafka_consume_timeout_ms: int = Field(default=10_000, ge=1000)
    kafka_delete_attempts: int = Field(default=3, ge=1, le=10)
    kafka_delete_delay: float = Field(default=5.0, ge=0)

    # Performance checks
    es_bulk_documents: int = Field(default=100, ge=1)
    es_bulk_threshold_seconds: float = Field(default=10.0, gt=0)
    kafka_throughput_messages: int = Field(default=50, ge=1)
    kafka_throughput_threshold_seconds: float = Field(default=30.0, gt=0)

    # Certificates
    certs_dir: Path = Field(default=Path("certs"))
    ca_name: str = Field(default="ArtemisLocalCA")
    ca_key_password: str = Field(default="changeme")
    cert_password: str = Field(default="changeme")
    ca_validity_days: int = Field(default=3650, ge=1)
    cert_validity_days: int = Field(default=365, ge=1)
    organization: str = Field(default="Artemis")
    organizational_unit: str = Field(default="Development")
    country: str = Field(default="US", min_length=2, max_length=2)
    backup_existing: bool = Field(default=True)
    skip_if_exists: bool = Field(default=False)

    # Kibana service token
    shared_dir: Path = Field(default=Path("shared"))
    force_new_token: bool = Field(default=True)
    cleanup_old_tokens: bool = Field(default=True)
    max_token_age_days: int = Field(default=7, ge=0)

    # Logging
    log_level: str = Field(
        default="INFO", description="Log level: DEBUG, INFO, WARNING, ERROR"
    )
    log_format: str = Field(default="text", description="Log format: json or text")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            raise ValueError(f"log_level must be one of {valid}")
        return upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        lower = v.lower()
        if lower not in {"json", "text"}:
            raise ValueError("log_format must be 'json' or 'text'")
        return lower

    @field_validator("registry_prefix")
    @classmethod
    def strip_registry_prefix(cls, v: str) -> str:
        return v.strip().rstrip("/")

    def resolve(self, path: Path | str) -> Path:
        """Resolve a configured path against the project directory."""
        path = Path(path)
        return path if path.is_absolute() else self.project_dir / path

    @property
    def containers(self) -> Dict[str, str]:
        return {
            "zookeeper": self.zookeeper_container,
            "kafka": self.kafka_container,
            "elasticsearch": self.elasticsearch_container,
            "kibana": self.kibana_container,
            "mongodb": self.mongodb_container,
            "sqlserver": self.sqlserver_container,
        }

    def container_for(self, service: str) -> str:
        try:
            return self.containers[service]
        except KeyError:
            raise ValueError(f"Unknown service: {service}") from None


@lru_cache
def get_settings() -> Settings:
    """Cached settings factory."""
    return Settings()
