"""Build and push the per-service images through the Docker Engine API."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Sequence

import docker
from docker.errors import APIError, BuildError, DockerException

from local_backend.core.config import Settings
from local_backend.core.exceptions import ConfigurationError, ImageError
from local_backend.core.logging import get_logger
from local_backend.shell.command import CommandResult

if TYPE_CHECKING:
    from docker import DockerClient

logger = get_logger("images")

# Services with a Dockerfile in <project>/<service>/
IMAGE_SERVICES = ("elasticsearch", "kibana", "mongodb", "kafka", "zookeeper", "sqlserver")


def image_repository(service: str, registry_prefix: str = "") -> str:
    name = f"artemis-{service}"
    return f"{registry_prefix}/{name}" if registry_prefix else name


def image_name(service: str, registry_prefix: str = "", tag: str = "latest") -> str:
    return f"{image_repository(service, registry_prefix)}:{tag}"


class ImageBuilder:
    """Builds images from the service directories and pushes them to a registry."""

    def __init__(
        self,
        settings: Settings,
        registry_prefix: str | None = None,
        tag: str | None = None,
        client: "DockerClient | None" = None,
    ):
        self.settings = settings
        prefix = settings.registry_prefix if registry_prefix is None else registry_prefix
        self.registry_prefix = prefix.strip().rstrip("/")
        self.tag = tag or settings.image_tag
        self._client = client

    @property
    def client(self) -> "DockerClient":
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    def name(self, service: str) -> str:
        return image_name(service, self.registry_prefix, self.tag)

    def _require_prefix(self) -> None:
        if not self.registry_prefix:
            raise ConfigurationError(
                "Registry prefix is required (set REGISTRY_PREFIX or pass --registry-prefix)"
            )

    def build(
        self, services: Sequence[str] = IMAGE_SERVICES, push: bool = False
    ) -> dict[str, CommandResult]:
        """Build each service image; optionally push the ones that built."""
        self._require_prefix()
        results: dict[str, CommandResult] = {}

        for service in services:
            results[service] = self._build_one(service)

        if push:
            built = [s for s, r in results.items() if r.success]
            for service, result in self.push(built).items():
                results[f"{service}:push"] = result

        return results

    def _build_one(self, service: str) -> CommandResult:
        context = self.settings.resolve(service)
        tag = self.name(service)
        start = time.perf_counter()

        if not (context / "Dockerfile").is_file():
            return CommandResult(
                success=False,
                error=f"Dockerfile not found in {context}",
                duration=time.perf_counter() - start,
            )

        logger.info(f"Building {tag} from {context}")
        try:
            _, log_stream = self.client.images.build(
                path=str(context), dockerfile="Dockerfile", tag=tag, rm=True
            )
        except BuildError as e:
            return CommandResult(
                success=False,
                error=f"Build failed: {e.msg}",
                duration=time.perf_counter() - start,
            )
        except (APIError, DockerException) as e:
            return CommandResult(
                success=False,
                error=str(e),
                duration=time.perf_counter() - start,
            )

        output = "".join(
            chunk.get("stream", "") for chunk in log_stream if isinstance(chunk, dict)
        )
        return CommandResult(
            success=True,
            output=output,
            duration=time.perf_counter() - start,
            details={"image": tag},
        )

    def login(self) -> None:
        s = self.settings
        if not (s.registry_username and s.registry_password):
            return
        registry = self.registry_prefix.split("/", 1)[0]
        logger.info(f"Logging in to {registry} as {s.registry_username}")
        try:
            self.client.login(
                username=s.registry_username,
                password=s.registry_password,
                registry=registry,
            )
        except APIError as e:
            raise ImageError(f"Registry login failed: {e.explanation or e}") from e

    def push(self, services: Sequence[str] = IMAGE_SERVICES) -> dict[str, CommandResult]:
        """Push each service image; an error entry in the stream fails that image."""
        self._require_prefix()
        self.login()
        return {service: self._push_one(service) for service in services}

    def _push_one(self, service: str) -> CommandResult:
        repository = image_repository(service, self.registry_prefix)
        start = time.perf_counter()
        logger.info(f"Pushing {repository}:{self.tag}")

        try:
            stream = self.client.images.push(
                repository, tag=self.tag, stream=True, decode=True
            )
            statuses = []
            for chunk in stream:
                if "error" in chunk:
                    return CommandResult(
                        success=False,
                        error=chunk.get("error", ""),
                        duration=time.perf_counter() - start,
                    )
                if chunk.get("status"):
                    statuses.append(chunk["status"])
        except DockerException as e:
            return CommandResult(
                success=False, error=str(e), duration=time.perf_counter() - start
            )

        return CommandResult(
            success=True,
            output="\n".join(statuses),
            duration=time.perf_counter() - start,
            details={"image": f"{repository}:{self.tag}"},
        )
