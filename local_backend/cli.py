"""
Command-line entry point: ``local-backend``.

    local-backend doctor --include-services kafka,mongodb --parallel
    local-backend stack up
    local-backend certs generate
    local-backend images build --push-images --registry-prefix registry.example.com/team
    local-backend token generate
    local-backend kafka-config --wait-zookeeper --output /opt/kafka/config/server.properties
"""

from __future__ import annotations

import functools
import os
import sys
from pathlib import Path

import click

from local_backend.certs import CertificateGenerator
from local_backend.core.config import SERVICES, Settings, get_settings
from local_backend.core.exceptions import ConfigurationError, LocalBackendError, TokenError
from local_backend.core.logging import get_logger, setup_logging
from local_backend.doctor.reporting import export_summary, render_run
from local_backend.doctor.results import CheckStatus
from local_backend.doctor.runner import DoctorRunner, select_services
from local_backend.images import IMAGE_SERVICES, ImageBuilder
from local_backend.kafka_config import (
    render_server_properties,
    wait_for_zookeeper,
    write_server_properties,
)
from local_backend.stack import (
    ComposeStack,
    StackHealthChecker,
    fix_volumes,
    render_health,
    reset_stack,
)
from local_backend.tokens import ServiceTokenManager, inject_kibana_token

logger = get_logger("cli")

FAILURE_EXIT = CheckStatus.FAILURE.exit_code


def handle_errors(func):
    """Turn LocalBackendError into a red message and exit code 2."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except LocalBackendError as e:
            logger.debug(f"{type(e).__name__} in {func.__name__}", exc_info=True)
            click.secho(f"Error: {e.message}", fg="red", err=True)
            for key, value in e.details.items():
                click.echo(f"  {key}: {value}", err=True)
            sys.exit(FAILURE_EXIT)

    return wrapper


def _echo_results(results: dict) -> bool:
    """Print name/status lines for CommandResult maps; True if all succeeded."""
    ok = True
    for name, result in results.items():
        if result.success:
            click.secho(f"  ✅ {name}", fg="green")
        else:
            ok = False
            click.secho(f"  ❌ {name}: {result.error}", fg="red")
    return ok


@click.group()
@click.pass_context
def main(ctx: click.Context) -> None:
    """Manage and test the local backend docker-compose stack."""
    settings = get_settings()
    setup_logging(settings)
    ctx.obj = settings


# ---------------------------------------------------------------------------
# doctor
# ---------------------------------------------------------------------------


@main.command()
@click.option(
    "--include-services", "-s", "include", multiple=True,
    help=f"Services to test (repeatable or comma list). Default: {','.join(SERVICES)}",
)
@click.option("--exclude-services", "exclude", multiple=True, help="Services to skip")
@click.option("--parallel", is_flag=True, help="Run service suites concurrently")
@click.option("--skip-cleanup", is_flag=True, help="Keep test artifacts for inspection")
@click.option("--job-timeout", type=float, default=None, help="Per-service timeout in parallel mode (s)")
@click.option("--wait-healthy", is_flag=True, help="Wait for containers to be healthy first")
@click.option("--export/--no-export", default=True, show_default=True, help="Write JSON and Markdown reports")
@click.option("--results-dir", type=click.Path(path_type=Path), default=None, help="Report directory")
@click.pass_obj
@handle_errors
def doctor(
    settings: Settings,
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    parallel: bool,
    skip_cleanup: bool,
    job_timeout: float | None,
    wait_healthy: bool,
    export: bool,
    results_dir: Path | None,
) -> None:
    """Run health and functional checks against the stack."""
    services = select_services(include, exclude)
    if not services:
        click.secho("No services selected", fg="yellow", err=True)
        sys.exit(CheckStatus.UNKNOWN.exit_code)

    if wait_healthy:
        StackHealthChecker(settings, services=services).wait_for_healthy()

    summary = DoctorRunner(
        settings,
        services=services,
        parallel=parallel,
        skip_cleanup=skip_cleanup,
        job_timeout=job_timeout,
    ).run()

    click.echo(render_run(summary))

    if export:
        directory = results_dir or settings.resolve(settings.results_dir)
        for path in export_summary(summary, directory):
            click.echo(f"Report written to {path}")

    sys.exit(summary.exit_code)


# ---------------------------------------------------------------------------
# stack
# ---------------------------------------------------------------------------


@main.group()
def stack() -> None:
    """Start, stop, inspect and reset the compose stack."""


@stack.command()
@click.argument("services", nargs=-1)
@click.option("--build", is_flag=True, help="Build images before starting")
@click.option("--wait/--no-wait", default=False, help="Wait for containers to be healthy")
@click.pass_obj
@handle_errors
def up(settings: Settings, services: tuple[str, ...], build: bool, wait: bool) -> None:
    """Start the stack (or the given services)."""
    ComposeStack(settings).up(list(services), build=build)
    if wait:
        results = StackHealthChecker(settings, services=list(services) or None).wait_for_healthy()
        click.echo(render_health(results))
    click.secho("Stack started", fg="green")


@stack.command()
@click.option("--volumes", "-v", is_flag=True, help="Also remove named volumes")
@click.pass_obj
@handle_errors
def down(settings: Settings, volumes: bool) -> None:
    """Stop the stack."""
    ComposeStack(settings).down(volumes=volumes)
    click.secho("Stack stopped", fg="green")


@stack.command()
@click.pass_obj
@handle_errors
def ps(settings: Settings) -> None:
    """Show container status as reported by compose."""
    click.echo(ComposeStack(settings).ps().output)


@stack.command()
@click.option("--wait", is_flag=True, help="Poll until healthy or the startup timeout passes")
@click.option("--timeout", type=float, default=None, help="Seconds to wait with --wait")
@click.pass_obj
@handle_errors
def health(settings: Settings, wait: bool, timeout: float | None) -> None:
    """Check that every container is running and healthy."""
    checker = StackHealthChecker(settings)
    if wait:
        results = checker.wait_for_healthy(timeout=timeout)
    else:
        results = checker.check_all()
    click.echo(render_health(results))
    if not all(r.healthy for r in results):
        sys.exit(FAILURE_EXIT)


@stack.command()
@click.confirmation_option(prompt="This removes all containers, volumes and service data. Continue?")
@click.pass_obj
@handle_errors
def reset(settings: Settings) -> None:
    """Tear the stack down and wipe every data directory."""
    report = reset_stack(settings)
    for step in report.steps:
        click.echo(f"  ✅ {step}")
    for directory in report.cleaned:
        click.echo(f"  cleaned {directory}")
    for warning in report.warnings:
        click.secho(f"  ⚠ {warning}", fg="yellow")
    click.secho("Reset complete. Start again with: local-backend stack up", fg="green")


@stack.command("fix-volumes")
@click.confirmation_option(prompt="This deletes and recreates the service data directories. Continue?")
@click.pass_obj
@handle_errors
def fix_volumes_command(settings: Settings) -> None:
    """Stop the stack and recreate the bind-mounted data directories."""
    for path in fix_volumes(settings):
        click.echo(f"  ✅ {path}")


# ---------------------------------------------------------------------------
# certs
# ---------------------------------------------------------------------------


@main.group()
def certs() -> None:
    """TLS certificate management."""


@certs.command("generate")
@click.option("--skip-if-exists/--overwrite", default=None, help="Keep certificates that already exist")
@click.option("--backup/--no-backup", default=None, help="Back up existing certificates first")
@click.pass_obj
@handle_errors
def certs_generate(settings: Settings, skip_if_exists: bool | None, backup: bool | None) -> None:
    """Generate the CA and the per-service certificates."""
    overrides = {}
    if skip_if_exists is not None:
        overrides["skip_if_exists"] = skip_if_exists
    if backup is not None:
        overrides["backup_existing"] = backup
    if overrides:
        settings = settings.model_copy(update=overrides)

    for cert in CertificateGenerator(settings).generate_all():
        state = "kept" if cert.skipped else "generated"
        click.secho(f"  ✅ {cert.service} ({state})", fg="green")
        for kind, path in cert.files.items():
            click.echo(f"      {kind}: {path}")


# ---------------------------------------------------------------------------
# images
# ---------------------------------------------------------------------------


@main.group()
def images() -> None:
    """Build and push the service images."""


def _image_options(func):
    func = click.option("--image-tag", default=None, help="Image tag (default: IMAGE_TAG)")(func)
    func = click.option("--registry-prefix", default=None, help="Registry/namespace (default: REGISTRY_PREFIX)")(func)
    func = click.argument("services", nargs=-1, type=click.Choice(IMAGE_SERVICES))(func)
    return func


@images.command("build")
@_image_options
@click.option("--push-images", is_flag=True, help="Push each image after it builds")
@click.pass_obj
@handle_errors
def images_build(
    settings: Settings,
    services: tuple[str, ...],
    registry_prefix: str | None,
    image_tag: str | None,
    push_images: bool,
) -> None:
    """Build images from <project>/<service>/Dockerfile."""
    builder = ImageBuilder(settings, registry_prefix=registry_prefix, tag=image_tag)
    results = builder.build(services or IMAGE_SERVICES, push=push_images)
    if not _echo_results(results):
        sys.exit(FAILURE_EXIT)


@images.command("push")
@_image_options
@click.pass_obj
@handle_errors
def images_push(
    settings: Settings,
    services: tuple[str, ...],
    registry_prefix: str | None,
    image_tag: str | None,
) -> None:
    """Push previously built images."""
    builder = ImageBuilder(settings, registry_prefix=registry_prefix, tag=image_tag)
    if not _echo_results(builder.push(services or IMAGE_SERVICES)):
        sys.exit(FAILURE_EXIT)


# ---------------------------------------------------------------------------
# token
# ---------------------------------------------------------------------------


@main.group()
def token() -> None:
    """Kibana service token management."""


@token.command("generate")
@click.option("--force/--reuse", default=None, help="Always create a new token (default: FORCE_NEW_TOKEN)")
@click.pass_obj
@handle_errors
def token_generate(settings: Settings, force: bool | None) -> None:
    """Create (or reuse) the Kibana service token in the shared directory."""
    manager = ServiceTokenManager(settings)
    manager.ensure_token(force=force)
    click.secho(f"Token stored in {manager.token_file}", fg="green")


@token.command("inject")
@click.argument("kibana_yml", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--token-file", type=click.Path(dir_okay=False, path_type=Path), default=None)
@click.pass_obj
@handle_errors
def token_inject(settings: Settings, kibana_yml: Path, token_file: Path | None) -> None:
    """Write the stored token into kibana.yml."""
    token_file = token_file or ServiceTokenManager(settings).token_file
    if not token_file.is_file():
        raise TokenError(f"Token file {token_file} not found. Kibana may fail to connect.")
    if not inject_kibana_token(kibana_yml, token_file.read_text(encoding="utf-8")):
        raise TokenError(f"Token file {token_file} is empty")
    click.secho(f"Updated {kibana_yml}", fg="green")


# ---------------------------------------------------------------------------
# kafka-config
# ---------------------------------------------------------------------------


@main.command("kafka-config")
@click.option(
    "--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None,
    help="Write here instead of stdout",
)
@click.option(
    "--wait-zookeeper", is_flag=True,
    help="Wait until KAFKA_ZOOKEEPER_CONNECT accepts connections first",
)
@click.option("--wait-timeout", type=float, default=120.0, show_default=True)
@handle_errors
def kafka_config(output: Path | None, wait_zookeeper: bool, wait_timeout: float) -> None:
    """Render server.properties from the KAFKA_* environment."""
    if wait_zookeeper:
        connect = os.environ.get("KAFKA_ZOOKEEPER_CONNECT", "")
        if not connect:
            raise ConfigurationError("KAFKA_ZOOKEEPER_CONNECT is not set")
        wait_for_zookeeper(connect, timeout=wait_timeout)
    if output is None:
        click.echo(render_server_properties(os.environ), nl=False)
        return
    write_server_properties(output, os.environ)
    click.echo(f"Wrote {output}", err=True)


if __name__ == "__main__":
    main()  # pragma: no cover
