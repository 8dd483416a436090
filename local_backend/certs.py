"""
Certificate generation for the stack's TLS endpoints.

Builds a local CA and a CA-signed certificate per service using openssl,
plus PKCS#12 bundles and (when keytool is available) JKS key/trust stores
for the JVM services. Layout under the certs directory:

    ca/ca.key, ca/ca.crt
    <service>/<service>.key, .csr, .crt, .p12, .keystore.jks, .truststore.jks
"""

from __future__ import annotations

import ipaddress
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Sequence

from local_backend.core.config import Settings
from local_backend.core.exceptions import CertificateError, ToolNotFoundError
from local_backend.core.logging import get_logger
from local_backend.shell.command import CommandResult, run_command

logger = get_logger("certs")

KEY_BITS = 2048


@dataclass(frozen=True)
class ServiceCertificate:
    """Which artifacts a service needs."""

    name: str
    alt_names: tuple[str, ...] = ()
    jks: bool = False
    p12: bool = False


SERVICE_CERTIFICATES = (
    ServiceCertificate("elasticsearch", ("artemis-elasticsearch", "es", "elastic"), jks=True, p12=True),
    ServiceCertificate("kibana", ("artemis-kibana", "ki"), jks=False, p12=True),
    ServiceCertificate("kafka", ("artemis-kafka", "broker"), jks=True, p12=False),
)


@dataclass
class GeneratedCertificate:
    service: str
    files: dict[str, Path] = field(default_factory=dict)
    skipped: bool = False


def subject_alt_names(service: str, alt_names: Sequence[str] = ()) -> tuple[list[str], list[str]]:
    """Split the SAN list into (dns, ip) entries, service name first."""
    dns: list[str] = []
    ips: list[str] = []
    for name in [service, "localhost", "127.0.0.1", *alt_names]:
        name = name.strip()
        if not name:
            continue
        try:
            ipaddress.IPv4Address(name)
        except ValueError:
            if name not in dns:
                dns.append(name)
        else:
            if name not in ips:
                ips.append(name)
    return dns, ips


def render_openssl_config(
    service: str,
    alt_names: Sequence[str],
    country: str,
    organization: str,
    organizational_unit: str,
) -> str:
    """OpenSSL request config with a v3_req SAN section."""
    dns, ips = subject_alt_names(service, alt_names)
    san_lines = [f"DNS.{i} = {name}" for i, name in enumerate(dns, start=1)]
    san_lines += [f"IP.{i} = {addr}" for i, addr in enumerate(ips, start=1)]

    return "\n".join(
        [
            "[req]",
            "distinguished_name = req_distinguished_name",
            "req_extensions = v3_req",
            "prompt = no",
            "",
            "[req_distinguished_name]",
            f"C = {country}",
            f"O = {organization}",
            f"OU = {organizational_unit}",
            f"CN = {service}",
            "",
            "[v3_req]",
            "keyUsage = keyEncipherment, dataEncipherment",
            "extendedKeyUsage = serverAuth, clientAuth",
            "subjectAltName = @alt_names",
            "",
            "[alt_names]",
            *san_lines,
            "",
        ]
    )


class CertificateGenerator:
    """Generates the CA and per-service certificates with openssl/keytool."""

    def __init__(
        self,
        settings: Settings,
        runner: Callable[..., CommandResult] = run_command,
        which: Callable[[str], str | None] = shutil.which,
    ):
        self.settings = settings
        self.certs_dir = settings.resolve(settings.certs_dir)
        self._run = runner
        self._which = which

    @property
    def ca_dir(self) -> Path:
        return self.certs_dir / "ca"

    @property
    def ca_key(self) -> Path:
        return self.ca_dir / "ca.key"

    @property
    def ca_crt(self) -> Path:
        return self.ca_dir / "ca.crt"

    def generate_all(
        self, services: Sequence[ServiceCertificate] = SERVICE_CERTIFICATES
    ) -> list[GeneratedCertificate]:
        if not self._which("openssl"):
            raise ToolNotFoundError("OpenSSL is required but not found in PATH")

        generated = [self.generate_ca()]
        for service in services:
            generated.append(self.generate_service(service))

        logger.info(
            f"Certificates ready in {self.certs_dir} "
            f"(CA valid {self.settings.ca_validity_days}d, services {self.settings.cert_validity_days}d)"
        )
        return generated

    def generate_ca(self) -> GeneratedCertificate:
        cert = GeneratedCertificate(service="ca", files={"key": self.ca_key, "crt": self.ca_crt})
        if self.settings.skip_if_exists and self.ca_crt.exists():
            logger.info("CA certificate already exists, skipping generation")
            cert.skipped = True
            return cert

        if self.settings.backup_existing:
            self.backup(self.ca_dir)
        self.ca_dir.mkdir(parents=True, exist_ok=True)

        s = self.settings
        logger.info(f"Generating certificate authority {s.ca_name}")
        self._openssl(
            "genrsa", "-aes256",
            "-out", str(self.ca_key),
            "-passout", f"pass:{s.ca_key_password}",
            str(KEY_BITS),
        )
        subject = f"/C={s.country}/O={s.organization}/OU={s.organizational_unit}/CN={s.ca_name}"
        self._openssl(
            "req", "-x509", "-new", "-nodes",
            "-key", str(self.ca_key),
            "-passin", f"pass:{s.ca_key_password}",
            "-sha256",
            "-days", str(s.ca_validity_days),
            "-out", str(self.ca_crt),
            "-subj", subject,
        )
        return cert

    def generate_service(self, spec: ServiceCertificate) -> GeneratedCertificate:
        s = self.settings
        service_dir = self.certs_dir / spec.name.lower()
        base = service_dir / spec.name
        files = {
            "key": base.with_suffix(".key"),
            "csr": base.with_suffix(".csr"),
            "crt": base.with_suffix(".crt"),
        }
        cert = GeneratedCertificate(service=spec.name, files=files)

        if s.skip_if_exists and files["crt"].exists():
            logger.info(f"{spec.name} certificate already exists, skipping")
            cert.skipped = True
            return cert

        if s.backup_existing:
            self.backup(service_dir)
        service_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Generating {spec.name} certificate")
        self._openssl("genrsa", "-out", str(files["key"]), str(KEY_BITS))

        config_file = service_dir / f"{spec.name}-cert.cnf"
        config_file.write_text(
            render_openssl_config(
                spec.name,
                spec.alt_names,
                s.country,
                s.organization,
                s.organizational_unit,
            ),
            encoding="utf-8",
        )
        try:
            self._openssl(
                "req", "-new",
                "-key", str(files["key"]),
                "-out", str(files["csr"]),
                "-config", str(config_file),
            )
            self._openssl(
                "x509", "-req",
                "-in", str(files["csr"]),
                "-CA", str(self.ca_crt),
                "-CAkey", str(self.ca_key),
                "-passin", f"pass:{s.ca_key_password}",
                "-CAcreateserial",
                "-out", str(files["crt"]),
                "-days", str(s.cert_validity_days),
                "-extensions", "v3_req",
                "-extfile", str(config_file),
            )
        finally:
            config_file.unlink(missing_ok=True)

        # The JKS keystore is imported from the PKCS#12 bundle
        if spec.p12 or spec.jks:
            files["p12"] = base.with_suffix(".p12")
            self._openssl(
                "pkcs12", "-export",
                "-out", str(files["p12"]),
                "-inkey", str(files["key"]),
                "-in", str(files["crt"]),
                "-certfile", str(self.ca_crt),
                "-passout", f"pass:{s.cert_password}",
            )

        if spec.jks:
            if self._which("keytool"):
                files.update(self._generate_jks(spec.name, service_dir, files["p12"]))
            else:
                logger.warning(
                    f"keytool not found in PATH, skipping JKS stores for {spec.name}"
                )

        return cert

    def _generate_jks(self, service: str, service_dir: Path, p12: Path) -> dict[str, Path]:
        password = self.settings.cert_password
        keystore = service_dir / f"{service}.keystore.jks"
        truststore = service_dir / f"{service}.truststore.jks"
        # keytool refuses to import over an existing alias
        keystore.unlink(missing_ok=True)
        truststore.unlink(missing_ok=True)

        self._keytool(
            "-importkeystore",
            "-srckeystore", str(p12), "-srcstoretype", "PKCS12",
            "-destkeystore", str(keystore), "-deststoretype", "JKS",
            "-srcstorepass", password, "-deststorepass", password,
            "-srcalias", "1", "-destalias", service,
            "-noprompt",
        )
        self._keytool(
            "-import", "-trustcacerts",
            "-alias", "ca",
            "-file", str(self.ca_crt),
            "-keystore", str(truststore),
            "-storepass", password,
            "-noprompt",
        )
        return {"keystore": keystore, "truststore": truststore}

    def backup(self, directory: Path) -> Path | None:
        """Copy an existing directory to backup_<timestamp>/<name>."""
        if not directory.is_dir():
            return None
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        target = self.certs_dir / f"backup_{timestamp}" / directory.name
        shutil.copytree(directory, target, dirs_exist_ok=True)
        logger.info(f"Backed up {directory} to {target}")
        return target

    def _openssl(self, *args: str) -> CommandResult:
        return self._checked(["openssl", *args])

    def _keytool(self, *args: str) -> CommandResult:
        return self._checked(["keytool", *args])

    def _checked(self, args: list[str]) -> CommandResult:
        result = self._run(args, timeout=60.0)
        if not result.success:
            raise CertificateError(
                f"{args[0]} {args[1]} failed: {result.error or result.output}".strip(),
                details={"exit_code": result.exit_code},
            )
        return result
