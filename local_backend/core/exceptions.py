"""Custom exceptions shared by the stack tooling."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from local_backend.shell.command import CommandResult


class LocalBackendError(Exception):
    """Base exception with a structured error payload."""

    error_code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            **({"details": self.details} if self.details else {}),
        }


class ConfigurationError(LocalBackendError):
    """Invalid option or setting."""

    error_code = "CONFIGURATION_ERROR"
    message = "Invalid configuration"


class ToolNotFoundError(LocalBackendError):
    """A required external binary is not on PATH."""

    error_code = "TOOL_NOT_FOUND"
    message = "Required tool not found"


class CommandFailedError(LocalBackendError):
    """An external command returned a failure."""

    error_code = "COMMAND_FAILED"
    message = "Command failed"

    def __init__(self, message: str | None = None, result: "CommandResult | None" = None):
        self.result = result
        details = None
        if result is not None:
            details = {
                "exit_code": result.exit_code,
                "error": result.error[:500],
                "timed_out": result.timed_out,
            }
        super().__init__(message, details=details)


class StackUnhealthyError(LocalBackendError):
    """Containers did not become healthy in time."""

    error_code = "STACK_UNHEALTHY"
    message = "Stack health check failed"


class TokenError(LocalBackendError):
    """Service token could not be created or stored."""

    error_code = "TOKEN_ERROR"
    message = "Service token operation failed"


class ImageError(LocalBackendError):
    """Image build or push failed."""

    error_code = "IMAGE_ERROR"
    message = "Image operation failed"


class CertificateError(LocalBackendError):
    """Certificate generation failed."""

    error_code = "CERTIFICATE_ERROR"
    message = "Certificate generation failed"


class CheckFailed(LocalBackendError):
    """A doctor check did not meet its expectation."""

    error_code = "CHECK_FAILED"
    message = "Check failed"


def expect(condition: Any, message: str) -> None:
    """Raise CheckFailed with message unless condition holds."""
    if not condition:
        raise CheckFailed(message)
