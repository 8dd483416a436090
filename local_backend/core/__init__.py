"""Core infrastructure: settings, logging, exceptions."""

from .config import SERVICES, Settings, get_settings
from .exceptions import (
    CertificateError,
    CheckFailed,
    CommandFailedError,
    ConfigurationError,
    ImageError,
    LocalBackendError,
    StackUnhealthyError,
    TokenError,
    ToolNotFoundError,
    expect,
)
from .logging import get_logger, setup_logging

__all__ = [
    "SERVICES",
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
    "LocalBackendError",
    "ConfigurationError",
    "ToolNotFoundError",
    "CommandFailedError",
    "StackUnhealthyError",
    "TokenError",
    "ImageError",
    "CertificateError",
    "CheckFailed",
    "expect",
]
