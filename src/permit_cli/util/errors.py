from __future__ import annotations

from enum import IntEnum
from typing import Optional


class ExitCode(IntEnum):
    OK = 0
    CONFIG_ERROR = 2
    AUTH_ERROR = 3
    API_ERROR = 4
    RUNTIME_ERROR = 5


class PermitCliError(Exception):
    """Base error for the Permit CLI."""


class ConfigError(PermitCliError):
    """Raised for configuration or argument issues."""


class AuthResolutionError(PermitCliError):
    """Raised when no usable auth token can be resolved."""


class PermitAPIError(PermitCliError):
    """
    Raised when a Permit API call fails: non-success status, transport error,
    or a body that cannot be understood. Fatal to the command that issued it.
    """

    def __init__(self, message: str, *, status: Optional[int] = None, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.url = url


class ExportError(PermitCliError):
    """Raised when exporting artifacts fails."""


def as_exit_code(exc: BaseException) -> int:
    if isinstance(exc, (ConfigError, ValueError)):
        return int(ExitCode.CONFIG_ERROR)
    if isinstance(exc, AuthResolutionError):
        return int(ExitCode.AUTH_ERROR)
    if isinstance(exc, PermitAPIError):
        return int(ExitCode.API_ERROR)
    if isinstance(exc, (ExportError, PermitCliError)):
        return int(ExitCode.RUNTIME_ERROR)
    return 1
