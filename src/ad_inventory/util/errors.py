from __future__ import annotations

from enum import IntEnum
from typing import Optional

from ldap3.core.exceptions import LDAPException


class ExitCode(IntEnum):
    OK = 0
    CONFIG_ERROR = 2
    DIRECTORY_UNAVAILABLE = 3
    DATA_SOURCE_ERROR = 4
    RUNTIME_ERROR = 5


class InventoryError(Exception):
    """Base error for the inventory pipeline."""


class ConfigError(InventoryError):
    """Raised for configuration or argument issues."""


class DirectoryUnavailableError(InventoryError):
    """Raised when the directory cannot be queried at all. Aborts the run."""


class DataSourceError(InventoryError):
    """Raised when a single query against the directory fails."""


class CollectorError(InventoryError):
    """Raised when a collector cannot produce its section."""


class ExportError(InventoryError):
    """Raised when exporting artifacts fails."""


def as_exit_code(exc: BaseException) -> int:
    if isinstance(exc, (ConfigError, ValueError)):
        return int(ExitCode.CONFIG_ERROR)
    if isinstance(exc, DirectoryUnavailableError):
        return int(ExitCode.DIRECTORY_UNAVAILABLE)
    if isinstance(exc, DataSourceError):
        return int(ExitCode.DATA_SOURCE_ERROR)
    if isinstance(exc, (CollectorError, ExportError, InventoryError)):
        return int(ExitCode.RUNTIME_ERROR)
    return 1


def is_ldap_error(exc: BaseException) -> bool:
    """Return True for ldap3 protocol, socket and bind failures."""
    return isinstance(exc, LDAPException)


def map_ldap_error(exc: BaseException, context: str) -> Optional[DataSourceError]:
    """
    Wrap an ldap3 error as DataSourceError so collectors only handle one
    failure type. Returns None for anything that did not come from ldap3.
    """
    if not is_ldap_error(exc):
        return None
    return DataSourceError(f"{context}: {exc}")
