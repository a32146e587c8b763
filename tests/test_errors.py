from __future__ import annotations

import pytest

from ad_inventory.util.errors import (
    CollectorError,
    ConfigError,
    DataSourceError,
    DirectoryUnavailableError,
    ExitCode,
    ExportError,
    as_exit_code,
    is_ldap_error,
    map_ldap_error,
)


@pytest.mark.parametrize(
    "exc,code",
    [
        (ConfigError("x"), ExitCode.CONFIG_ERROR),
        (ValueError("x"), ExitCode.CONFIG_ERROR),
        (DirectoryUnavailableError("x"), ExitCode.DIRECTORY_UNAVAILABLE),
        (DataSourceError("x"), ExitCode.DATA_SOURCE_ERROR),
        (CollectorError("x"), ExitCode.RUNTIME_ERROR),
        (ExportError("x"), ExitCode.RUNTIME_ERROR),
    ],
)
def test_exit_codes(exc, code) -> None:
    assert as_exit_code(exc) == int(code)


def test_unexpected_errors_exit_one() -> None:
    assert as_exit_code(RuntimeError("x")) == 1


def test_map_ldap_error() -> None:
    ldap3_exceptions = pytest.importorskip("ldap3.core.exceptions")
    exc = ldap3_exceptions.LDAPSocketOpenError("unable to open socket")
    assert is_ldap_error(exc)
    mapped = map_ldap_error(exc, "LDAP search failed under DC=corp")
    assert isinstance(mapped, DataSourceError)
    assert str(mapped).startswith("LDAP search failed under DC=corp: ")
    assert map_ldap_error(KeyError("x"), "ctx") is None
