"""Deterministic failure taxonomy and fingerprint utilities."""

from __future__ import annotations

import hashlib

from pwaccounts.contracts import ERROR_SCHEMA_V1
from pwaccounts.errors import (
    ConfigurationError,
    ExecutableNotFoundError,
    InvalidRootDirectoryError,
    SpawnError,
    TerminationError,
    UnknownAccountError,
)


def build_failure(
    *,
    error_class: str,
    error_code: str,
    message: str,
    account_id: str = "",
    path: str = "",
) -> dict[str, str]:
    """Build a stable failure payload for event sinks and API responses."""
    fingerprint_input = "|".join(
        [
            error_class,
            error_code,
            account_id or "",
            path or "",
        ]
    )
    fingerprint = hashlib.sha256(fingerprint_input.encode("utf-8")).hexdigest()
    return {
        "error_schema_version": ERROR_SCHEMA_V1,
        "error_class": error_class,
        "error_code": error_code,
        "account_id": account_id or "",
        "path": path or "",
        "message": message,
        "fingerprint": fingerprint,
    }


def classify_failure(
    *,
    error: BaseException,
    account_id: str = "",
    path: str = "",
) -> dict[str, str]:
    """Classify an exception into the versioned error taxonomy."""
    message = str(error) or error.__class__.__name__

    if isinstance(error, ExecutableNotFoundError):
        return build_failure(
            error_class="configuration",
            error_code="CONFIG_EXECUTABLE_NOT_FOUND",
            account_id=account_id,
            path=path or error.root_dir,
            message=message,
        )
    if isinstance(error, InvalidRootDirectoryError):
        return build_failure(
            error_class="configuration",
            error_code="CONFIG_ROOT_INVALID",
            account_id=account_id,
            path=path or error.root_dir,
            message=message,
        )
    if isinstance(error, UnknownAccountError):
        return build_failure(
            error_class="configuration",
            error_code="CONFIG_UNKNOWN_ACCOUNT",
            account_id=account_id or error.account_id,
            path=path,
            message=message,
        )
    if isinstance(error, ConfigurationError):
        return build_failure(
            error_class="configuration",
            error_code="CONFIG_INVALID",
            account_id=account_id,
            path=path,
            message=message,
        )

    if isinstance(error, SpawnError):
        return build_failure(
            error_class="process",
            error_code="PROC_SPAWN_FAILED",
            account_id=account_id,
            path=path,
            message=message,
        )
    if isinstance(error, TerminationError):
        return build_failure(
            error_class="process",
            error_code="PROC_KILL_FAILED",
            account_id=account_id,
            path=path,
            message=message,
        )

    if isinstance(error, UnicodeError):
        return build_failure(
            error_class="data_quality",
            error_code="DATA_ENCODING_INVALID",
            account_id=account_id,
            path=path,
            message=message,
        )
    if isinstance(error, OSError):
        return build_failure(
            error_class="transient_io",
            error_code="IO_FAILED",
            account_id=account_id,
            path=path or (str(error.filename) if error.filename else ""),
            message=message,
        )

    return build_failure(
        error_class="internal",
        error_code="UNEXPECTED_ERROR",
        account_id=account_id,
        path=path,
        message=message,
    )
