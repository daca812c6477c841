"""Shared helpers for the HTTP routers."""

import logging

from fastapi import HTTPException, Request

from pwaccounts.errors import ConfigurationError, UnknownAccountError
from pwaccounts.failures import classify_failure
from pwaccounts.supervisor.runtime import LauncherRuntime

logger = logging.getLogger("pwaccounts.supervisor.api")


def get_runtime(request: Request) -> LauncherRuntime:
    return request.app.state.runtime


def http_error(error: Exception, *, account_id: str = "", path: str = "") -> HTTPException:
    """Map an exception to an HTTPException carrying the error.v1 payload."""
    failure = classify_failure(error=error, account_id=account_id, path=path)
    if isinstance(error, UnknownAccountError):
        status_code = 404
    elif isinstance(error, (ConfigurationError, ValueError)):
        status_code = 400
    else:
        logger.error("Request failed: %s", error)
        status_code = 500
    return HTTPException(status_code=status_code, detail=failure)
