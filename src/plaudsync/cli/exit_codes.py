"""Process exit codes of the plaudsync CLI."""

from __future__ import annotations

from enum import IntEnum

from plaudsync.client.api import AuthenticationError
from plaudsync.storage.atomic import StorageError


class ExitCode(IntEnum):
    """Exit status of a CLI command."""

    SUCCESS = 0
    PARTIAL_FAILURE = 1  # some recordings failed, or verification found issues
    AUTH_FAILURE = 2
    STORAGE_ERROR = 3


def exit_code_for(error: BaseException) -> ExitCode:
    """Map an exception that ended a command to its exit code."""
    if isinstance(error, AuthenticationError):
        return ExitCode.AUTH_FAILURE
    if isinstance(error, StorageError):
        return ExitCode.STORAGE_ERROR
    return ExitCode.PARTIAL_FAILURE
