"""Typed errors raised while locking a virtual environment."""

from __future__ import annotations

NOT_IN_VENV_MESSAGE = "Not in an active virtual environment"


class PylockError(RuntimeError):
    """Base pylock error."""


class NotInVirtualEnvironment(PylockError):
    """No active virtual environment marker is present."""

    def __init__(self, message: str = NOT_IN_VENV_MESSAGE) -> None:
        super().__init__(message)


class EnvironmentIntrospectionError(PylockError):
    """The environment or its package metadata store cannot be read."""


class OutputWriteError(PylockError):
    """The lock file could not be written to its destination."""

    def __init__(self, path: object, reason: str) -> None:
        super().__init__(f"cannot write {path}: {reason}")
        self.path = path
        self.reason = reason
