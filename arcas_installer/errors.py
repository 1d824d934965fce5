from __future__ import annotations


class SetupFailure(Exception):
    """Base class for installer errors."""


class ConfigurationError(SetupFailure):
    """The setup document is missing, unreadable or does not describe a valid product."""


class ValidationError(SetupFailure):
    """Runtime decisions (selection, path, license) are not acceptable for installing."""


class CommandError(SetupFailure):
    """A single command's action failed."""

    def __init__(self, message: str, *, exit_code: int | None = None, output: str = "", error_output: str = "") -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.output = output
        self.error_output = error_output


class UnsupportedCommandError(SetupFailure):
    """The engine has no action for a command type; aborts the run regardless of Required."""
