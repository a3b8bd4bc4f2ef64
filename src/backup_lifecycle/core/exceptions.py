"""
Backup Lifecycle Exception Hierarchy.

Defines the custom exceptions raised at the I/O seams of the lifecycle
manager (remote tool, filesystem tiers, locks, configuration).
"""

from typing import Any


class BackupLifecycleError(Exception):
    """
    Root of the errors raised by tier I/O, the remote tool and settings.

    Components that own a recovery policy catch this type, turn it into
    a ledger record and carry on with the next tier or batch.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        context = ", ".join(f"{key}={value}" for key, value in self.details.items())
        return f"{self.message} ({context})"

    def to_dict(self) -> dict[str, Any]:
        """Serializable form, as stored in ledger details and JSON output."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(BackupLifecycleError):
    """
    Errors in configuration loading or validation.

    Raised when:
    - The YAML configuration file is missing or malformed
    - An environment override cannot be parsed
    - Configuration values fail validation
    """

    def __init__(
        self,
        message: str,
        *,
        config_file: str | None = None,
        env_var: str | None = None,
        validation_errors: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if config_file:
            details["config_file"] = config_file
        if env_var:
            details["env_var"] = env_var
        if validation_errors:
            details["validation_errors"] = validation_errors

        super().__init__(message, details=details)
        self.config_file = config_file
        self.env_var = env_var
        self.validation_errors = validation_errors or []


class RemoteToolError(BackupLifecycleError):
    """
    Errors from the external remote synchronization tool.

    Raised when the tool is missing, exits non-zero, or produces
    output that cannot be interpreted.
    """

    def __init__(
        self,
        message: str,
        *,
        command: list[str] | None = None,
        returncode: int | None = None,
        stderr: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize a RemoteToolError.

        Args:
            message: Human-readable error message
            command: The argv that was executed
            returncode: Process exit status, if the process ran
            stderr: Captured standard error (truncated)
            details: Optional structured data for debugging
        """
        details = details or {}
        if command:
            details["command"] = " ".join(command)
        if returncode is not None:
            details["returncode"] = returncode
        if stderr:
            details["stderr"] = stderr[:200]

        super().__init__(message, details=details)
        self.command = command or []
        self.returncode = returncode
        self.stderr = stderr


class RemoteTimeoutError(RemoteToolError):
    """Raised when a remote operation exceeds its wall-clock budget."""

    def __init__(
        self,
        message: str = "Remote operation timed out",
        *,
        command: list[str] | None = None,
        timeout_seconds: float | None = None,
    ):
        details = {}
        if timeout_seconds is not None:
            details["timeout_seconds"] = timeout_seconds
        super().__init__(message, command=command, details=details)
        self.timeout_seconds = timeout_seconds


class TierAccessError(BackupLifecycleError):
    """Raised when a tier's storage location cannot be created or accessed."""

    def __init__(
        self,
        message: str,
        *,
        tier: str | None = None,
        path: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if tier:
            details["tier"] = tier
        if path:
            details["path"] = path

        super().__init__(message, details=details)
        self.tier = tier
        self.path = path


class LockTimeoutError(BackupLifecycleError):
    """Raised when an advisory file lock is not acquired within its timeout."""

    def __init__(
        self,
        message: str = "Lock not acquired",
        *,
        lock_path: str | None = None,
        timeout_seconds: float | None = None,
    ):
        details: dict[str, Any] = {}
        if lock_path:
            details["lock_path"] = lock_path
        if timeout_seconds is not None:
            details["timeout_seconds"] = timeout_seconds
        super().__init__(message, details=details)
        self.lock_path = lock_path
        self.timeout_seconds = timeout_seconds


def format_exception(error: Exception) -> str:
    """
    Format an exception for user-friendly display.

    Args:
        error: The exception to format

    Returns:
        Formatted error message string
    """
    if isinstance(error, BackupLifecycleError):
        return str(error)
    return f"{error.__class__.__name__}: {error}"
