"""
Structured error types for game-save-backuper.

Every failure the daemon can report is a ``BackuperError`` subclass carrying
a category, a retry hint, free-form context and the chained cause. The
category decides how the failure is handled:

- **CONFIG / PARSE:** fatal at startup, the process reports and exits
- **NETWORK:** remote command failures, abort the current tick
- **STORAGE:** archive or ledger failures, isolated to one backup target
- **ORCHESTRATION:** tick-level failures, logged and the loop continues

Manifesto:
    - **Typed Error Hierarchy:** Different error types for different failure domains
    - **Rich Context:** Errors carry the target, command or path they relate to
    - **Error Chaining:** Preserve original exceptions as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                        BackuperError                             │
        │            (category, retryable, context, cause)                 │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConfigError            ProtocolError       StorageError         │
        │  (CONFIG)               (NETWORK)           (STORAGE)            │
        │      │                                          │                │
        │  MissingConfigError                         ArchiveError         │
        │  InvalidConfigError                         LedgerError          │
        │  IntervalParseError (PARSE)                                      │
        │      ├── InvalidCharacterError                                   │
        │      ├── UnexpectedTokenError   OrchestrationError               │
        │      ├── UnsupportedIntervalError   (ORCHESTRATION)              │
        │      ├── NumberOverflowError         │                           │
        │      └── EmptyIntervalError      TickAbortedError                │
        └─────────────────────────────────────────────────────────────────┘

Tags:
    errors, exception-hierarchy, error-context, backuper-core

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    NETWORK = "NETWORK"           # RCON connection, protocol errors
    STORAGE = "STORAGE"           # Archive, ledger, filesystem
    PARSE = "PARSE"               # Interval expressions
    CONFIG = "CONFIG"             # Missing config, invalid settings
    ORCHESTRATION = "ORCHESTRATION"  # Tick / coordinator failures
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


class BackuperError(Exception):
    """
    Base exception for all game-save-backuper errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    callers only pass what differs from the defaults.

    Examples:
        >>> error = BackuperError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>

        >>> error = LedgerError("append failed").with_context(target="hourly")
        >>> error.context["target"]
        'hourly'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> BackuperError:
        """
        Add context to this error (fluent API).

        Usage:
            raise LedgerError("rename failed").with_context(
                target="daily",
                path="/backups/daily/files.txt",
            )
        """
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.context:
            result["context"] = {k: str(v) for k, v in self.context.items()}
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(BackuperError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None, **kwargs: Any):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}", **kwargs)


# =============================================================================
# INTERVAL PARSE ERRORS
# =============================================================================


class IntervalParseError(ConfigError):
    """An interval expression could not be parsed."""

    default_category = ErrorCategory.PARSE


class InvalidCharacterError(IntervalParseError):
    """A character outside letters, digits, whitespace and dash."""

    def __init__(self, offset: int):
        self.offset = offset
        super().__init__(f"invalid character at {offset}")


class UnexpectedTokenError(IntervalParseError):
    """An unknown word, a dangling keyword, or trailing input."""

    def __init__(self, token: str):
        self.token = token
        if token:
            message = f'unknown token "{token}"'
        else:
            message = "expected unit token. year, month, week, day, hour, and minute are allowed"
        super().__init__(message)


class UnsupportedIntervalError(IntervalParseError):
    """A well-formed combination that is not one of the supported intervals."""

    def __init__(self, interval: str):
        self.interval = interval
        super().__init__(f'unsupported interval: "{interval}"')


class NumberOverflowError(IntervalParseError):
    """The count does not fit in an unsigned 32-bit integer."""

    def __init__(self) -> None:
        super().__init__("number is too large")


class EmptyIntervalError(IntervalParseError):
    """The expression contained no tokens."""

    def __init__(self) -> None:
        super().__init__("value was empty")


# =============================================================================
# REMOTE COMMAND ERRORS
# =============================================================================


class ProtocolError(BackuperError):
    """
    Remote command failure.

    Raised for connection failures, authentication failures and any error
    other than a connection reset while a command is in flight.
    """

    default_category = ErrorCategory.NETWORK
    default_retryable = False


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(BackuperError):
    """Storage-related error (disk, archive, ledger)."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class ArchiveError(StorageError):
    """The snapshot archive could not be written or read."""

    pass


class LedgerError(StorageError):
    """A retention ledger operation failed for one target."""

    def __init__(self, message: str, *, target: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.target = target
        if target is not None:
            self.context.setdefault("target", target)


# =============================================================================
# ORCHESTRATION ERRORS
# =============================================================================


class OrchestrationError(BackuperError):
    """Tick or coordinator error."""

    default_category = ErrorCategory.ORCHESTRATION
    default_retryable = False


class TickAbortedError(OrchestrationError):
    """A before-command failed; the tick produced no snapshot."""

    def __init__(self, command: str, cause: BaseException):
        self.command = command
        super().__init__(f"before-command {command!r} failed: {cause}", cause=cause)


__all__ = [
    "ErrorCategory",
    "BackuperError",
    # Config
    "ConfigError",
    "MissingConfigError",
    "InvalidConfigError",
    # Interval
    "IntervalParseError",
    "InvalidCharacterError",
    "UnexpectedTokenError",
    "UnsupportedIntervalError",
    "NumberOverflowError",
    "EmptyIntervalError",
    # Remote
    "ProtocolError",
    # Storage
    "StorageError",
    "ArchiveError",
    "LedgerError",
    # Orchestration
    "OrchestrationError",
    "TickAbortedError",
]
