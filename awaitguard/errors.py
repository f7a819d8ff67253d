# awaitguard/errors.py
"""
Error types raised by the awaitguard host.

Hierarchy
─────────
  AwaitGuardError (base)
  ├── ConfigError   - malformed configuration file or option value
  └── SourceError   - a source file that cannot be read or parsed

The lint rules themselves never raise: degenerate inputs resolve to "no
diagnostic".  These exceptions belong to the host (configuration loading,
lowering) and are turned into exit codes or informational diagnostics by
the driver.
"""

from __future__ import annotations

from typing import Optional


class AwaitGuardError(Exception):
    """Base class for all awaitguard errors."""


class ConfigError(AwaitGuardError):
    """Raised when a configuration file or option cannot be understood."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        self.message = message
        self.path = path
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message


class SourceError(AwaitGuardError):
    """Raised when a Python source file cannot be read or parsed."""

    def __init__(
        self,
        message: str,
        filename: str = "",
        line: int = 0,
        column: int = 0,
    ) -> None:
        self.message = message
        self.filename = filename
        self.line = line
        self.column = column
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.filename and self.line:
            return f"{self.filename}:{self.line}:{self.column}: {self.message}"
        if self.filename:
            return f"{self.filename}: {self.message}"
        return self.message


__all__ = [
    "AwaitGuardError",
    "ConfigError",
    "SourceError",
]
