"""Failure taxonomy shared by the installer components."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Sequence


class InstallerError(RuntimeError):
    """Base class for typed installer failures."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class ProcessFailedError(InstallerError):
    """Raised when an external command exits with a non-zero status."""

    def __init__(
        self,
        command: Sequence[str],
        exit_code: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = tuple(command)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            f"`{' '.join(self.command)}` exited with code {exit_code}",
            details={"exit_code": exit_code, "stdout": stdout, "stderr": stderr},
        )


class FileMissingError(InstallerError):
    """Raised when a source file expected in the project is absent."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        super().__init__(f"File does not exist at path {self.path}.", details={"path": self.path.as_posix()})


class StubNotFoundError(InstallerError):
    """Raised when a named stub template cannot be located."""

    def __init__(self, stub_id: str, searched: Sequence[str] = ()) -> None:
        self.stub_id = stub_id
        self.searched = tuple(searched)
        locations = ", ".join(self.searched) or "no locations"
        super().__init__(
            f"Stub '{stub_id}' not found (searched {locations}).",
            details={"stub_id": stub_id, "searched": list(self.searched)},
        )


class StubTargetExistsError(InstallerError):
    """Raised when a stub target exists and the mapping forbids skipping."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        super().__init__(f"Target already exists at {self.path}.", details={"path": self.path.as_posix()})


class ConfigError(InstallerError):
    """Raised when the installer configuration cannot be loaded."""


__all__ = [
    "ConfigError",
    "FileMissingError",
    "InstallerError",
    "ProcessFailedError",
    "StubNotFoundError",
    "StubTargetExistsError",
]
