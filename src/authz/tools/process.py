"""External command execution with captured output."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Sequence

from authz.errors import ProcessFailedError
from .telemetry import emit_event

LOGGER = logging.getLogger(__name__)

# Conventional shell status for "command not found".
_NOT_FOUND_EXIT_CODE = 127


@dataclass(frozen=True, slots=True)
class ProcessOutcome:
    """Captured result of a finished command."""

    command: tuple[str, ...]
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def _split_command(command: str | Sequence[str]) -> tuple[str, ...]:
    if isinstance(command, str):
        return tuple(shlex.split(command))
    return tuple(str(part) for part in command)


class ProcessRunner:
    """Run commands in a working directory and raise on non-zero exit.

    Commands inherit the current environment (plus ``env`` overrides) and block
    until they finish; no timeout is applied.  Standard output of successful
    commands is forwarded to ``echo`` so the operator can follow along.
    """

    def __init__(
        self,
        cwd: Path | str | None = None,
        *,
        echo: Callable[[str], None] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.cwd = Path(cwd).resolve() if cwd is not None else None
        self.echo = echo
        self.env = dict(env) if env else None

    def _merged_env(self) -> dict[str, str] | None:
        if self.env is None:
            return None
        merged = os.environ.copy()
        merged.update(self.env)
        return merged

    def run(self, command: str | Sequence[str]) -> ProcessOutcome:
        """Execute ``command`` and return its outcome, raising on failure."""
        args = _split_command(command)
        if not args:
            raise ValueError("Cannot run an empty command.")

        LOGGER.debug("Running %s in %s", shlex.join(args), self.cwd or Path.cwd())
        try:
            process = subprocess.run(  # noqa: S603  # commands come from installer configuration
                list(args),
                cwd=self.cwd,
                env=self._merged_env(),
                capture_output=True,
                text=False,
                check=False,
            )
        except FileNotFoundError as error:
            emit_event("process_missing", command=args)
            raise ProcessFailedError(args, _NOT_FOUND_EXIT_CODE, "", str(error)) from error

        stdout = process.stdout.decode("utf-8", errors="replace") if process.stdout else ""
        stderr = process.stderr.decode("utf-8", errors="replace") if process.stderr else ""
        outcome = ProcessOutcome(command=args, exit_code=process.returncode, stdout=stdout, stderr=stderr)
        emit_event("process_finished", command=args, exit_code=outcome.exit_code)

        if not outcome.ok:
            raise ProcessFailedError(args, outcome.exit_code, stdout, stderr)

        if stdout.strip() and self.echo is not None:
            self.echo(stdout.rstrip("\n"))
        return outcome


__all__ = ["ProcessOutcome", "ProcessRunner"]
