"""Sequential installation workflow with a confirm-gated start and final step.

The workflow never prompts by itself: the operator's answers arrive as
arguments to :meth:`InstallationWorkflow.run`, so the state machine can be
driven from tests without a terminal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Sequence

from .errors import FileMissingError, ProcessFailedError, StubNotFoundError

LOGGER = logging.getLogger(__name__)

Echo = Callable[[str], None]


class WorkflowState(str, Enum):
    """Lifecycle of a single workflow run."""

    NOT_STARTED = "not-started"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class OutcomeKind(str, Enum):
    """Why the workflow ended the way it did."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class WorkflowStep:
    """Named unit of work; raising from ``action`` aborts the workflow."""

    name: str
    action: Callable[[], None]


@dataclass(slots=True)
class WorkflowOutcome:
    """Final state of a workflow run."""

    state: WorkflowState
    kind: OutcomeKind
    completed_steps: List[str] = field(default_factory=list)
    failed_step: str | None = None
    error: BaseException | None = None
    message: str = ""
    final_step_ran: bool = False

    @property
    def exit_code(self) -> int:
        return 1 if self.kind is OutcomeKind.FAILED else 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def describe_failure(error: BaseException) -> str:
    """Render a step failure as an operator-facing message."""
    if isinstance(error, ProcessFailedError):
        return f"Process failed: {error} \nOutput:\n{error.stdout}\nError Output:\n{error.stderr}"
    if isinstance(error, FileMissingError):
        return f"File not found: {error}"
    if isinstance(error, StubNotFoundError):
        return f"Stub not found: {error}"
    return f"An error occurred: {error}"


class InstallationWorkflow:
    """Run ``steps`` in order, stopping at the first failure.

    ``final_step`` runs after every other step succeeded and only when the
    operator agrees to it; declining emits ``final_step_declined`` and still
    counts as a completed run.  Nothing is rolled back on failure.
    """

    def __init__(
        self,
        steps: Sequence[WorkflowStep],
        *,
        final_step: WorkflowStep | None = None,
        echo: Echo | None = None,
        start_message: str = "",
        completed_message: str = "",
        skipped_message: str = "",
        final_step_declined: str = "",
    ) -> None:
        self.steps: tuple[WorkflowStep, ...] = tuple(steps)
        self.final_step = final_step
        self._echo = echo
        self.start_message = start_message
        self.completed_message = completed_message
        self.skipped_message = skipped_message
        self.final_step_declined = final_step_declined
        self._state = WorkflowState.NOT_STARTED

    @property
    def state(self) -> WorkflowState:
        return self._state

    def _say(self, message: str) -> None:
        if message and self._echo is not None:
            self._echo(message)

    def _abort(self, outcome: WorkflowOutcome, step: WorkflowStep, error: Exception) -> WorkflowOutcome:
        self._state = WorkflowState.ABORTED
        outcome.state = self._state
        outcome.kind = OutcomeKind.FAILED
        outcome.failed_step = step.name
        outcome.error = error
        outcome.message = describe_failure(error)
        LOGGER.debug("Step %r failed", step.name, exc_info=error)
        return outcome

    def _execute(self, step: WorkflowStep, outcome: WorkflowOutcome) -> Exception | None:
        self._say(step.name)
        try:
            step.action()
        except Exception as error:
            return error
        outcome.completed_steps.append(step.name)
        return None

    def run(
        self,
        confirmed: bool,
        confirm_final_step: Callable[[], bool] | bool = False,
    ) -> WorkflowOutcome:
        """Execute the workflow once and return its outcome."""
        if self._state is not WorkflowState.NOT_STARTED:
            raise RuntimeError(f"Workflow already ran (state: {self._state.value}).")

        if not confirmed:
            self._state = WorkflowState.ABORTED
            self._say(self.skipped_message)
            return WorkflowOutcome(
                state=self._state,
                kind=OutcomeKind.SKIPPED,
                message=self.skipped_message,
            )

        self._state = WorkflowState.RUNNING
        outcome = WorkflowOutcome(state=self._state, kind=OutcomeKind.COMPLETED)
        self._say(self.start_message)

        for step in self.steps:
            error = self._execute(step, outcome)
            if error is not None:
                return self._abort(outcome, step, error)

        if self.final_step is not None:
            wants_final = confirm_final_step() if callable(confirm_final_step) else bool(confirm_final_step)
            if wants_final:
                error = self._execute(self.final_step, outcome)
                if error is not None:
                    return self._abort(outcome, self.final_step, error)
                outcome.final_step_ran = True
            else:
                self._say(self.final_step_declined)

        self._state = WorkflowState.COMPLETED
        outcome.state = self._state
        outcome.message = self.completed_message
        self._say(self.completed_message)
        return outcome


__all__ = [
    "InstallationWorkflow",
    "OutcomeKind",
    "WorkflowOutcome",
    "WorkflowState",
    "WorkflowStep",
    "describe_failure",
]
