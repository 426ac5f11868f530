"""Role-based authorization installer for Laravel projects."""

from .config import InstallerConfig, load_config
from .installer import AuthorizationInstaller
from .workflow import InstallationWorkflow, OutcomeKind, WorkflowOutcome, WorkflowState, WorkflowStep

__all__ = [
    "AuthorizationInstaller",
    "InstallationWorkflow",
    "InstallerConfig",
    "OutcomeKind",
    "WorkflowOutcome",
    "WorkflowState",
    "WorkflowStep",
    "load_config",
]
