"""File, stub and process primitives used by the installer steps."""

from .patcher import (
    AfterFirstOccurrenceOfAny,
    AfterLiteral,
    AfterOpeningBrace,
    AfterPattern,
    BeforeFirstMatch,
    FileTarget,
    PatchDirective,
    PatchReport,
    ReplaceBlock,
    apply_directives,
    patch_file,
    patch_text,
)
from .process import ProcessOutcome, ProcessRunner
from .stubs import OnExists, ProvisionResult, StubMapping, StubProvisioner, StubStore

__all__ = [
    "AfterFirstOccurrenceOfAny",
    "AfterLiteral",
    "AfterOpeningBrace",
    "AfterPattern",
    "BeforeFirstMatch",
    "FileTarget",
    "OnExists",
    "PatchDirective",
    "PatchReport",
    "ProcessOutcome",
    "ProcessRunner",
    "ProvisionResult",
    "ReplaceBlock",
    "StubMapping",
    "StubProvisioner",
    "StubStore",
    "apply_directives",
    "patch_file",
    "patch_text",
]
