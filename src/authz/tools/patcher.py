"""Idempotent structural text patching for source files.

Directives describe *where* a fragment belongs (a locator) and *what* to put
there.  Locators are literal or regex heuristics, not a parser: they find the
first structurally plausible anchor and nothing more.  Known blind spots:

* the first match always wins, so a signature or ``namespace`` line that also
  appears inside a comment earlier in the file is taken as the anchor;
* :class:`AfterOpeningBrace` takes the first ``{`` after the signature, which
  is wrong when a default argument contains a brace;
* :class:`ReplaceBlock` only rewrites the first of several similar blocks.

Files whose line breaks are all CRLF are patched in LF form and converted
back, so directives are always written with ``"\\n"``.

Directives are applied in the order given, each against the text produced by
the previous ones.  A directive whose idempotency key (or ``present_pattern``)
is already found is a no-op, and a directive whose anchor cannot be found is
skipped with a warning.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Pattern, Sequence, Tuple, Union

from authz.errors import FileMissingError
from .telemetry import emit_event

LOGGER = logging.getLogger(__name__)

_WHITESPACE_RUN = re.compile(r"\s+")

Span = Tuple[int, int]


def normalise_whitespace(text: str) -> str:
    """Collapse runs of whitespace into single spaces."""
    return _WHITESPACE_RUN.sub(" ", text)


def contains_normalised(haystack: str, needle: str) -> bool:
    """Return ``True`` when ``needle`` occurs in ``haystack`` ignoring spacing differences."""
    key = normalise_whitespace(needle).strip()
    if not key:
        return False
    return key in normalise_whitespace(haystack)


def _compile(pattern: str | Pattern[str], flags: int) -> Pattern[str]:
    if isinstance(pattern, str):
        return re.compile(pattern, flags)
    return pattern


def _pattern_text(pattern: str | Pattern[str]) -> str:
    return pattern if isinstance(pattern, str) else pattern.pattern


@dataclass(frozen=True, slots=True)
class AfterLiteral:
    """Anchor just past the first occurrence of ``text``."""

    text: str

    def locate(self, haystack: str) -> Span | None:
        index = haystack.find(self.text)
        if index < 0:
            return None
        offset = index + len(self.text)
        return offset, offset

    def describe(self) -> str:
        return f"literal {self.text.strip()!r}"


@dataclass(frozen=True, slots=True)
class AfterPattern:
    """Anchor at the end of the first regex match (or of capture ``group``)."""

    pattern: str | Pattern[str]
    group: int = 0
    flags: int = re.MULTILINE

    def locate(self, haystack: str) -> Span | None:
        match = _compile(self.pattern, self.flags).search(haystack)
        if match is None:
            return None
        offset = match.end(self.group)
        if offset < 0:
            return None
        return offset, offset

    def describe(self) -> str:
        return f"pattern {_pattern_text(self.pattern)!r}"


@dataclass(frozen=True, slots=True)
class AfterFirstOccurrenceOfAny:
    """Anchor after the first candidate literal present, tried in listed order."""

    candidates: Tuple[str, ...]

    def locate(self, haystack: str) -> Span | None:
        for candidate in self.candidates:
            span = AfterLiteral(candidate).locate(haystack)
            if span is not None:
                return span
        return None

    def describe(self) -> str:
        joined = ", ".join(repr(candidate.strip()) for candidate in self.candidates)
        return f"any of [{joined}]"


@dataclass(frozen=True, slots=True)
class BeforeFirstMatch:
    """Anchor at the start of the first regex match."""

    pattern: str | Pattern[str]
    flags: int = re.MULTILINE

    def locate(self, haystack: str) -> Span | None:
        match = _compile(self.pattern, self.flags).search(haystack)
        if match is None:
            return None
        return match.start(), match.start()

    def describe(self) -> str:
        return f"pattern {_pattern_text(self.pattern)!r}"


@dataclass(frozen=True, slots=True)
class AfterOpeningBrace:
    """Anchor just inside the first ``{`` following a literal signature."""

    signature: str

    def locate(self, haystack: str) -> Span | None:
        position = haystack.find(self.signature)
        if position < 0:
            return None
        brace = haystack.find("{", position + len(self.signature))
        if brace < 0:
            return None
        return brace + 1, brace + 1

    def describe(self) -> str:
        return f"opening brace after {self.signature!r}"


@dataclass(frozen=True, slots=True)
class ReplaceBlock:
    """Replace the first regex match wholesale with ``replacement``.

    The replacement is spliced literally; backreferences are not expanded.
    """

    pattern: str | Pattern[str]
    replacement: str
    flags: int = re.MULTILINE

    def locate(self, haystack: str) -> Span | None:
        match = _compile(self.pattern, self.flags).search(haystack)
        if match is None:
            return None
        return match.start(), match.end()

    def describe(self) -> str:
        return f"block {_pattern_text(self.pattern)!r}"


Locator = Union[
    AfterLiteral,
    AfterPattern,
    AfterFirstOccurrenceOfAny,
    BeforeFirstMatch,
    AfterOpeningBrace,
    ReplaceBlock,
]


@dataclass(frozen=True, slots=True)
class PatchDirective:
    """Instruction to splice ``insertion`` at the anchor resolved by ``locator``.

    ``idempotency_key`` defaults to the stripped insertion (or replacement for
    :class:`ReplaceBlock`) and must not be blank.  ``present_pattern`` is an
    optional regex that also marks the directive as already applied, for
    fragments that may exist in a form other than the one inserted.
    ``fallback`` is tried when ``locator`` cannot be resolved; it shares
    nothing with the primary directive.
    """

    locator: Locator
    insertion: str = ""
    idempotency_key: str = ""
    description: str = ""
    fallback: "PatchDirective | None" = None
    present_pattern: str | Pattern[str] | None = None

    def __post_init__(self) -> None:
        if not normalise_whitespace(self.key).strip():
            raise ValueError(
                f"Directive at {self.locator.describe()} needs a non-blank idempotency key."
            )

    @property
    def key(self) -> str:
        if self.idempotency_key.strip():
            return self.idempotency_key
        if isinstance(self.locator, ReplaceBlock):
            return self.locator.replacement
        return self.insertion

    @property
    def payload(self) -> str:
        if isinstance(self.locator, ReplaceBlock):
            return self.locator.replacement
        return self.insertion

    @property
    def label(self) -> str:
        return self.description or normalise_whitespace(self.key).strip()

    def is_present(self, text: str) -> bool:
        if contains_normalised(text, self.key):
            return True
        if self.present_pattern is None:
            return False
        return _compile(self.present_pattern, re.MULTILINE).search(text) is not None


@dataclass(slots=True)
class PatchReport:
    """Outcome of applying a sequence of directives to one text buffer."""

    original: str
    text: str
    applied: list[str] = field(default_factory=list)
    already_present: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    path: Path | None = None

    @property
    def changed(self) -> bool:
        return self.text != self.original


def _splice(text: str, directive: PatchDirective) -> str | None:
    span = directive.locator.locate(text)
    if span is None:
        return None
    start, end = span
    return text[:start] + directive.payload + text[end:]


def apply_directives(text: str, directives: Sequence[PatchDirective]) -> PatchReport:
    """Apply ``directives`` in order and report what happened to each."""
    report = PatchReport(original=text, text=text)
    for directive in directives:
        current = report.text
        if directive.is_present(current):
            report.already_present.append(directive.label)
            LOGGER.debug("Skipping %s: already present", directive.label)
            continue

        candidate: PatchDirective | None = directive
        patched: str | None = None
        tried: list[str] = []
        while candidate is not None and patched is None:
            tried.append(candidate.locator.describe())
            patched = _splice(current, candidate)
            candidate = candidate.fallback

        if patched is None:
            message = f"Could not locate {' or '.join(tried)} for {directive.label}."
            report.skipped.append(message)
            LOGGER.warning(message)
            continue

        report.text = patched
        report.applied.append(directive.label)
    return report


def patch_text(text: str, directives: Sequence[PatchDirective]) -> str:
    """Return ``text`` with every resolvable directive applied exactly once."""
    return apply_directives(text, directives).text


@dataclass(frozen=True, slots=True)
class FileTarget:
    """Source file to patch in place."""

    path: Path
    must_exist: bool = True


def detect_newline(text: str) -> str:
    """Return ``"\\r\\n"`` when every line break in ``text`` is CRLF, else ``"\\n"``."""
    crlf = text.count("\r\n")
    if crlf and crlf == text.count("\n"):
        return "\r\n"
    return "\n"


def _atomic_write(path: Path, content: str) -> None:
    """Replace ``path`` with ``content`` so readers see either old or new text."""
    handle = tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        newline="",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    )
    temp_path = Path(handle.name)
    try:
        with handle:
            handle.write(content)
        shutil.copymode(path, temp_path)
        os.replace(temp_path, path)
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise


def patch_file(target: FileTarget, directives: Sequence[PatchDirective]) -> PatchReport:
    """Read ``target``, apply ``directives`` and write back only when changed."""
    path = Path(target.path)
    if not path.is_file():
        if target.must_exist:
            raise FileMissingError(path)
        message = f"{path} does not exist; skipping {len(directives)} edit(s)."
        LOGGER.warning(message)
        report = PatchReport(original="", text="", path=path)
        report.skipped.append(message)
        return report

    with path.open("r", encoding="utf-8", newline="") as handle:
        original = handle.read()

    newline = detect_newline(original)
    if newline == "\n":
        report = apply_directives(original, directives)
    else:
        # Directives are written with "\n"; patch in LF and convert back.
        report = apply_directives(original.replace(newline, "\n"), directives)
        report.original = original
        report.text = report.text.replace(newline, "\n").replace("\n", newline)
    report.path = path
    if report.changed:
        _atomic_write(path, report.text)

    emit_event(
        "file_patched",
        path=path,
        changed=report.changed,
        applied=report.applied,
        already_present=report.already_present,
        skipped=report.skipped,
    )
    return report


__all__ = [
    "AfterFirstOccurrenceOfAny",
    "AfterLiteral",
    "AfterOpeningBrace",
    "AfterPattern",
    "BeforeFirstMatch",
    "FileTarget",
    "Locator",
    "PatchDirective",
    "PatchReport",
    "ReplaceBlock",
    "apply_directives",
    "contains_normalised",
    "detect_newline",
    "normalise_whitespace",
    "patch_file",
    "patch_text",
]
