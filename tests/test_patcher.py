from __future__ import annotations

import logging
import re
import tempfile
from pathlib import Path

import pytest

from authz.errors import FileMissingError
from authz.tools.patcher import (
    AfterFirstOccurrenceOfAny,
    AfterLiteral,
    AfterOpeningBrace,
    AfterPattern,
    BeforeFirstMatch,
    FileTarget,
    PatchDirective,
    ReplaceBlock,
    apply_directives,
    contains_normalised,
    detect_newline,
    patch_file,
    patch_text,
)


def test_after_literal_inserts_import_after_namespace() -> None:
    text = "namespace App\\Models;\n"
    directive = PatchDirective(
        locator=AfterLiteral("namespace App\\Models;\n"),
        insertion="\nuse Foo;",
        idempotency_key="use Foo;",
    )

    patched = patch_text(text, [directive])

    assert patched == "namespace App\\Models;\n\nuse Foo;"
    assert patch_text(patched, [directive]) == patched


@pytest.mark.parametrize(
    "directive",
    [
        PatchDirective(AfterLiteral("<?php\n"), insertion="\n// header\n"),
        PatchDirective(AfterPattern(r"^class \w+", group=0), insertion=" extends Base"),
        PatchDirective(AfterFirstOccurrenceOfAny(("missing", "<?php\n")), insertion="declare(strict_types=1);\n"),
        PatchDirective(BeforeFirstMatch(r"^class "), insertion="final "),
        PatchDirective(AfterOpeningBrace("class Demo"), insertion="\n    use Helpers;"),
        PatchDirective(ReplaceBlock(r"use HasFactory, Notifiable", "use Authorizable, HasFactory, Notifiable")),
    ],
    ids=["literal", "pattern", "any", "before", "brace", "replace"],
)
def test_every_locator_is_idempotent(directive: PatchDirective) -> None:
    text = "<?php\n\nclass Demo\n{\n    use HasFactory, Notifiable;\n}\n"

    once = patch_text(text, [directive])
    twice = patch_text(once, [directive])

    assert once != text
    assert twice == once


def test_dependent_directives_require_caller_order() -> None:
    text = "namespace App;\n"
    add_foo = PatchDirective(AfterLiteral("namespace App;\n"), insertion="use Foo;\n")
    add_bar = PatchDirective(AfterLiteral("use Foo;\n"), insertion="use Bar;\n")

    ordered = apply_directives(text, [add_foo, add_bar])
    reversed_report = apply_directives(text, [add_bar, add_foo])

    assert ordered.text == "namespace App;\nuse Foo;\nuse Bar;\n"
    assert "use Bar;" not in reversed_report.text
    assert "use Foo;" in reversed_report.text
    assert len(reversed_report.skipped) == 1


def test_missing_anchor_is_skipped_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    text = "<?php\n\nclass Demo {}\n"
    missing = PatchDirective(AfterOpeningBrace("public function boot(): void"), insertion="\n        boot();")
    present = PatchDirective(AfterLiteral("<?php\n"), insertion="\n// ok\n")

    with caplog.at_level(logging.WARNING, logger="authz.tools.patcher"):
        report = apply_directives(text, [missing, present])

    assert report.applied == ["// ok"]
    assert len(report.skipped) == 1
    assert "public function boot(): void" in report.skipped[0]
    assert "public function boot(): void" in caplog.text
    assert report.text == "<?php\n\n// ok\n\nclass Demo {}\n"


def test_idempotency_key_ignores_whitespace_differences() -> None:
    text = "public function boot(): void\n{\n    Authorization::useRoleModel(roleModel:\n        Role::class);\n}\n"
    directive = PatchDirective(
        AfterOpeningBrace("public function boot(): void"),
        insertion="\n        Authorization::useRoleModel(roleModel: Role::class);",
    )

    report = apply_directives(text, [directive])

    assert report.text == text
    assert report.already_present == ["Authorization::useRoleModel(roleModel: Role::class);"]
    assert contains_normalised("a  b\n\tc", "a b c")
    assert not contains_normalised("anything", "   ")


def test_after_pattern_uses_capture_group_end() -> None:
    text = "class Foo {\n}\n"
    directive = PatchDirective(AfterPattern(r"class (\w+) \{", group=1), insertion=" extends Bar")

    assert patch_text(text, [directive]) == "class Foo extends Bar {\n}\n"


def test_first_listed_candidate_wins_over_earliest_position() -> None:
    text = "alpha\nbeta\n"
    directive = PatchDirective(AfterFirstOccurrenceOfAny(("beta\n", "alpha\n")), insertion="gamma\n")

    assert patch_text(text, [directive]) == "alpha\nbeta\ngamma\n"


def test_replace_block_is_literal_and_can_shrink() -> None:
    text = "before\n// region\nlots of old text\n// endregion\nafter\n"
    directive = PatchDirective(
        ReplaceBlock(r"// region\n.*?// endregion\n", "use App\\Models\\Role;\n", flags=re.DOTALL),
        idempotency_key="use App\\Models\\Role;",
    )

    patched = patch_text(text, [directive])

    assert patched == "before\nuse App\\Models\\Role;\nafter\n"
    assert len(patched) < len(text)


def test_replace_block_only_rewrites_first_match() -> None:
    text = "use HasFactory, Notifiable;\nuse HasFactory, Notifiable;\n"
    directive = PatchDirective(ReplaceBlock(r"use HasFactory, Notifiable", "use Authorizable, HasFactory, Notifiable"))

    patched = patch_text(text, [directive])

    assert patched == "use Authorizable, HasFactory, Notifiable;\nuse HasFactory, Notifiable;\n"


def test_fallback_locator_used_when_primary_missing() -> None:
    text = "<?php\n\nnamespace App\\Providers;\n\nclass AppServiceProvider {}\n"
    directive = PatchDirective(
        BeforeFirstMatch(r"^use\s+.+;"),
        insertion="use App\\Models\\Role;\n",
        idempotency_key="use App\\Models\\Role;",
        fallback=PatchDirective(AfterLiteral("namespace App\\Providers;"), insertion="\n\nuse App\\Models\\Role;"),
    )

    patched = patch_text(text, [directive])

    assert patched == "<?php\n\nnamespace App\\Providers;\n\nuse App\\Models\\Role;\n\nclass AppServiceProvider {}\n"
    assert patch_text(patched, [directive]) == patched


def test_opening_brace_heuristic_takes_first_signature_even_in_comment() -> None:
    text = (
        "// see public function boot(): void {\n"
        "public function boot(): void\n"
        "{\n"
        "}\n"
    )
    directive = PatchDirective(AfterOpeningBrace("public function boot(): void"), insertion=" inserted();")

    patched = patch_text(text, [directive])

    assert patched.startswith("// see public function boot(): void { inserted();\n")


def test_patch_file_writes_changes_atomically(tmp_path: Path) -> None:
    target = tmp_path / "Demo.php"
    target.write_text("<?php\n\nnamespace App;\n", encoding="utf-8")
    directive = PatchDirective(AfterLiteral("namespace App;\n"), insertion="\nuse Foo;\n")

    first = patch_file(FileTarget(target), [directive])
    second = patch_file(FileTarget(target), [directive])

    assert first.changed
    assert not second.changed
    assert target.read_text(encoding="utf-8") == "<?php\n\nnamespace App;\n\nuse Foo;\n"
    assert sorted(path.name for path in tmp_path.iterdir()) == ["Demo.php"]


def test_patch_file_preserves_crlf_line_endings(tmp_path: Path) -> None:
    target = tmp_path / "Demo.php"
    target.write_bytes(b"<?php\r\nnamespace App;\r\n")
    directive = PatchDirective(AfterLiteral("namespace App;"), insertion="\r\nuse Foo;")

    patch_file(FileTarget(target), [directive])

    assert target.read_bytes() == b"<?php\r\nnamespace App;\r\nuse Foo;\r\n"


def test_patch_file_missing_required_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileMissingError) as excinfo:
        patch_file(FileTarget(tmp_path / "Missing.php"), [])

    assert excinfo.value.path == tmp_path / "Missing.php"


def test_patch_file_missing_optional_file_is_skipped(tmp_path: Path) -> None:
    target = tmp_path / "Optional.php"
    directive = PatchDirective(AfterLiteral("x"), insertion="y")

    report = patch_file(FileTarget(target, must_exist=False), [directive])

    assert not target.exists()
    assert not report.changed
    assert report.skipped and "does not exist" in report.skipped[0]


@pytest.mark.parametrize(
    "build",
    [
        lambda: PatchDirective(ReplaceBlock(r"// TODO\n", "")),
        lambda: PatchDirective(AfterLiteral("{"), insertion="\n"),
    ],
    ids=["deletion", "whitespace-insertion"],
)
def test_directive_without_usable_key_is_rejected(build) -> None:
    with pytest.raises(ValueError, match="non-blank idempotency key"):
        build()


def test_deletion_with_explicit_key_is_applied_once() -> None:
    text = "a\n// TODO\nb\n"
    directive = PatchDirective(ReplaceBlock(r"// TODO\n", ""), idempotency_key="a\nb\n")

    once = patch_text(text, [directive])

    assert once == "a\nb\n"
    assert patch_text(once, [directive]) == once


def test_present_pattern_marks_equivalent_fragment_as_applied() -> None:
    text = "class User\n{\n    use HasFactory, Notifiable, Authorizable;\n}\n"
    directive = PatchDirective(
        AfterPattern(r"^[ \t]+use\s+"),
        insertion="Authorizable, ",
        present_pattern=r"^[ \t]+use\s+[^;]*\bAuthorizable\b",
    )

    report = apply_directives(text, [directive])

    assert report.text == text
    assert report.already_present == ["Authorizable,"]


def test_patch_file_converts_lf_insertions_for_crlf_files(tmp_path: Path) -> None:
    target = tmp_path / "Demo.php"
    target.write_bytes(b"<?php\r\n\r\nnamespace App;\r\n\r\nclass Demo\r\n{\r\n}\r\n")
    directives = [
        PatchDirective(AfterLiteral("namespace App;\n"), insertion="\nuse Foo;\n"),
        PatchDirective(AfterOpeningBrace("class Demo"), insertion="\n    use Helpers;"),
    ]

    first = patch_file(FileTarget(target), directives)
    second = patch_file(FileTarget(target), directives)

    assert target.read_bytes() == (
        b"<?php\r\n\r\nnamespace App;\r\n\r\nuse Foo;\r\n\r\nclass Demo\r\n{\r\n    use Helpers;\r\n}\r\n"
    )
    assert first.changed
    assert not second.changed
    assert second.original == second.text


def test_detect_newline_only_reports_crlf_for_consistent_files() -> None:
    assert detect_newline("a\r\nb\r\n") == "\r\n"
    assert detect_newline("a\r\nb\n") == "\n"
    assert detect_newline("a\nb\n") == "\n"
    assert detect_newline("single line") == "\n"


class _FailingWrites:
    def __init__(self, handle) -> None:
        self._handle = handle

    def __getattr__(self, name: str):
        return getattr(self._handle, name)

    def __enter__(self) -> "_FailingWrites":
        return self

    def __exit__(self, *exc_info) -> bool:
        self._handle.close()
        return False

    def write(self, data: str) -> int:
        raise OSError(28, "No space left on device")


def test_failed_write_leaves_original_and_no_temp_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    target = tmp_path / "User.php"
    target.write_text("<?php\n\nnamespace App;\n", encoding="utf-8")
    real_temporary_file = tempfile.NamedTemporaryFile
    monkeypatch.setattr(
        tempfile,
        "NamedTemporaryFile",
        lambda *args, **kwargs: _FailingWrites(real_temporary_file(*args, **kwargs)),
    )
    directive = PatchDirective(AfterLiteral("namespace App;\n"), insertion="\nuse Foo;\n")

    with pytest.raises(OSError):
        patch_file(FileTarget(target), [directive])

    assert target.read_text(encoding="utf-8") == "<?php\n\nnamespace App;\n"
    assert sorted(path.name for path in tmp_path.iterdir()) == ["User.php"]
