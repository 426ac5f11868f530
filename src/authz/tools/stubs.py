"""Stub template lookup and copy-if-absent provisioning."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Iterable, List, Tuple

from authz.errors import StubNotFoundError, StubTargetExistsError
from .telemetry import emit_event

LOGGER = logging.getLogger(__name__)

STUB_SUFFIX = ".stub"

# Stub ids shipped with the package.
USER_ROLE_ENUM = "enums.user_role"
ROLE_MODEL = "models.role"
ROLE_FACTORY = "database.factories.role_factory"
USER_SEEDER = "database.seeders.user"
DEFAULT_ROLES_MIGRATION = "database.migrations.create_default_roles"

BUNDLED_STUB_IDS: Tuple[str, ...] = (
    USER_ROLE_ENUM,
    ROLE_MODEL,
    ROLE_FACTORY,
    USER_SEEDER,
    DEFAULT_ROLES_MIGRATION,
)


class OnExists(str, Enum):
    """Policy applied when a stub target already exists."""

    SKIP = "skip"
    ERROR = "error"


class ProvisionResult(str, Enum):
    """Outcome of provisioning one stub."""

    CREATED = "created"
    SKIPPED_EXISTS = "skipped-exists"


@dataclass(frozen=True, slots=True)
class StubMapping:
    """Copy ``stub_id`` to ``target`` and optionally a companion right after."""

    stub_id: str
    target: Path
    on_exists: OnExists = OnExists.SKIP
    companion: "StubMapping | None" = None
    label: str = ""

    def chain(self) -> List["StubMapping"]:
        """Return this mapping followed by its companions, in provisioning order."""
        mappings: List[StubMapping] = []
        cursor: StubMapping | None = self
        while cursor is not None:
            mappings.append(cursor)
            cursor = cursor.companion
        return mappings


def _bundled_root() -> Traversable:
    return resources.files("authz") / "stubs"


class StubStore:
    """Read-only set of named templates.

    A stub id resolves to ``<stub_id>.stub`` in each directory of
    ``search_paths`` in order, then in the templates bundled with the package,
    so a project can override any template by dropping a file in its own
    ``stubs/`` directory.
    """

    def __init__(self, search_paths: Iterable[Path | str] = (), *, include_bundled: bool = True) -> None:
        self.search_paths: Tuple[Path, ...] = tuple(Path(path) for path in search_paths)
        self.include_bundled = include_bundled

    def _candidates(self, stub_id: str) -> List[Traversable]:
        filename = f"{stub_id}{STUB_SUFFIX}"
        candidates: List[Traversable] = [path / filename for path in self.search_paths]
        if self.include_bundled:
            candidates.append(_bundled_root() / filename)
        return candidates

    def resolve(self, stub_id: str) -> Traversable:
        """Return the first existing template for ``stub_id``."""
        candidates = self._candidates(stub_id)
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        raise StubNotFoundError(stub_id, searched=[str(candidate) for candidate in candidates])

    def read(self, stub_id: str) -> bytes:
        return self.resolve(stub_id).read_bytes()

    def available(self) -> List[Tuple[str, str]]:
        """List ``(stub_id, location)`` pairs for every resolvable stub."""
        stub_ids: set[str] = set()
        for path in self.search_paths:
            if path.is_dir():
                stub_ids.update(entry.name[: -len(STUB_SUFFIX)] for entry in path.glob(f"*{STUB_SUFFIX}"))
        if self.include_bundled:
            stub_ids.update(
                entry.name[: -len(STUB_SUFFIX)]
                for entry in _bundled_root().iterdir()
                if entry.name.endswith(STUB_SUFFIX)
            )
        return [(stub_id, str(self.resolve(stub_id))) for stub_id in sorted(stub_ids)]


class StubProvisioner:
    """Copy stubs into a project without ever overwriting existing files."""

    def __init__(self, store: StubStore) -> None:
        self.store = store

    def provision(self, mapping: StubMapping) -> ProvisionResult:
        """Copy a single stub (ignoring its companion)."""
        content = self.store.read(mapping.stub_id)
        target = Path(mapping.target)

        if target.exists():
            if mapping.on_exists is OnExists.ERROR:
                raise StubTargetExistsError(target)
            LOGGER.info("%s already exists, skipping creation.", target)
            emit_event("stub_skipped", stub_id=mapping.stub_id, target=target)
            return ProvisionResult.SKIPPED_EXISTS

        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            with target.open("xb") as handle:
                handle.write(content)
        except FileExistsError:
            if mapping.on_exists is OnExists.ERROR:
                raise StubTargetExistsError(target) from None
            return ProvisionResult.SKIPPED_EXISTS

        emit_event("stub_created", stub_id=mapping.stub_id, target=target)
        return ProvisionResult.CREATED

    def provision_all(self, mapping: StubMapping) -> List[Tuple[StubMapping, ProvisionResult]]:
        """Provision ``mapping`` and then each companion in its chain."""
        return [(entry, self.provision(entry)) for entry in mapping.chain()]


__all__ = [
    "BUNDLED_STUB_IDS",
    "DEFAULT_ROLES_MIGRATION",
    "OnExists",
    "ProvisionResult",
    "ROLE_FACTORY",
    "ROLE_MODEL",
    "StubMapping",
    "StubProvisioner",
    "StubStore",
    "USER_ROLE_ENUM",
    "USER_SEEDER",
]
