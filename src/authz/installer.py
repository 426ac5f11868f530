"""Role-based authorization installer for Laravel projects.

Each public method on :class:`AuthorizationInstaller` is one workflow step.
File edits are expressed as :class:`PatchDirective` lists so that a second run
over an already-patched project changes nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Sequence

from .config import InstallerConfig
from .tools.patcher import (
    AfterFirstOccurrenceOfAny,
    AfterLiteral,
    AfterOpeningBrace,
    AfterPattern,
    BeforeFirstMatch,
    FileTarget,
    PatchDirective,
    PatchReport,
    patch_file,
)
from .tools.process import ProcessRunner
from .tools.stubs import (
    DEFAULT_ROLES_MIGRATION,
    ROLE_FACTORY,
    ROLE_MODEL,
    USER_ROLE_ENUM,
    USER_SEEDER,
    ProvisionResult,
    StubMapping,
    StubProvisioner,
    StubStore,
)
from .workflow import InstallationWorkflow, WorkflowStep

LOGGER = logging.getLogger(__name__)

Echo = Callable[[str], None]

USER_MODEL_NAMESPACE = "namespace App\\Models;"
AUTHORIZABLE_IMPORT = "use DirectoryTree\\Authorization\\Traits\\Authorizable;"
AUTHORIZABLE_TRAIT = "Authorizable, "

# Indented trait `use` inside a class body. The first pattern ends right after
# `use ` in a list naming HasFactory; the second finds Authorizable in any list.
TRAIT_LIST_PATTERN = r"^[ \t]+use\s+(?=[^;{}]*\bHasFactory\b)"
AUTHORIZABLE_IN_TRAIT_LIST_PATTERN = r"^[ \t]+use\s+[^;{}]*\bAuthorizable\b"

PROVIDER_NAMESPACE = "namespace App\\Providers;"
ROLE_IMPORT = "use App\\Models\\Role;"
AUTHORIZATION_IMPORT = "use DirectoryTree\\Authorization\\Authorization;"
BOOT_SIGNATURE = "public function boot(): void"
ROLE_MODEL_CONFIG_LINE = "Authorization::useRoleModel(roleModel: Role::class);"

SEEDER_RUN_SIGNATURE = "public function run(): void"
USER_SEEDER_CALL = "$this->call(UserSeeder::class);"

# Method bodies in generated Laravel classes sit two levels deep.
METHOD_BODY_INDENT = " " * 8

# First top-level import line of a PHP file.
FIRST_IMPORT_PATTERN = r"^use\s+.+;"

MIGRATION_SUFFIX = "_create_default_roles.php"
MIGRATION_TIMESTAMP_FORMAT = "%Y_%m_%d_%H%M%S"

START_MESSAGE = "Setting up Authorization"
COMPLETED_MESSAGE = "Authorization setup completed."
SKIPPED_MESSAGE = "Authorization installation skipped."
SEED_DECLINED_MESSAGE = "You can run the seeders later by executing `php artisan db:seed`"


def _import_directive(statement: str, namespace_line: str) -> PatchDirective:
    """Insert ``statement`` before the first import, or after the namespace when there is none."""
    return PatchDirective(
        locator=BeforeFirstMatch(FIRST_IMPORT_PATTERN),
        insertion=f"{statement}\n",
        idempotency_key=statement,
        description=statement,
        fallback=PatchDirective(
            locator=AfterLiteral(namespace_line),
            insertion=f"\n\n{statement}",
        ),
    )


def user_model_directives() -> List[PatchDirective]:
    """Directives adding the ``Authorizable`` trait and its import to the User model."""
    return [
        PatchDirective(
            locator=AfterFirstOccurrenceOfAny((f"{USER_MODEL_NAMESPACE}\n", USER_MODEL_NAMESPACE)),
            insertion=f"\n{AUTHORIZABLE_IMPORT}",
            idempotency_key=AUTHORIZABLE_IMPORT,
            description=AUTHORIZABLE_IMPORT,
            fallback=PatchDirective(
                locator=BeforeFirstMatch(FIRST_IMPORT_PATTERN),
                insertion=f"{AUTHORIZABLE_IMPORT}\n",
            ),
        ),
        PatchDirective(
            locator=AfterPattern(TRAIT_LIST_PATTERN),
            insertion=AUTHORIZABLE_TRAIT,
            idempotency_key=f"use {AUTHORIZABLE_TRAIT}",
            present_pattern=AUTHORIZABLE_IN_TRAIT_LIST_PATTERN,
            description="Authorizable trait in User model",
        ),
    ]


def service_provider_directives() -> List[PatchDirective]:
    """Directives registering the custom Role model in ``AppServiceProvider::boot``."""
    # Inserted in reverse so both end up above the existing imports in this order.
    return [
        _import_directive(AUTHORIZATION_IMPORT, PROVIDER_NAMESPACE),
        _import_directive(ROLE_IMPORT, PROVIDER_NAMESPACE),
        PatchDirective(
            locator=AfterOpeningBrace(BOOT_SIGNATURE),
            insertion=f"\n{METHOD_BODY_INDENT}{ROLE_MODEL_CONFIG_LINE}",
            idempotency_key=ROLE_MODEL_CONFIG_LINE,
            description="Authorization::useRoleModel() in boot()",
        ),
    ]


def database_seeder_directives() -> List[PatchDirective]:
    """Directive calling ``UserSeeder`` from ``DatabaseSeeder::run``."""
    return [
        PatchDirective(
            locator=AfterOpeningBrace(SEEDER_RUN_SIGNATURE),
            insertion=f"\n{METHOD_BODY_INDENT}{USER_SEEDER_CALL}\n",
            idempotency_key="UserSeeder::class",
            description="UserSeeder call in DatabaseSeeder::run()",
        ),
    ]


@dataclass(slots=True)
class AuthorizationInstaller:
    """Steps that install and configure ``directorytree/authorization``."""

    config: InstallerConfig
    runner: ProcessRunner
    provisioner: StubProvisioner
    echo: Echo = print
    now: Callable[[], datetime] = datetime.now
    reports: List[PatchReport] = field(default_factory=list)

    @classmethod
    def from_config(cls, config: InstallerConfig, *, echo: Echo = print) -> "AuthorizationInstaller":
        store = StubStore([config.path("stubs")])
        return cls(
            config=config,
            runner=ProcessRunner(config.project_root, echo=echo),
            provisioner=StubProvisioner(store),
            echo=echo,
        )

    # ------------------------------------------------------------------ helpers
    def _provision(self, mapping: StubMapping) -> None:
        for entry, result in self.provisioner.provision_all(mapping):
            if result is ProvisionResult.SKIPPED_EXISTS and entry.label:
                self.echo(f"{entry.label} already exists, skipping creation.")

    def _patch(self, target: FileTarget, directives: Sequence[PatchDirective]) -> PatchReport:
        report = patch_file(target, directives)
        self.reports.append(report)
        for message in report.skipped:
            self.echo(f"Warning: {message}")
        return report

    # -------------------------------------------------------------------- steps
    def install_package(self) -> None:
        self.runner.run(self.config.install_package_command)

    def run_migrations(self) -> None:
        self.runner.run(self.config.commands.migrate)

    def create_user_role_enum(self) -> None:
        self._provision(
            StubMapping(USER_ROLE_ENUM, self.config.path("user_role_enum"), label="UserRole Enum")
        )

    def add_authorizable_trait(self) -> None:
        self._patch(FileTarget(self.config.path("user_model")), user_model_directives())

    def setup_role_model_and_factory(self) -> None:
        factory = StubMapping(ROLE_FACTORY, self.config.path("role_factory"))
        self._provision(
            StubMapping(ROLE_MODEL, self.config.path("role_model"), companion=factory, label="Role model")
        )

    def existing_default_roles_migration(self) -> Path | None:
        directory = self.config.path("migrations")
        if not directory.is_dir():
            return None
        matches = sorted(directory.glob(f"*{MIGRATION_SUFFIX}"))
        return matches[0] if matches else None

    def create_default_roles_migration(self) -> None:
        existing = self.existing_default_roles_migration()
        if existing is not None:
            self.echo("Default roles migration seems to already exist, skipping creation.")
            LOGGER.info("Found existing default roles migration at %s", existing)
            return
        timestamp = self.now().strftime(MIGRATION_TIMESTAMP_FORMAT)
        target = self.config.path("migrations") / f"{timestamp}{MIGRATION_SUFFIX}"
        self._provision(StubMapping(DEFAULT_ROLES_MIGRATION, target, label="Default roles migration"))

    def configure_service_provider(self) -> None:
        self._patch(FileTarget(self.config.path("service_provider")), service_provider_directives())

    def setup_user_seeder(self) -> None:
        self._provision(StubMapping(USER_SEEDER, self.config.path("user_seeder"), label="UserSeeder"))
        self._patch(
            FileTarget(self.config.path("database_seeder"), must_exist=False),
            database_seeder_directives(),
        )

    def run_seeders(self) -> None:
        self.runner.run(self.config.commands.seed)

    # ----------------------------------------------------------------- workflow
    def steps(self) -> List[WorkflowStep]:
        return [
            WorkflowStep("Installing authorization package", self.install_package),
            WorkflowStep("Running migrations", self.run_migrations),
            WorkflowStep("Creating UserRole enum", self.create_user_role_enum),
            WorkflowStep("Adding Authorizable trait to User model", self.add_authorizable_trait),
            WorkflowStep("Setting up Role model and factory", self.setup_role_model_and_factory),
            WorkflowStep("Creating migration for default roles", self.create_default_roles_migration),
            WorkflowStep("Configuring AppServiceProvider for custom Role model", self.configure_service_provider),
            WorkflowStep("Setting up UserSeeder", self.setup_user_seeder),
        ]

    def workflow(self) -> InstallationWorkflow:
        return InstallationWorkflow(
            self.steps(),
            final_step=WorkflowStep("Running database seeders", self.run_seeders),
            echo=self.echo,
            start_message=START_MESSAGE,
            completed_message=COMPLETED_MESSAGE,
            skipped_message=SKIPPED_MESSAGE,
            final_step_declined=SEED_DECLINED_MESSAGE,
        )


__all__ = [
    "AUTHORIZABLE_IMPORT",
    "AUTHORIZABLE_TRAIT",
    "AuthorizationInstaller",
    "ROLE_MODEL_CONFIG_LINE",
    "USER_SEEDER_CALL",
    "database_seeder_directives",
    "service_provider_directives",
    "user_model_directives",
]
