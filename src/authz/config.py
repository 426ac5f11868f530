"""Installer configuration: project root, path layout and external commands."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError

DEFAULT_CONFIG_NAME = "authz.yaml"
DEFAULT_PACKAGE = "directorytree/authorization"


class ConfigModel(BaseModel):
    """Base Pydantic model rejecting unknown keys."""

    model_config = ConfigDict(extra="forbid")


class CommandsConfig(ConfigModel):
    """External commands run by the installer; ``{package}`` is substituted."""

    install_package: str = "composer require {package}"
    migrate: str = "php artisan migrate --force --no-interaction"
    seed: str = "php artisan db:seed"


class PathsConfig(ConfigModel):
    """Project-relative locations following the framework's directory convention."""

    stubs: str = "stubs"
    user_role_enum: str = "app/Enums/UserRole.php"
    user_model: str = "app/Models/User.php"
    role_model: str = "app/Models/Role.php"
    role_factory: str = "database/factories/RoleFactory.php"
    migrations: str = "database/migrations"
    user_seeder: str = "database/seeders/UserSeeder.php"
    database_seeder: str = "database/seeders/DatabaseSeeder.php"
    service_provider: str = "app/Providers/AppServiceProvider.php"


class InstallerConfig(ConfigModel):
    """Complete installer configuration bound to one project root."""

    project_root: Path = Field(default_factory=Path.cwd)
    package: str = DEFAULT_PACKAGE
    commands: CommandsConfig = Field(default_factory=CommandsConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)

    def resolve(self, relative: str | Path) -> Path:
        """Return ``relative`` anchored at the project root unless already absolute."""
        candidate = Path(relative)
        if candidate.is_absolute():
            return candidate
        return (Path(self.project_root) / candidate).resolve()

    def path(self, name: str) -> Path:
        """Resolve the configured path called ``name`` (e.g. ``"user_model"``)."""
        return self.resolve(getattr(self.paths, name))

    @property
    def install_package_command(self) -> str:
        return self.commands.install_package.format(package=self.package)


def build_config(data: Mapping[str, Any] | None, *, project_root: Path | str) -> InstallerConfig:
    """Validate ``data`` into an :class:`InstallerConfig` rooted at ``project_root``."""
    payload = dict(data or {})
    payload.pop("project_root", None)
    try:
        return InstallerConfig(project_root=Path(project_root).resolve(), **payload)
    except ValidationError as error:
        raise ConfigError(f"Invalid configuration: {error}") from error


def load_config(config_path: Path | str | None, *, project_root: Path | str) -> InstallerConfig:
    """Load YAML configuration.

    Without ``config_path`` the project's ``authz.yaml`` is used when present and
    defaults otherwise; an explicit path that does not exist is an error.
    """
    root = Path(project_root).resolve()
    if config_path is None:
        path = root / DEFAULT_CONFIG_NAME
        if not path.exists():
            return build_config(None, project_root=root)
    else:
        path = Path(config_path)
        if not path.is_absolute():
            path = (root / path).resolve()
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config {path}: {error}") from error

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.")

    return build_config(data, project_root=root)


__all__ = [
    "CommandsConfig",
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_PACKAGE",
    "InstallerConfig",
    "PathsConfig",
    "build_config",
    "load_config",
]
