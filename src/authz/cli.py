"""CLI commands for installing role-based authorization into a Laravel project."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from .config import DEFAULT_CONFIG_NAME, InstallerConfig, load_config
from .errors import ConfigError
from .installer import AuthorizationInstaller
from .tools.stubs import StubStore
from .workflow import OutcomeKind

APP_HELP = "Install and configure role-based authorization with permissions."
INSTALL_PROMPT = "Do you want to install Authorization into your app?"
SEED_PROMPT = "Do you want to run the database seeders?"

app = typer.Typer(help=APP_HELP)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.ERROR,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_settings(config: Optional[str], project_root: str) -> InstallerConfig:
    root = Path(project_root).resolve()
    if not root.is_dir():
        raise typer.BadParameter(f"Project root not found: {root}", param_hint="--project-root")
    try:
        return load_config(config, project_root=root)
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error


@app.command()
def install(
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Installer configuration file (defaults to {DEFAULT_CONFIG_NAME} in the project root).",
    ),
    project_root: str = typer.Option(
        ".",
        "--project-root",
        "-p",
        help="Root directory of the Laravel project.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log debug output, including structured telemetry events.",
    ),
) -> None:
    """Install directorytree/authorization and scaffold roles into the project."""
    _configure_logging(verbose)
    settings = _load_settings(config, project_root)

    confirmed = typer.confirm(INSTALL_PROMPT, default=False)
    installer = AuthorizationInstaller.from_config(settings, echo=typer.echo)
    outcome = installer.workflow().run(
        confirmed,
        confirm_final_step=lambda: typer.confirm(SEED_PROMPT, default=True),
    )

    if outcome.kind is OutcomeKind.FAILED:
        typer.echo(outcome.message, err=True)
        raise typer.Exit(code=outcome.exit_code)


@app.command()
def stubs(
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Installer configuration file (defaults to {DEFAULT_CONFIG_NAME} in the project root).",
    ),
    project_root: str = typer.Option(
        ".",
        "--project-root",
        "-p",
        help="Root directory of the Laravel project.",
    ),
) -> None:
    """List the stub templates and where each one resolves from."""
    settings = _load_settings(config, project_root)
    store = StubStore([settings.path("stubs")])
    for stub_id, location in store.available():
        typer.echo(f"- {stub_id}: {location}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
