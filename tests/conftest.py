from __future__ import annotations

import sys
import textwrap
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from authz.errors import ProcessFailedError  # noqa: E402
from authz.tools.process import ProcessOutcome  # noqa: E402


USER_MODEL = textwrap.dedent(
    """
    <?php

    namespace App\\Models;

    // use Illuminate\\Contracts\\Auth\\MustVerifyEmail;
    use Illuminate\\Database\\Eloquent\\Factories\\HasFactory;
    use Illuminate\\Foundation\\Auth\\User as Authenticatable;
    use Illuminate\\Notifications\\Notifiable;

    class User extends Authenticatable
    {
        /** @use HasFactory<\\Database\\Factories\\UserFactory> */
        use HasFactory, Notifiable;

        /**
         * The attributes that are mass assignable.
         *
         * @var list<string>
         */
        protected $fillable = [
            'name',
            'email',
            'password',
        ];
    }
    """
).lstrip()

SERVICE_PROVIDER = textwrap.dedent(
    """
    <?php

    namespace App\\Providers;

    use Carbon\\CarbonImmutable;
    use Illuminate\\Support\\Facades\\Date;
    use Illuminate\\Support\\ServiceProvider;

    class AppServiceProvider extends ServiceProvider
    {
        /**
         * Register any application services.
         */
        public function register(): void
        {
            //
        }

        /**
         * Bootstrap any application services.
         */
        public function boot(): void
        {
            $this->configureDates();
        }

        protected function configureDates(): void
        {
            Date::use(handler: CarbonImmutable::class);
        }
    }
    """
).lstrip()

DATABASE_SEEDER = textwrap.dedent(
    """
    <?php

    namespace Database\\Seeders;

    use Illuminate\\Database\\Seeder;

    class DatabaseSeeder extends Seeder
    {
        /**
         * Seed the application's database.
         */
        public function run(): void
        {
            // User::factory(10)->create();
        }
    }
    """
).lstrip()


@dataclass(slots=True)
class LaravelProject:
    """Minimal Laravel file tree used by installer tests."""

    root: Path

    @property
    def user_model(self) -> Path:
        return self.root / "app" / "Models" / "User.php"

    @property
    def service_provider(self) -> Path:
        return self.root / "app" / "Providers" / "AppServiceProvider.php"

    @property
    def database_seeder(self) -> Path:
        return self.root / "database" / "seeders" / "DatabaseSeeder.php"

    @property
    def migrations(self) -> Path:
        return self.root / "database" / "migrations"

    def snapshot(self) -> dict[str, str]:
        """Return every file's text keyed by project-relative path."""
        return {
            path.relative_to(self.root).as_posix(): path.read_text(encoding="utf-8")
            for path in sorted(self.root.rglob("*"))
            if path.is_file()
        }


@pytest.fixture()
def laravel_project(tmp_path: Path) -> LaravelProject:
    """Create the handful of framework files the installer edits."""

    project = LaravelProject(root=tmp_path / "app-root")
    files = {
        project.user_model: USER_MODEL,
        project.service_provider: SERVICE_PROVIDER,
        project.database_seeder: DATABASE_SEEDER,
    }
    for path, content in files.items():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    project.migrations.mkdir(parents=True)
    (project.migrations / "0001_01_01_000000_create_users_table.php").write_text("<?php\n", encoding="utf-8")
    return project


@dataclass(slots=True)
class FakeRunner:
    """Stand-in for :class:`ProcessRunner` that records commands."""

    failures: dict[str, ProcessFailedError] = field(default_factory=dict)
    commands: List[str] = field(default_factory=list)

    def run(self, command: str | Sequence[str]) -> ProcessOutcome:
        text = command if isinstance(command, str) else " ".join(command)
        self.commands.append(text)
        if text in self.failures:
            raise self.failures[text]
        return ProcessOutcome(command=tuple(text.split()), exit_code=0, stdout="", stderr="")


@pytest.fixture()
def fake_runner() -> FakeRunner:
    return FakeRunner()
