"""Versioned SQL migration runner.

Scripts live in ``database/migrations`` and are named
``V<version>__<Description>.sql``. Applied versions are recorded in
``public.schema_history`` together with a CRC32 checksum so edits to an
already-applied script are detected.
"""

import re
import time
import zlib
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

MIGRATIONS_DIR = Path(__file__).parent / "migrations"
MIGRATION_PATTERN = re.compile(r"^V(?P<version>\d+)__(?P<description>\w+)\.sql$")
HISTORY_TABLE = "public.schema_history"


class MigrationError(Exception):
    """Raised when migration files or the history table are inconsistent."""


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    path: Path

    @property
    def script(self) -> str:
        return self.path.name

    @property
    def sql(self) -> str:
        return self.path.read_text(encoding="utf-8")

    @property
    def checksum(self) -> int:
        return zlib.crc32(self.path.read_bytes())


@dataclass(frozen=True)
class AppliedMigration:
    version: int
    description: str
    script: str
    checksum: int
    installed_on: datetime
    execution_time_ms: int


def discover_migrations(directory: Path = MIGRATIONS_DIR) -> List[Migration]:
    """Return the migrations in ``directory`` sorted by version.

    Raises:
        MigrationError: If a ``.sql`` file does not follow the naming scheme
            or two files share a version.
    """
    migrations: Dict[int, Migration] = {}
    for path in sorted(Path(directory).glob("*.sql")):
        match = MIGRATION_PATTERN.match(path.name)
        if not match:
            raise MigrationError(
                f"Invalid migration file name: {path.name} "
                "(expected V<version>__<Description>.sql)"
            )
        version = int(match.group("version"))
        if version in migrations:
            raise MigrationError(
                f"Duplicate migration version {version}: "
                f"{migrations[version].script} and {path.name}"
            )
        migrations[version] = Migration(
            version=version,
            description=match.group("description").replace("_", " "),
            path=path,
        )
    return [migrations[version] for version in sorted(migrations)]


def ensure_history_table(conn: Connection) -> None:
    conn.execute(
        text(
            f"""
            CREATE TABLE IF NOT EXISTS {HISTORY_TABLE} (
                version INTEGER PRIMARY KEY,
                description TEXT NOT NULL,
                script TEXT NOT NULL,
                checksum BIGINT NOT NULL,
                installed_on TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT CURRENT_TIMESTAMP,
                execution_time_ms INTEGER NOT NULL
            )
            """
        )
    )


def applied_migrations(conn: Connection) -> Dict[int, AppliedMigration]:
    rows = conn.execute(
        text(
            "SELECT version, description, script, checksum, installed_on, "
            f"execution_time_ms FROM {HISTORY_TABLE} ORDER BY version"
        )
    ).mappings().all()
    return {row["version"]: AppliedMigration(**row) for row in rows}


def validate(conn: Connection, migrations: List[Migration]) -> None:
    """Check that every applied migration still matches its file.

    Raises:
        MigrationError: On a checksum mismatch or a missing file.
    """
    available = {migration.version: migration for migration in migrations}
    for version, applied in applied_migrations(conn).items():
        migration = available.get(version)
        if migration is None:
            raise MigrationError(
                f"Applied migration V{version} ({applied.script}) "
                "is missing from the migrations directory"
            )
        if migration.checksum != applied.checksum:
            raise MigrationError(
                f"Checksum mismatch for V{version}: applied {applied.checksum}, "
                f"file {migration.checksum}. Applied migrations must not be edited."
            )


def pending_migrations(
    conn: Connection,
    migrations: List[Migration],
    target: Optional[int] = None,
) -> List[Migration]:
    applied = applied_migrations(conn)
    return [
        migration
        for migration in migrations
        if migration.version not in applied
        and (target is None or migration.version <= target)
    ]


def apply_migration(conn: Connection, migration: Migration) -> int:
    """Run one script and record it; returns the execution time in ms."""
    started = time.monotonic()
    # no_parameters keeps psycopg from parsing % in the script as a placeholder,
    # e.g. the valid_email regex, and lets it run the multi-statement script
    conn.execution_options(no_parameters=True).exec_driver_sql(migration.sql)
    elapsed_ms = int((time.monotonic() - started) * 1000)

    conn.execute(
        text(
            f"INSERT INTO {HISTORY_TABLE} "
            "(version, description, script, checksum, execution_time_ms) "
            "VALUES (:version, :description, :script, :checksum, :execution_time_ms)"
        ),
        {
            "version": migration.version,
            "description": migration.description,
            "script": migration.script,
            "checksum": migration.checksum,
            "execution_time_ms": elapsed_ms,
        },
    )
    return elapsed_ms


def migrate(
    engine: Engine,
    directory: Path = MIGRATIONS_DIR,
    target: Optional[int] = None,
) -> List[Migration]:
    """Apply pending migrations in version order.

    Each migration and its history row commit together; a failing script
    rolls back on its own and the error propagates, leaving earlier
    migrations applied.

    Args:
        engine: Engine connected to the target database.
        directory: Folder holding the ``V<n>__*.sql`` scripts.
        target: Highest version to apply. All pending versions when None.

    Returns:
        The migrations that were applied, in order.
    """
    migrations = discover_migrations(directory)

    with engine.begin() as conn:
        ensure_history_table(conn)
        validate(conn, migrations)
        pending = pending_migrations(conn, migrations, target)

    if not pending:
        print("Schema is up to date")
        return []

    applied = []
    for migration in pending:
        print(f"Applying V{migration.version}: {migration.description}")
        with engine.begin() as conn:
            elapsed_ms = apply_migration(conn, migration)
        print(f"Applied V{migration.version} in {elapsed_ms} ms")
        applied.append(migration)

    return applied
