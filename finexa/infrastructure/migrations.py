from __future__ import annotations

import hashlib
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "migrations"

_HISTORY_DDL = """
    CREATE TABLE IF NOT EXISTS schema_migrations (
        version INTEGER PRIMARY KEY,
        name TEXT NOT NULL,
        checksum TEXT NOT NULL,
        applied_at TEXT NOT NULL
    )
"""


@dataclass(frozen=True)
class SqlMigration:
    version: int
    name: str
    up_sql: Path
    down_sql: Path

    def checksum(self) -> str:
        return hashlib.sha256(self.up_sql.read_bytes()).hexdigest()


def discover_migrations(migrations_dir: Path) -> list[SqlMigration]:
    """Pairs every ``NNN_name.up.sql`` with its ``NNN_name.down.sql``."""
    found: list[SqlMigration] = []
    for up_file in sorted(migrations_dir.glob("*.up.sql")):
        stem = up_file.name[: -len(".up.sql")]
        version_text, name = stem.split("_", maxsplit=1)
        down_file = migrations_dir / f"{stem}.down.sql"
        if not down_file.exists():
            raise FileNotFoundError(f"Missing down migration for {up_file.name}: {down_file}")
        found.append(SqlMigration(int(version_text), name, up_file, down_file))
    return found


class MigrationRunner:
    def __init__(self, connection: sqlite3.Connection, migrations_dir: Path | None = None) -> None:
        self.connection = connection
        self.connection.row_factory = sqlite3.Row
        self.migrations = discover_migrations(migrations_dir or DEFAULT_MIGRATIONS_DIR)

    def apply_all(self) -> list[int]:
        applied = self._applied()
        applied_now: list[int] = []
        for migration in self.migrations:
            recorded = applied.get(migration.version)
            if recorded is None:
                self._apply(migration)
                applied_now.append(migration.version)
            elif recorded != migration.checksum():
                logger.warning("migration_checksum_mismatch version=%04d name=%s", migration.version, migration.name)
        return applied_now

    def rollback(self, steps: int = 1) -> list[int]:
        by_version = {migration.version: migration for migration in self.migrations}
        rolled_back: list[int] = []
        for version in sorted(self._applied(), reverse=True)[:steps]:
            self._revert(by_version[version])
            rolled_back.append(version)
        return rolled_back

    def status(self) -> list[dict[str, object]]:
        applied = self._applied()
        return [
            {"version": migration.version, "name": migration.name, "applied": migration.version in applied}
            for migration in self.migrations
        ]

    def _applied(self) -> dict[int, str]:
        with self.connection:
            self.connection.execute(_HISTORY_DDL)
        rows = self.connection.execute("SELECT version, checksum FROM schema_migrations").fetchall()
        return {row["version"]: row["checksum"] for row in rows}

    def _apply(self, migration: SqlMigration) -> None:
        with self.connection:
            self.connection.executescript(migration.up_sql.read_text(encoding="utf-8"))
            self.connection.execute(
                "INSERT INTO schema_migrations (version, name, checksum, applied_at) VALUES (?, ?, ?, ?)",
                (
                    migration.version,
                    migration.name,
                    migration.checksum(),
                    datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                ),
            )
            self.connection.execute(f"PRAGMA user_version = {migration.version}")
        logger.info("Migration applied %04d %s", migration.version, migration.name)

    def _revert(self, migration: SqlMigration) -> None:
        with self.connection:
            self.connection.executescript(migration.down_sql.read_text(encoding="utf-8"))
            self.connection.execute("DELETE FROM schema_migrations WHERE version = ?", (migration.version,))
            previous = self.connection.execute(
                "SELECT COALESCE(MAX(version), 0) AS version FROM schema_migrations"
            ).fetchone()["version"]
            self.connection.execute(f"PRAGMA user_version = {previous}")
        logger.info("Migration rolled back %04d %s", migration.version, migration.name)


def run_migrations(connection: sqlite3.Connection) -> None:
    MigrationRunner(connection).apply_all()
