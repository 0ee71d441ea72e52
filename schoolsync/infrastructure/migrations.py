from __future__ import annotations

import hashlib
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations"
_SUFFIX = ".up.sql"


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    path: Path

    def read_sql(self) -> str:
        return self.path.read_text(encoding="utf-8")


def discover_migrations(migrations_dir: Path = MIGRATIONS_DIR) -> list[Migration]:
    """Scripts `NNN_nombre.up.sql` ordenados por versión."""
    migrations: list[Migration] = []
    for path in sorted(migrations_dir.glob(f"*{_SUFFIX}")):
        version_text, name = path.name[: -len(_SUFFIX)].split("_", maxsplit=1)
        migrations.append(Migration(version=int(version_text), name=name, path=path))
    return migrations


class MigrationRunner:
    """Aplica el esquema local (`kv_store`) y deja constancia en `schema_migrations`.

    Solo avanza: el almacén guarda blobs reconstruibles desde Firestore, así
    que no hay scripts de vuelta atrás.
    """

    def __init__(self, connection: sqlite3.Connection, migrations_dir: Path | None = None) -> None:
        self._connection = connection
        self._migrations = discover_migrations(migrations_dir or MIGRATIONS_DIR)

    @property
    def latest_version(self) -> int:
        return self._migrations[-1].version if self._migrations else 0

    def pending(self) -> list[int]:
        """Versiones sin aplicar; no crea la tabla de historial."""
        has_history = self._connection.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'schema_migrations'"
        ).fetchone()
        applied = self._applied_versions() if has_history else set()
        return [migration.version for migration in self._migrations if migration.version not in applied]

    def apply_all(self) -> list[int]:
        self._connection.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                checksum TEXT NOT NULL,
                applied_at TEXT NOT NULL
            )
            """
        )
        self._connection.commit()
        applied = self._applied_versions()
        applied_now: list[int] = []
        for migration in self._migrations:
            if migration.version in applied:
                continue
            self._apply(migration)
            applied_now.append(migration.version)
        if applied_now:
            logger.info("Esquema local actualizado a la versión %s", applied_now[-1])
        return applied_now

    def _applied_versions(self) -> set[int]:
        rows = self._connection.execute("SELECT version FROM schema_migrations").fetchall()
        return {int(row[0]) for row in rows}

    def _apply(self, migration: Migration) -> None:
        sql_script = migration.read_sql()
        if sql_script.strip():
            self._connection.executescript(sql_script)
        with self._connection:
            self._connection.execute(
                "INSERT INTO schema_migrations (version, name, checksum, applied_at) VALUES (?, ?, ?, ?)",
                (
                    migration.version,
                    migration.name,
                    hashlib.sha256(sql_script.encode("utf-8")).hexdigest(),
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            self._connection.execute(f"PRAGMA user_version = {migration.version}")
        logger.info("Migración aplicada %03d %s", migration.version, migration.name)


def run_migrations(connection: sqlite3.Connection) -> list[int]:
    return MigrationRunner(connection).apply_all()
