from __future__ import annotations

import sqlite3
from pathlib import Path

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


def connect_db(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    # Соединение используется из пула потоков FastAPI, доступ сериализует репозиторий.
    connection = sqlite3.connect(str(db_path), check_same_thread=False, timeout=30)
    connection.row_factory = sqlite3.Row
    connection.execute("PRAGMA foreign_keys = ON")
    connection.execute("PRAGMA busy_timeout = 30000")
    return connection


def _ensure_migrations_table(connection: sqlite3.Connection) -> None:
    connection.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            filename TEXT PRIMARY KEY,
            applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    connection.commit()


def pending_migrations(connection: sqlite3.Connection, migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    _ensure_migrations_table(connection)
    applied = {row["filename"] for row in connection.execute("SELECT filename FROM schema_migrations")}
    return [path.name for path in sorted(migrations_dir.glob("*.sql")) if path.name not in applied]


def apply_migrations(connection: sqlite3.Connection, migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    executed: list[str] = []
    for filename in pending_migrations(connection, migrations_dir):
        script = (migrations_dir / filename).read_text(encoding="utf-8")
        with connection:
            connection.executescript(script)
            connection.execute("INSERT INTO schema_migrations (filename) VALUES (?)", (filename,))
        executed.append(filename)
    return executed
