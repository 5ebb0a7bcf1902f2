"""Database schema creation and versioning.

All CREATE TABLE statements for the tracker store.
Uses IF NOT EXISTS for idempotent runs.
"""
from __future__ import annotations

import logging

import aiosqlite

logger = logging.getLogger("taskvault.db")

SCHEMA_VERSION = 3

_TABLES = """
-- ── Schema version tracking ────────────────────────────────────────
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TEXT NOT NULL DEFAULT (datetime('now'))
);

-- ── 1. Projects ────────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS projects (
    id           TEXT PRIMARY KEY,
    name         TEXT NOT NULL,
    summary      TEXT DEFAULT '',
    description  TEXT DEFAULT '',
    status       TEXT NOT NULL DEFAULT 'planning',
    tags_json    TEXT DEFAULT '[]',
    created_at   TEXT NOT NULL,
    modified_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_projects_name ON projects(name);

-- ── 2. Features ────────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS features (
    id           TEXT PRIMARY KEY,
    project_id   TEXT REFERENCES projects(id) ON DELETE CASCADE,
    name         TEXT NOT NULL,
    summary      TEXT DEFAULT '',
    description  TEXT DEFAULT '',
    status       TEXT NOT NULL DEFAULT 'planning',
    priority     TEXT NOT NULL DEFAULT 'medium',
    tags_json    TEXT DEFAULT '[]',
    created_at   TEXT NOT NULL,
    modified_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_features_project ON features(project_id, name);

-- ── 3. Tasks ───────────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS tasks (
    id           TEXT PRIMARY KEY,
    project_id   TEXT REFERENCES projects(id) ON DELETE CASCADE,
    feature_id   TEXT REFERENCES features(id) ON DELETE CASCADE,
    title        TEXT NOT NULL,
    summary      TEXT DEFAULT '',
    description  TEXT DEFAULT '',
    status       TEXT NOT NULL DEFAULT 'pending',
    priority     TEXT NOT NULL DEFAULT 'medium',
    complexity   INTEGER DEFAULT 5,
    tags_json    TEXT DEFAULT '[]',
    created_at   TEXT NOT NULL,
    modified_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks(project_id);
CREATE INDEX IF NOT EXISTS idx_tasks_feature ON tasks(feature_id);

-- ── 4. Sections (embedded in the owning entity) ────────────────────
CREATE TABLE IF NOT EXISTS sections (
    id                TEXT PRIMARY KEY,
    entity_type       TEXT NOT NULL,
    entity_id         TEXT NOT NULL,
    title             TEXT NOT NULL,
    usage_description TEXT DEFAULT '',
    content           TEXT DEFAULT '',
    content_format    TEXT DEFAULT 'markdown',
    ordinal           INTEGER DEFAULT 0,
    tags_json         TEXT DEFAULT '[]'
);

CREATE INDEX IF NOT EXISTS idx_sections_entity ON sections(entity_type, entity_id, ordinal);

-- ── 5. Templates ───────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS templates (
    id                 TEXT PRIMARY KEY,
    name               TEXT NOT NULL UNIQUE,
    description        TEXT DEFAULT '',
    target_entity_type TEXT NOT NULL DEFAULT 'task',
    is_built_in        INTEGER DEFAULT 0,
    is_enabled         INTEGER DEFAULT 1,
    tags_json          TEXT DEFAULT '[]'
);

-- ── 6. Task dependencies ───────────────────────────────────────────
CREATE TABLE IF NOT EXISTS dependencies (
    id            TEXT PRIMARY KEY,
    from_task_id  TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    to_task_id    TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    type          TEXT NOT NULL DEFAULT 'blocks'
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_dependencies_pair ON dependencies(from_task_id, to_task_id, type);
"""


async def _column_exists(db: aiosqlite.Connection, table: str, column: str) -> bool:
    async with db.execute(f"PRAGMA table_info({table})") as cur:
        rows = await cur.fetchall()
    return any(row[1] == column for row in rows)


async def _ensure_column(db: aiosqlite.Connection, table: str, column: str, definition: str) -> None:
    if await _column_exists(db, table, column):
        return
    await db.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")


async def run_migrations(db: aiosqlite.Connection) -> None:
    """Create all tables. Idempotent."""
    # Cascading deletes rely on foreign keys; the pragma is per connection.
    await db.execute("PRAGMA foreign_keys=ON")

    try:
        async with db.execute("SELECT MAX(version) FROM schema_version") as cur:
            row = await cur.fetchone()
            current_version = row[0] if row and row[0] else 0
    except aiosqlite.Error:
        current_version = 0

    if current_version >= SCHEMA_VERSION:
        logger.info(f"Schema is up to date (version {current_version})")
        return

    logger.info(f"Running migrations: {current_version} → {SCHEMA_VERSION}")

    await db.executescript(_TABLES)

    # Explicit table upgrades for existing DBs.
    await _ensure_column(db, "sections", "usage_description", "TEXT DEFAULT ''")
    await _ensure_column(db, "tasks", "complexity", "INTEGER DEFAULT 5")

    await db.execute(
        "INSERT INTO schema_version (version) VALUES (?)",
        (SCHEMA_VERSION,),
    )
    await db.commit()
    logger.info(f"Migrations complete, schema version {SCHEMA_VERSION}")
