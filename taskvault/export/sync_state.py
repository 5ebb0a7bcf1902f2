"""Persistent entity ID -> vault path mapping for the markdown mirror.

The store answers "where did we last write this entity?" so that renames,
re-parenting and status moves can remove the stale file. It lives in
``.sync-state.json`` at the vault root, pretty-printed so it can be inspected
or committed alongside the vault.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger("taskvault.export")

STATE_FILE_NAME = ".sync-state.json"
STATE_FORMAT_VERSION = "1.0"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    path: str
    entityType: str
    lastModified: str = ""


class SyncStateFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: str = STATE_FORMAT_VERSION
    lastSync: str = ""
    entities: dict[str, SyncEntry] = Field(default_factory=dict)


class SyncStateStore:
    """In-memory sync state backed by a JSON file.

    Reads are served from memory. Every mutation is persisted before the call
    returns, and mutations are serialized by one lock so concurrent exports
    cannot clobber each other's entries on disk.
    """

    def __init__(self, vault_path: Path):
        self.vault_path = Path(vault_path)
        self.state_file = self.vault_path / STATE_FILE_NAME
        self._state = SyncStateFile()
        self._lock = asyncio.Lock()
        self._load()

    def _load(self) -> None:
        if not self.state_file.exists():
            logger.debug("Sync state file does not exist, starting with empty state")
            return
        try:
            content = self.state_file.read_text(encoding="utf-8")
            self._state = SyncStateFile.model_validate_json(content)
            logger.debug(f"Loaded sync state with {len(self._state.entities)} entries")
        except (OSError, UnicodeDecodeError, ValidationError) as exc:
            logger.warning(f"Failed to read sync state {self.state_file}, starting with empty state: {exc}")
            self._state = SyncStateFile()

    def _write(self, content: str) -> None:
        self.vault_path.mkdir(parents=True, exist_ok=True)
        tmp = self.state_file.with_name(self.state_file.name + ".tmp")
        tmp.write_text(content, encoding="utf-8")
        os.replace(tmp, self.state_file)

    async def _persist(self) -> None:
        content = json.dumps(self._state.model_dump(), indent=2, ensure_ascii=False)
        await asyncio.to_thread(self._write, content)
        logger.debug(f"Saved sync state with {len(self._state.entities)} entries")

    def get_path(self, entity_id: str) -> str | None:
        entry = self._state.entities.get(str(entity_id))
        return entry.path if entry else None

    def has_state(self) -> bool:
        # Presence of the file, not parse success.
        return self.state_file.exists()

    def entries(self) -> dict[str, SyncEntry]:
        return dict(self._state.entities)

    def __len__(self) -> int:
        return len(self._state.entities)

    async def record_export(self, entity_id: str, entity_type: str, relative_path: str) -> None:
        async with self._lock:
            now = _timestamp()
            self._state.entities[str(entity_id)] = SyncEntry(
                path=relative_path,
                entityType=entity_type,
                lastModified=now,
            )
            self._state.lastSync = now
            await self._persist()

    async def remove_entry(self, entity_id: str) -> None:
        async with self._lock:
            self._state.entities.pop(str(entity_id), None)
            self._state.lastSync = _timestamp()
            await self._persist()
