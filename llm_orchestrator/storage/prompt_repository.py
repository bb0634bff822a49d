"""
Managed prompt repository.

SQLite implementation of the PromptRepository contract. The ``managed_prompt``
table holds the current state of each prompt; ``managed_prompt_version``
holds one content snapshot per (prompt, version).

``activate_version`` copies a stored snapshot into the current row. Because
updates always move to ``version + 1``, an update after a rollback replaces
the snapshot previously stored under that number.
"""

import asyncio
import json
from datetime import datetime
from typing import List, Optional

from .db import DEFAULT_DB_PATH, get_connection
from ..core.errors import NotFoundError
from ..events.base import utcnow
from ..prompts.models import (
    ManagedPrompt,
    PromptEnvironment,
    PromptVariable,
    PromptVersionSnapshot,
)


def _dump_variables(variables) -> str:
    return json.dumps([
        {
            "name": v.name,
            "type": v.type.value,
            "required": v.required,
            "default_value": v.default_value,
        }
        for v in variables
    ])


def _load_variables(raw: str):
    return tuple(PromptVariable(**item) for item in json.loads(raw))


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SqlitePromptRepository:
    """Current prompts plus an arena of version snapshots, in SQLite."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    async def find_by_key(self, key: str, environment: PromptEnvironment) -> Optional[ManagedPrompt]:
        return await asyncio.to_thread(
            self._find_one, "key = ? AND environment = ?",
            (key, PromptEnvironment(environment).value),
        )

    async def find_by_id(self, prompt_id: str) -> Optional[ManagedPrompt]:
        return await asyncio.to_thread(self._find_one, "id = ?", (prompt_id,))

    async def create(self, prompt: ManagedPrompt) -> None:
        await asyncio.to_thread(self._create, prompt)

    async def update(self, prompt: ManagedPrompt) -> None:
        await asyncio.to_thread(self._update, prompt)

    async def activate_version(self, prompt_id: str, version: int) -> None:
        await asyncio.to_thread(self._activate_version, prompt_id, version)

    async def get_version_history(self, prompt_id: str) -> List[PromptVersionSnapshot]:
        return await asyncio.to_thread(self._version_history, prompt_id)

    def _find_one(self, where: str, params) -> Optional[ManagedPrompt]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(f"SELECT * FROM managed_prompt WHERE {where}", params).fetchone()
            if row is None:
                return None
            return ManagedPrompt(
                prompt_id=row["id"],
                key=row["key"],
                name=row["name"],
                description=row["description"],
                template=row["template"],
                variables=_load_variables(row["variables"]),
                version=row["version"],
                environment=PromptEnvironment(row["environment"]),
                is_active=bool(row["is_active"]),
                created_at=datetime.fromisoformat(row["created_at"]),
                updated_at=_parse_ts(row["updated_at"]),
            )
        finally:
            conn.close()

    def _create(self, prompt: ManagedPrompt) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                INSERT INTO managed_prompt
                (id, key, environment, name, description, template, variables,
                 version, is_active, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                prompt.id,
                prompt.key,
                prompt.environment.value,
                prompt.name,
                prompt.description,
                prompt.template,
                _dump_variables(prompt.variables),
                prompt.version,
                int(prompt.is_active),
                prompt.created_at.isoformat(),
                prompt.updated_at.isoformat() if prompt.updated_at else None,
            ))
            self._store_snapshot(conn, prompt.snapshot())
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _update(self, prompt: ManagedPrompt) -> None:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                UPDATE managed_prompt
                SET name = ?, description = ?, template = ?, variables = ?,
                    version = ?, is_active = ?, updated_at = ?
                WHERE id = ?
            """, (
                prompt.name,
                prompt.description,
                prompt.template,
                _dump_variables(prompt.variables),
                prompt.version,
                int(prompt.is_active),
                prompt.updated_at.isoformat() if prompt.updated_at else None,
                prompt.id,
            ))
            if cursor.rowcount == 0:
                raise NotFoundError(f"Prompt with ID '{prompt.id}' not found")
            self._store_snapshot(conn, prompt.snapshot())
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _activate_version(self, prompt_id: str, version: int) -> None:
        conn = get_connection(self.db_path)
        try:
            snapshot = conn.execute(
                "SELECT * FROM managed_prompt_version WHERE prompt_id = ? AND version = ?",
                (prompt_id, version),
            ).fetchone()
            if snapshot is None:
                raise NotFoundError(f"Version {version} not found for prompt '{prompt_id}'")
            conn.execute("""
                UPDATE managed_prompt
                SET name = ?, description = ?, template = ?, variables = ?,
                    version = ?, updated_at = ?
                WHERE id = ?
            """, (
                snapshot["name"],
                snapshot["description"],
                snapshot["template"],
                snapshot["variables"],
                version,
                utcnow().isoformat(),
                prompt_id,
            ))
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _version_history(self, prompt_id: str) -> List[PromptVersionSnapshot]:
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM managed_prompt_version WHERE prompt_id = ? ORDER BY version",
                (prompt_id,),
            ).fetchall()
            return [
                PromptVersionSnapshot(
                    prompt_id=row["prompt_id"],
                    version=row["version"],
                    name=row["name"],
                    description=row["description"],
                    template=row["template"],
                    variables=_load_variables(row["variables"]),
                    created_at=datetime.fromisoformat(row["created_at"]),
                )
                for row in rows
            ]
        finally:
            conn.close()

    @staticmethod
    def _store_snapshot(conn, snapshot: PromptVersionSnapshot) -> None:
        conn.execute("""
            INSERT OR REPLACE INTO managed_prompt_version
            (prompt_id, version, name, description, template, variables, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            snapshot.prompt_id,
            snapshot.version,
            snapshot.name,
            snapshot.description,
            snapshot.template,
            _dump_variables(snapshot.variables),
            snapshot.created_at.isoformat(),
        ))
