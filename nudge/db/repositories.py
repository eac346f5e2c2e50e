from __future__ import annotations

import json
import time
import uuid
from datetime import datetime
from typing import Any

import aiosqlite

TITLE_LIMIT = 50


def _now_ms() -> int:
    return int(time.time() * 1000)


def default_session_title(now: datetime | None = None) -> str:
    now = now or datetime.now()
    return f"{now:%A}, {now:%b} {now.day}"


def title_from_message(content: str) -> str:
    if len(content) > TITLE_LIMIT:
        return content[:TITLE_LIMIT] + "..."
    return content


class Repository:
    def __init__(self, conn: aiosqlite.Connection):
        self.conn = conn

    # settings

    async def get_setting(self, key: str) -> Any:
        cursor = await self.conn.execute("SELECT value FROM settings WHERE key=?", (key,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return json.loads(row["value"])

    async def set_setting(self, key: str, value: Any) -> None:
        await self.conn.execute(
            """
            INSERT INTO settings(key, value, updated_at)
            VALUES(?, ?, strftime('%Y-%m-%dT%H:%M:%fZ','now'))
            ON CONFLICT(key) DO UPDATE SET
              value=excluded.value,
              updated_at=excluded.updated_at
            """,
            (key, json.dumps(value, ensure_ascii=False)),
        )
        await self.conn.commit()

    # provider secrets

    async def get_provider_secret(self, provider_id: str) -> str | None:
        cursor = await self.conn.execute(
            "SELECT ciphertext FROM provider_secrets WHERE provider_id=?", (provider_id,)
        )
        row = await cursor.fetchone()
        return None if row is None else str(row["ciphertext"])

    async def set_provider_secret(self, provider_id: str, ciphertext: str) -> None:
        await self.conn.execute(
            """
            INSERT INTO provider_secrets(provider_id, ciphertext, updated_at)
            VALUES(?, ?, strftime('%Y-%m-%dT%H:%M:%fZ','now'))
            ON CONFLICT(provider_id) DO UPDATE SET
              ciphertext=excluded.ciphertext,
              updated_at=excluded.updated_at
            """,
            (provider_id, ciphertext),
        )
        await self.conn.commit()

    # sessions

    async def create_session(self, title: str | None = None) -> dict[str, Any]:
        session_id = str(uuid.uuid4())
        now = _now_ms()
        session = {
            "session_id": session_id,
            "title": title or default_session_title(),
            "created_at": now,
            "updated_at": now,
        }
        await self.conn.execute(
            "INSERT INTO sessions(session_id, title, created_at, updated_at) VALUES(?, ?, ?, ?)",
            (session_id, session["title"], now, now),
        )
        await self.conn.commit()
        return session

    async def list_sessions(self) -> list[dict[str, Any]]:
        cursor = await self.conn.execute(
            """
            SELECT session_id, title, created_at, updated_at
            FROM sessions
            ORDER BY updated_at DESC, created_at DESC
            """
        )
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def get_session(self, session_id: str) -> dict[str, Any] | None:
        cursor = await self.conn.execute(
            "SELECT session_id, title, created_at, updated_at FROM sessions WHERE session_id=?",
            (session_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        session = dict(row)
        session["messages"] = await self.list_messages(session_id)
        return session

    async def list_messages(self, session_id: str) -> list[dict[str, Any]]:
        cursor = await self.conn.execute(
            """
            SELECT message_id, role, content, timestamp
            FROM messages
            WHERE session_id=?
            ORDER BY seq ASC
            """,
            (session_id,),
        )
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def add_message(self, session_id: str, role: str, content: str) -> dict[str, Any]:
        """Append one message; the first user message becomes the session title."""
        message = {
            "message_id": str(uuid.uuid4()),
            "role": role,
            "content": content,
            "timestamp": _now_ms(),
        }
        # seq is assigned inside the INSERT so concurrent appends cannot collide.
        await self.conn.execute(
            """
            INSERT INTO messages(message_id, session_id, seq, role, content, timestamp)
            SELECT ?, ?, COALESCE(MAX(seq), 0) + 1, ?, ?, ?
            FROM messages
            WHERE session_id=?
            """,
            (message["message_id"], session_id, role, content, message["timestamp"], session_id),
        )
        await self.conn.execute(
            """
            UPDATE sessions SET
              title=CASE
                WHEN ?='user' AND (
                  SELECT COUNT(*) FROM messages WHERE session_id=? AND role='user'
                )=1 THEN ?
                ELSE title
              END,
              updated_at=?
            WHERE session_id=?
            """,
            (role, session_id, title_from_message(content), message["timestamp"], session_id),
        )
        await self.conn.commit()
        return message
