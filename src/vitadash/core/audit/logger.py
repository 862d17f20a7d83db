"""Audit logger: access trail for tool calls, saves and device commands.

Rows never contain profile data or food input: tool input is stored as a
SHA-256 hash of its canonical JSON, and the caller scope is hashed too.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from vitadash.core.storage.database import DatabaseError, DispenserDatabase

logger = logging.getLogger(__name__)


def _hash_input(data: Any) -> str:
    """SHA-256 of canonical JSON, or '' when ``data`` is not serializable."""
    try:
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        return ""
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class AuditEvent:
    action: str                     # 'tool_invocation' | 'profile_save' | 'config_save' | 'command_write'
    tool_name: str = ""
    tool_input_hash: str = ""
    scope_hash: str = ""
    duration_ms: float | None = None
    status: str = "success"         # 'success' | 'failure' | 'denied'
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class AuditLogger:
    """Records audit events to the ``audit_log`` table.

    Every write commits immediately. A failed write is logged and reported
    as an empty id; auditing never breaks the tool that triggered it.

    Usage::

        audit = AuditLogger(db)
        audit.log_tool_call("dispense", {"bottle_id": 1}, scope="user-1")
    """

    def __init__(self, database: DispenserDatabase) -> None:
        self._db = database

    # --- Write ---

    def log_event(self, event: AuditEvent) -> str:
        """Insert an audit event and return its id.

        Args:
            event: Populated ``AuditEvent``; hashing is the caller's job.

        Returns:
            The generated event id (UUID4 string), or '' if the write failed.
        """
        event_id = str(uuid.uuid4())
        metadata_json = (
            json.dumps(event.metadata, separators=(",", ":"), default=str)
            if event.metadata
            else None
        )
        try:
            conn = self._db.connection
            conn.execute(
                """INSERT INTO audit_log
                   (id, timestamp, action, tool_name, tool_input_hash, scope_hash,
                    duration_ms, status, error_type, metadata_json)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    event_id,
                    datetime.now(timezone.utc).isoformat(),
                    event.action,
                    event.tool_name or None,
                    event.tool_input_hash or None,
                    event.scope_hash or None,
                    event.duration_ms,
                    event.status,
                    event.error_type,
                    metadata_json,
                ),
            )
            conn.commit()
        except (sqlite3.Error, DatabaseError):
            logger.exception("Failed to write audit event (%s); event lost", event.action)
            return ""
        return event_id

    def log_tool_call(
        self,
        tool_name: str,
        tool_input: Any = None,
        *,
        scope: str = "",
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Log one MCP tool invocation.

        Args:
            tool_name: Name of the MCP tool.
            tool_input: Tool arguments (hashed, never stored raw).
            scope: User/device scope (hashed).
            duration_ms: Wall time of the call.
            status: 'success', 'failure' or 'denied'.
            error_type: Exception class name on failure.
            metadata: Small PHI-free extras such as result counts.

        Returns:
            The event id, or '' if the write failed.
        """
        return self.log_event(AuditEvent(
            action="tool_invocation",
            tool_name=tool_name,
            tool_input_hash=_hash_input(tool_input) if tool_input else "",
            scope_hash=_hash_input(scope) if scope else "",
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_action(
        self,
        action: str,
        *,
        tool_name: str = "",
        scope: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Log a state change such as a profile save or a command write."""
        return self.log_event(AuditEvent(
            action=action,
            tool_name=tool_name,
            scope_hash=_hash_input(scope) if scope else "",
            metadata=metadata or {},
        ))

    # --- Read ---

    def get_events(
        self,
        *,
        action: str | None = None,
        tool_name: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Query audit events with optional filters.

        Args:
            action: Filter by action type.
            tool_name: Filter by tool name.
            since: ISO 8601 timestamp lower bound.
            limit: Maximum events to return.

        Returns:
            List of row dicts, newest first.
        """
        conditions: list[str] = []
        params: list[Any] = []
        if action:
            conditions.append("action = ?")
            params.append(action)
        if tool_name:
            conditions.append("tool_name = ?")
            params.append(tool_name)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        params.append(limit)
        rows = self._db.connection.execute(
            f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC LIMIT ?", params
        ).fetchall()
        return [dict(row) for row in rows]

    def count_events(self, *, action: str | None = None) -> int:
        """Count audit events, optionally for one action."""
        if action:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log WHERE action = ?", (action,)
            ).fetchone()
        else:
            row = self._db.connection.execute("SELECT COUNT(*) FROM audit_log").fetchone()
        return row[0]
