"""Dispenser repository: CRUD operations for the data bank.

Profiles are encrypted with FieldEncryptor; pill configuration, the command
queue and nutrition logs are stored as plain JSON columns.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
import uuid
from typing import Any

from vitadash.core.storage.database import DispenserDatabase
from vitadash.core.storage.encryption import EncryptionError, FieldEncryptor
from vitadash.core.storage.models import NutritionLog, StoredCommand
from vitadash.domains.dispenser.domain_logic.recommendations import PillBottleConfig
from vitadash.domains.dispenser.domain_logic.requirements import UserProfile

logger = logging.getLogger(__name__)

COMMAND_STATUSES = ("pending", "sent", "done", "failed")
DEFAULT_LOG_LIMIT = 5


class RepositoryError(Exception):
    """Raised when repository operations fail."""


class DispenserRepository:
    """CRUD repository for profiles, pill configs, commands and nutrition logs.

    Usage::

        db = DispenserDatabase(":memory:")
        db.initialize()
        repo = DispenserRepository(db, FieldEncryptor(key))

        repo.save_profile("user-1", profile)
        repo.enqueue_command("user-1", command.to_dict())
    """

    def __init__(self, database: DispenserDatabase, encryptor: FieldEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self._db.connection.execute(sql, params)
        except sqlite3.Error as exc:
            raise RepositoryError(f"Database operation failed: {exc}") from exc

    def _commit(self) -> None:
        try:
            self._db.connection.commit()
        except sqlite3.Error as exc:
            raise RepositoryError(f"Commit failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def save_profile(self, scope: str, profile: UserProfile) -> None:
        token = self._enc.encrypt(profile.to_dict())
        self._execute(
            """INSERT INTO profiles (scope, profile_enc, updated_at)
               VALUES (?, ?, datetime('now'))
               ON CONFLICT(scope) DO UPDATE SET
                   profile_enc = excluded.profile_enc,
                   updated_at = excluded.updated_at""",
            (scope, token),
        )
        self._commit()
        logger.info("Saved profile for scope hash %s", _short_hash(scope))

    def load_profile(self, scope: str) -> UserProfile | None:
        """Decrypted profile, or None when none is saved.

        Raises:
            RepositoryError: If the stored profile cannot be decrypted.
        """
        row = self._execute(
            "SELECT profile_enc FROM profiles WHERE scope = ?", (scope,)
        ).fetchone()
        if row is None:
            return None
        try:
            data = self._enc.decrypt(row["profile_enc"])
        except EncryptionError as exc:
            raise RepositoryError(f"Stored profile is unreadable: {exc}") from exc
        return UserProfile.from_dict(data)

    def delete_profile(self, scope: str) -> bool:
        cursor = self._execute("DELETE FROM profiles WHERE scope = ?", (scope,))
        self._commit()
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Pill configuration
    # ------------------------------------------------------------------

    def save_pill_config(self, scope: str, config: PillBottleConfig) -> None:
        self._execute(
            """INSERT INTO pill_configs (scope, bottles_json, updated_at)
               VALUES (?, ?, datetime('now'))
               ON CONFLICT(scope) DO UPDATE SET
                   bottles_json = excluded.bottles_json,
                   updated_at = excluded.updated_at""",
            (scope, json.dumps(config.to_dict(), ensure_ascii=False)),
        )
        self._commit()
        logger.info("Saved pill config (%d bottle(s) configured)", len(config.configured()))

    def load_pill_config(self, scope: str) -> PillBottleConfig | None:
        row = self._execute(
            "SELECT bottles_json FROM pill_configs WHERE scope = ?", (scope,)
        ).fetchone()
        if row is None:
            return None
        try:
            data = json.loads(row["bottles_json"])
        except (json.JSONDecodeError, TypeError) as exc:
            raise RepositoryError(f"Stored pill config is corrupt: {exc}") from exc
        return PillBottleConfig.from_dict(data)

    # ------------------------------------------------------------------
    # Command queue
    # ------------------------------------------------------------------

    def enqueue_command(self, scope: str, payload: dict[str, Any]) -> int:
        """Queue a command payload; returns its id."""
        cursor = self._execute(
            """INSERT INTO command_queue (scope, kind, bottle_id, payload_json, requested_at)
               VALUES (?, ?, ?, ?, ?)""",
            (
                scope,
                payload.get("kind", "dispense"),
                payload.get("bottle_id"),
                json.dumps(payload, ensure_ascii=False),
                float(payload.get("requested_at") or payload.get("created_at") or 0.0),
            ),
        )
        self._commit()
        return int(cursor.lastrowid)

    def get_pending_commands(self, scope: str, limit: int = 50) -> list[StoredCommand]:
        """Pending commands, oldest first."""
        rows = self._execute(
            """SELECT * FROM command_queue
               WHERE scope = ? AND status = 'pending'
               ORDER BY requested_at ASC, id ASC LIMIT ?""",
            (scope, limit),
        ).fetchall()
        return [self._row_to_command(r) for r in rows]

    def get_command(self, command_id: int) -> StoredCommand | None:
        row = self._execute(
            "SELECT * FROM command_queue WHERE id = ?", (command_id,)
        ).fetchone()
        return self._row_to_command(row) if row is not None else None

    def mark_command(self, command_id: int, status: str) -> bool:
        """Update a command's status; False when the id is unknown.

        Raises:
            ValueError: If ``status`` is not a known command status.
        """
        if status not in COMMAND_STATUSES:
            raise ValueError(f"Unknown command status: {status!r}")
        cursor = self._execute(
            "UPDATE command_queue SET status = ?, updated_at = datetime('now') WHERE id = ?",
            (status, command_id),
        )
        self._commit()
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_command(row: Any) -> StoredCommand:
        try:
            payload = json.loads(row["payload_json"])
        except (json.JSONDecodeError, TypeError):
            payload = {}
        return StoredCommand(
            id=row["id"],
            scope=row["scope"],
            kind=row["kind"],
            bottle_id=row["bottle_id"],
            payload=payload,
            status=row["status"],
            requested_at=row["requested_at"],
            updated_at=row["updated_at"],
        )

    # ------------------------------------------------------------------
    # Nutrition logs
    # ------------------------------------------------------------------

    def save_nutrition_log(self, scope: str, log: NutritionLog) -> str:
        log_id = log.id or str(uuid.uuid4())
        self._execute(
            """INSERT INTO nutrition_logs
               (id, scope, timestamp, requirement_label, deficient_json, supplements_json)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                log_id,
                scope,
                log.timestamp,
                log.requirement_label,
                json.dumps(log.deficient, ensure_ascii=False),
                json.dumps(log.supplements, ensure_ascii=False),
            ),
        )
        self._commit()
        return log_id

    def get_recent_nutrition_logs(
        self, scope: str, limit: int = DEFAULT_LOG_LIMIT
    ) -> list[NutritionLog]:
        """Most recent analyses first."""
        rows = self._execute(
            """SELECT * FROM nutrition_logs WHERE scope = ?
               ORDER BY timestamp DESC LIMIT ?""",
            (scope, limit),
        ).fetchall()
        logs = []
        for row in rows:
            try:
                deficient = json.loads(row["deficient_json"])
                supplements = json.loads(row["supplements_json"])
            except (json.JSONDecodeError, TypeError):
                logger.warning("Skipping corrupt nutrition log %s", row["id"])
                continue
            logs.append(NutritionLog(
                id=row["id"],
                timestamp=row["timestamp"],
                requirement_label=row["requirement_label"],
                deficient=deficient,
                supplements=supplements,
            ))
        return logs

    def count_nutrition_logs(self, scope: str | None = None) -> int:
        if scope is None:
            row = self._execute("SELECT COUNT(*) FROM nutrition_logs").fetchone()
        else:
            row = self._execute(
                "SELECT COUNT(*) FROM nutrition_logs WHERE scope = ?", (scope,)
            ).fetchone()
        return row[0]


def _short_hash(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:12]
