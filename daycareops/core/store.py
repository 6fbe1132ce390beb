"""Generic indexed entity persistence.

Every entity kind shares one storage shape: records keyed by id in the
``entities`` table plus an ordered list of ids in ``entity_index``. A kind is
described by an :class:`EntityKind` configuration record and accessed through
an :class:`IndexedCollection` bound to a connection.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from .database import claim_metadata, get_metadata, transaction

logger = logging.getLogger(__name__)


class ValidationError(RuntimeError):
    """Raised when incoming data fails validation."""


class NotFoundError(LookupError):
    """Raised when a record does not exist."""


class ConflictError(RuntimeError):
    """Raised when a record already exists under the requested id."""


@dataclass(frozen=True)
class EntityKind:
    """Static description of one entity kind."""

    name: str
    index_name: str
    seed: Callable[[], Sequence[dict]] | None = None

    def seed_records(self) -> list[dict]:
        return [dict(record) for record in self.seed()] if self.seed else []

    @property
    def seed_key(self) -> str:
        return f"seeded:{self.index_name}"


class IndexedCollection:
    """Records of a single :class:`EntityKind` with insertion-ordered listing."""

    def __init__(self, conn: sqlite3.Connection, kind: EntityKind) -> None:
        self.conn = conn
        self.kind = kind

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def list(self) -> list[dict]:
        rows = self.conn.execute(
            """
            SELECT entities.body
            FROM entity_index
            JOIN entities
              ON entities.kind = ? AND entities.id = entity_index.entity_id
            WHERE entity_index.index_name = ?
            ORDER BY entity_index.position
            """,
            (self.kind.name, self.kind.index_name),
        ).fetchall()
        return [json.loads(row["body"]) for row in rows]

    def get(self, entity_id: str) -> dict:
        row = self.conn.execute(
            "SELECT body FROM entities WHERE kind = ? AND id = ?",
            (self.kind.name, entity_id),
        ).fetchone()
        if not row:
            raise NotFoundError(f"{self.kind.name} {entity_id!r} not found")
        return json.loads(row["body"])

    def exists(self, entity_id: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 AS found FROM entities WHERE kind = ? AND id = ?",
            (self.kind.name, entity_id),
        ).fetchone()
        return row is not None

    def count(self) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) AS count FROM entity_index WHERE index_name = ?",
            (self.kind.index_name,),
        ).fetchone()
        return row["count"]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def create(self, record: dict) -> dict:
        """Store a new record and append it to the index.

        A missing or empty id is replaced with a UUID. An id that is already
        stored raises :class:`ConflictError`; existing records are never
        overwritten by ``create``.
        """

        stored = dict(record)
        entity_id = stored.get("id") or str(uuid.uuid4())
        if not isinstance(entity_id, str):
            raise ValidationError("Record id must be a string")
        stored["id"] = entity_id
        with transaction(self.conn):
            if self.exists(entity_id):
                raise ConflictError(f"{self.kind.name} {entity_id!r} already exists")
            self._insert(stored)
        return stored

    def mutate(self, entity_id: str, update: Callable[[dict], dict]) -> dict:
        """Apply ``update`` to the stored record and persist the result."""

        with transaction(self.conn):
            current = self.get(entity_id)
            updated = dict(update(dict(current)))
            updated["id"] = entity_id
            self.conn.execute(
                "UPDATE entities SET body = ? WHERE kind = ? AND id = ?",
                (json.dumps(updated), self.kind.name, entity_id),
            )
        return updated

    def ensure_seed(self) -> bool:
        """Write the kind's seed records once per database.

        The seed marker and the records are written in one transaction, and
        only the caller whose marker insert succeeds writes records. Once the
        marker exists the call is a single read. Returns ``True`` when this
        call performed the seeding.
        """

        if self.kind.seed is None or self.is_seeded():
            return False
        records = self.kind.seed_records()
        if not records:
            return False
        with transaction(self.conn):
            if not claim_metadata(self.conn, self.kind.seed_key, "1"):
                return False
            if self.count():
                return False
            for record in records:
                if not self.exists(record["id"]):
                    self._insert(record)
        logger.info("Seeded %d %s records", len(records), self.kind.name)
        return True

    def is_seeded(self) -> bool:
        return get_metadata(self.conn, self.kind.seed_key) is not None

    def _insert(self, record: dict[str, Any]) -> None:
        self.conn.execute(
            "INSERT INTO entities(kind, id, body) VALUES (?, ?, ?)",
            (self.kind.name, record["id"], json.dumps(record)),
        )
        self.conn.execute(
            "INSERT OR IGNORE INTO entity_index(index_name, entity_id) VALUES (?, ?)",
            (self.kind.index_name, record["id"]),
        )


__all__ = [
    "ConflictError",
    "EntityKind",
    "IndexedCollection",
    "NotFoundError",
    "ValidationError",
]
