"""Core orchestration logic for the daycare operations dashboard."""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any, Mapping

from . import entities
from .database import get_connection, initialize_database
from .entities import parse_timestamp, timestamp, utc_now
from .store import ConflictError, IndexedCollection, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

ALL_ROLES = entities.ROLES
MODULE_ROLES = {
    "meet-and-greet": ALL_ROLES,
    "engagement": ALL_ROLES,
    "observations": ALL_ROLES,
    "shift-report": ("shift-lead", "manager", "owner"),
    "manager-dashboard": ("manager", "owner"),
}


@dataclass(frozen=True)
class StaffContext:
    """The signed-in staff member and the store they are working in.

    Built per request by the web layer and passed to whatever needs it.
    """

    user: dict | None
    role: str
    store: str

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def modules(self) -> list[str]:
        return [name for name, roles in MODULE_ROLES.items() if self.role in roles]

    def with_defaults(self, payload: Mapping[str, Any], staff_field: str | None = None) -> dict:
        """Fill ``store`` (and optionally the staff id field) from the context."""

        filled = dict(payload)
        filled.setdefault("store", self.store)
        if staff_field and self.user is not None:
            filled.setdefault(staff_field, self.user["id"])
        return filled

    def as_dict(self) -> dict[str, Any]:
        return {
            "user": self.user,
            "role": self.role,
            "store": self.store,
            "modules": self.modules,
        }


class OpsSystem:
    """High level façade that exposes application level behaviours."""

    def __init__(self, db_path: str = ":memory:", *, create_schema: bool = True) -> None:
        self.conn = get_connection(db_path)
        if create_schema:
            initialize_database(self.conn)
        self.staff = IndexedCollection(self.conn, entities.STAFF)
        self.dogs = IndexedCollection(self.conn, entities.DOGS)
        self.meet_and_greets = IndexedCollection(self.conn, entities.MEET_AND_GREETS)
        self.engagements = IndexedCollection(self.conn, entities.ENGAGEMENTS)
        self.observations = IndexedCollection(self.conn, entities.OBSERVATIONS)
        self.shift_reports = IndexedCollection(self.conn, entities.SHIFT_REPORTS)

    def ensure_seed(self) -> None:
        for collection in (self.staff, self.meet_and_greets, self.dogs):
            collection.ensure_seed()

    # ------------------------------------------------------------------
    # Staff & sessions
    # ------------------------------------------------------------------
    def list_staff(self) -> list[dict]:
        return self.staff.list()

    def staff_for_role(self, role: str) -> dict:
        if role not in entities.ROLES:
            raise ValidationError(f"role must be one of: {', '.join(entities.ROLES)}")
        for member in self.staff.list():
            if member["role"] == role:
                return member
        raise NotFoundError(f"No staff member with role {role!r}")

    def sign_in(self, role: str) -> StaffContext:
        user = self.staff_for_role(role)
        return StaffContext(user=user, role=role, store=user["store"])

    def switch_store(self, context: StaffContext, store: str) -> StaffContext:
        if store not in entities.STORES:
            raise ValidationError(f"store must be one of: {', '.join(entities.STORES)}")
        return StaffContext(user=context.user, role=context.role, store=store)

    # ------------------------------------------------------------------
    # Dogs
    # ------------------------------------------------------------------
    def list_dogs(self) -> list[dict]:
        return self.dogs.list()

    def get_dog(self, dog_id: str) -> dict:
        return self.dogs.get(dog_id)

    def dog_profile(self, dog_id: str) -> dict:
        """Return a dog with its observations, most recent first."""

        dog = self.get_dog(dog_id)
        observations = [obs for obs in self.observations.list() if obs["dogId"] == dog_id]
        observations.sort(key=lambda obs: parse_timestamp(obs["date"]), reverse=True)
        return {"dog": dog, "observations": observations}

    # ------------------------------------------------------------------
    # Meet & greets
    # ------------------------------------------------------------------
    def list_meet_and_greets(self) -> list[dict]:
        return self.meet_and_greets.list()

    def create_meet_and_greet(self, payload: Mapping[str, Any]) -> dict:
        record = self.meet_and_greets.create(entities.build_meet_and_greet(payload))
        logger.info("Created meet & greet %s for %s", record["id"], record["petName"])
        return record

    def update_meet_and_greet(self, greet_id: str, payload: Mapping[str, Any]) -> dict:
        changes = entities.meet_and_greet_changes(payload)

        def apply(current: dict) -> dict:
            updated = {**current, **changes}
            updated["updatedAt"] = _next_timestamp(current.get("updatedAt"))
            return updated

        record = self.meet_and_greets.mutate(greet_id, apply)
        logger.info("Updated meet & greet %s", greet_id)
        return record

    # ------------------------------------------------------------------
    # Engagements, observations & shift reports
    # ------------------------------------------------------------------
    def list_engagements(self) -> list[dict]:
        return self.engagements.list()

    def create_engagement(self, payload: Mapping[str, Any]) -> dict:
        record = self.engagements.create(entities.build_engagement(payload))
        logger.info("Logged %s engagement %s", record["feedbackCategory"], record["id"])
        return record

    def list_observations(self) -> list[dict]:
        return self.observations.list()

    def create_observation(self, payload: Mapping[str, Any]) -> dict:
        dog = None
        dog_id = payload.get("dogId")
        if isinstance(dog_id, str) and self.dogs.exists(dog_id):
            dog = self.dogs.get(dog_id)
        record = self.observations.create(entities.build_observation(payload, dog))
        logger.info("Recorded observation %s for %s", record["id"], record["dogName"])
        return record

    def list_shift_reports(self) -> list[dict]:
        return self.shift_reports.list()

    def create_shift_report(self, payload: Mapping[str, Any]) -> dict:
        record = self.shift_reports.create(entities.build_shift_report(payload))
        logger.info("Filed shift report %s for %s", record["id"], record["store"])
        return record

    def close(self) -> None:
        self.conn.close()


def _next_timestamp(previous: str | None) -> str:
    """Return the current time, nudged past ``previous`` if the clock has not moved."""

    now = utc_now()
    if previous:
        try:
            earlier = parse_timestamp(previous)
        except ValueError:
            return timestamp(now)
        if now <= earlier:
            now = earlier + dt.timedelta(microseconds=1)
    return timestamp(now)


__all__ = [
    "ConflictError",
    "NotFoundError",
    "OpsSystem",
    "StaffContext",
    "ValidationError",
]
