"""Entity kinds, demonstration seed data and request payload builders."""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Any, Iterable, Mapping

from .store import EntityKind, ValidationError

STORES = ("Ellisville", "Rock Hill")
ROLES = ("front-desk", "shift-lead", "manager", "owner")
MEET_AND_GREET_STATUSES = ("Attended", "No-Show", "Cancelled", "Rescheduled")
MEET_AND_GREET_FIELDS = (
    "petName",
    "ownerName",
    "greetDateTime",
    "status",
    "converted",
    "staffId",
    "notes",
    "store",
)
MILESTONES = ("1 Month", "6 Months", "1 Year", "Anniversary", "Other")
FEEDBACK_CATEGORIES = ("Concern", "Praise", "Suggestion")
SHIFTS = ("AM", "PM")
OBSERVATION_TYPES = ("Confidence", "Socialization", "Behavior", "Training Readiness")

SHIFT_REPORT_COUNTERS = (
    "enrollmentAdds",
    "enrollmentDrops",
    "enrollmentPauses",
    "newVisits",
    "returnVisits",
    "capacity",
)


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def timestamp(moment: dt.datetime | None = None) -> str:
    """Return an ISO-8601 UTC timestamp with a fixed microsecond precision."""

    moment = moment or utc_now()
    return moment.astimezone(dt.timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> dt.datetime:
    """Parse an ISO-8601 string, accepting a trailing ``Z``. Naive values are UTC."""

    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = dt.datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


# ----------------------------------------------------------------------
# Seed data
# ----------------------------------------------------------------------
def _staff_seed() -> list[dict]:
    return [
        {"id": "user-1", "name": "Alice Johnson", "role": "front-desk", "store": "Ellisville"},
        {"id": "user-2", "name": "Bob Williams", "role": "shift-lead", "store": "Ellisville"},
        {"id": "user-3", "name": "Charlie Brown", "role": "manager", "store": "Rock Hill"},
        {"id": "user-4", "name": "Diana Miller", "role": "front-desk", "store": "Rock Hill"},
        {"id": "user-5", "name": "Eve Davis", "role": "owner", "store": "Ellisville"},
    ]


def _dog_seed() -> list[dict]:
    return [
        {
            "id": "dog-1",
            "name": "Buddy",
            "ownerName": "John Doe",
            "store": "Ellisville",
            "photoUrl": "https://images.dog.ceo/breeds/retriever-golden/n02099601_3414.jpg",
        },
        {
            "id": "dog-2",
            "name": "Lucy",
            "ownerName": "Jane Smith",
            "store": "Ellisville",
            "photoUrl": "https://images.dog.ceo/breeds/beagle/n02088364_1213.jpg",
        },
        {
            "id": "dog-3",
            "name": "Max",
            "ownerName": "Peter Jones",
            "store": "Rock Hill",
            "photoUrl": "https://images.dog.ceo/breeds/germanlonghair/n02101388_283.jpg",
        },
        {
            "id": "dog-4",
            "name": "Daisy",
            "ownerName": "Susan White",
            "store": "Rock Hill",
            "photoUrl": "https://images.dog.ceo/breeds/poodle-miniature/n02113712_393.jpg",
        },
    ]


def _meet_and_greet_seed() -> list[dict]:
    now = utc_now()
    created = timestamp(now)
    return [
        {
            "id": "mg-1",
            "petName": "Buddy",
            "ownerName": "John Doe",
            "greetDateTime": timestamp(now - dt.timedelta(days=1)),
            "status": "Attended",
            "converted": True,
            "staffId": "user-1",
            "notes": "Very friendly golden retriever.",
            "store": "Ellisville",
            "createdAt": created,
            "updatedAt": created,
        },
        {
            "id": "mg-2",
            "petName": "Lucy",
            "ownerName": "Jane Smith",
            "greetDateTime": timestamp(now - dt.timedelta(days=2)),
            "status": "Attended",
            "converted": False,
            "staffId": "user-2",
            "notes": "A bit shy at first.",
            "store": "Ellisville",
            "createdAt": created,
            "updatedAt": created,
        },
        {
            "id": "mg-3",
            "petName": "Max",
            "ownerName": "Peter Jones",
            "greetDateTime": created,
            "status": "No-Show",
            "converted": False,
            "staffId": "user-4",
            "notes": "",
            "store": "Rock Hill",
            "createdAt": created,
            "updatedAt": created,
        },
    ]


STAFF = EntityKind("staff", "staff_all", seed=_staff_seed)
DOGS = EntityKind("dog", "dogs_all", seed=_dog_seed)
MEET_AND_GREETS = EntityKind("meetAndGreet", "meetAndGreets_all", seed=_meet_and_greet_seed)
ENGAGEMENTS = EntityKind("engagement", "engagements_all")
OBSERVATIONS = EntityKind("observation", "observations_all")
SHIFT_REPORTS = EntityKind("shiftReport", "shiftReports_all")

ALL_KINDS = (STAFF, DOGS, MEET_AND_GREETS, ENGAGEMENTS, OBSERVATIONS, SHIFT_REPORTS)


# ----------------------------------------------------------------------
# Validation helpers
# ----------------------------------------------------------------------
def require_fields(payload: Mapping[str, Any], fields: Iterable[str], label: str) -> None:
    missing = [name for name in fields if not payload.get(name)]
    if missing:
        raise ValidationError(f"Missing required fields for {label}: {', '.join(missing)}")


def _choice(value: Any, allowed: tuple[str, ...], field_name: str) -> str:
    if value not in allowed:
        raise ValidationError(f"{field_name} must be one of: {', '.join(allowed)}")
    return value


def _required_text(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be a non-empty string")
    return value


def _text(payload: Mapping[str, Any], name: str) -> str:
    value = payload.get(name) or ""
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    return value


def _counter(payload: Mapping[str, Any], name: str) -> int:
    value = payload.get(name) or 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer")
    return value


def _datetime_text(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be an ISO-8601 string")
    try:
        parse_timestamp(value)
    except ValueError as exc:
        raise ValidationError(f"{name} must be an ISO-8601 string") from exc
    return value


def _flag(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be true or false")
    return value


# ----------------------------------------------------------------------
# Record builders
# ----------------------------------------------------------------------
def build_meet_and_greet(payload: Mapping[str, Any]) -> dict:
    require_fields(
        payload,
        ("petName", "ownerName", "greetDateTime", "staffId", "store"),
        "Meet & Greet",
    )
    now = timestamp()
    return {
        "id": str(uuid.uuid4()),
        "petName": _required_text(payload["petName"], "petName"),
        "ownerName": _required_text(payload["ownerName"], "ownerName"),
        "greetDateTime": _datetime_text(payload["greetDateTime"], "greetDateTime"),
        "status": _choice(payload.get("status") or "Attended", MEET_AND_GREET_STATUSES, "status"),
        "converted": _flag(payload.get("converted", False), "converted"),
        "staffId": _required_text(payload["staffId"], "staffId"),
        "notes": _text(payload, "notes"),
        "store": _choice(payload["store"], STORES, "store"),
        "createdAt": now,
        "updatedAt": now,
    }


def meet_and_greet_changes(payload: Mapping[str, Any]) -> dict:
    """Return the validated subset of a meet-and-greet patch.

    Keys that are not editable meet-and-greet fields are dropped, including
    ``id`` and the timestamps.
    """

    changes = {name: payload[name] for name in MEET_AND_GREET_FIELDS if name in payload}
    for name in ("petName", "ownerName", "staffId"):
        if name in changes:
            _required_text(changes[name], name)
    if "notes" in changes:
        changes["notes"] = _text(changes, "notes")
    if "status" in changes:
        _choice(changes["status"], MEET_AND_GREET_STATUSES, "status")
    if "store" in changes:
        _choice(changes["store"], STORES, "store")
    if "converted" in changes:
        _flag(changes["converted"], "converted")
    if "greetDateTime" in changes:
        _datetime_text(changes["greetDateTime"], "greetDateTime")
    return changes


def build_engagement(payload: Mapping[str, Any]) -> dict:
    require_fields(
        payload,
        ("parentName", "milestone", "feedbackCategory", "staffId", "store"),
        "Engagement",
    )
    return {
        "id": str(uuid.uuid4()),
        "parentName": _required_text(payload["parentName"], "parentName"),
        "milestone": _choice(payload["milestone"], MILESTONES, "milestone"),
        "feedbackCategory": _choice(
            payload["feedbackCategory"], FEEDBACK_CATEGORIES, "feedbackCategory"
        ),
        "notes": _text(payload, "notes"),
        "staffId": _required_text(payload["staffId"], "staffId"),
        "store": _choice(payload["store"], STORES, "store"),
        "createdAt": timestamp(),
    }


def build_observation(payload: Mapping[str, Any], dog: Mapping[str, Any] | None) -> dict:
    """Build an observation; ``dogName`` is copied from ``dog`` when not supplied.

    The copy is taken at write time and is not refreshed if the dog is renamed.
    """

    require_fields(payload, ("dogId", "observationType", "staffId", "store"), "Observation")
    dog_name = payload.get("dogName") or (dog or {}).get("name")
    if not dog_name:
        raise ValidationError(f"Unknown dog {payload['dogId']!r}")
    return {
        "id": str(uuid.uuid4()),
        "dogId": _required_text(payload["dogId"], "dogId"),
        "dogName": _required_text(dog_name, "dogName"),
        "date": timestamp(),
        "shift": _choice(payload.get("shift") or "AM", SHIFTS, "shift"),
        "observationType": _choice(
            payload["observationType"], OBSERVATION_TYPES, "observationType"
        ),
        "notes": _text(payload, "notes"),
        "staffId": _required_text(payload["staffId"], "staffId"),
        "store": _choice(payload["store"], STORES, "store"),
    }


def build_shift_report(payload: Mapping[str, Any]) -> dict:
    require_fields(payload, ("shiftLeadId", "store"), "Shift Report")
    report = {
        "id": str(uuid.uuid4()),
        "date": _datetime_text(payload.get("date") or timestamp(), "date"),
        "shiftLeadId": _required_text(payload["shiftLeadId"], "shiftLeadId"),
    }
    for name in SHIFT_REPORT_COUNTERS:
        report[name] = _counter(payload, name)
    report["issues"] = _text(payload, "issues")
    report["staffHighlights"] = _text(payload, "staffHighlights")
    report["store"] = _choice(payload["store"], STORES, "store")
    return report
