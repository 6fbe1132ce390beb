"""Filtering and KPI aggregation for the manager dashboard.

All functions are pure: they take already-fetched collections of records and
return new lists or summaries without modifying their inputs.
"""

from __future__ import annotations

import csv
import datetime as dt
import io
import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from .entities import STORES, parse_timestamp
from .store import ValidationError

ALL_STORES = "all"
DATE_FIELDS = ("createdAt", "greetDateTime", "date")

Bound = dt.date | dt.datetime


@dataclass(frozen=True)
class DateRange:
    """Inclusive range; ``end`` defaults to ``start``.

    ``date`` bounds compare against the item's UTC calendar day, ``datetime``
    bounds compare against the exact instant (naive values are read as UTC).
    """

    start: Bound | None = None
    end: Bound | None = None

    @classmethod
    def parse(cls, start: str | None, end: str | None = None) -> "DateRange":
        return cls(start=_parse_bound(start, "from"), end=_parse_bound(end, "to"))

    def contains(self, moment: dt.datetime) -> bool:
        if self.start is None:
            return True
        end = self.end if self.end is not None else self.start
        return _after_start(moment, self.start) and _before_end(moment, end)


@dataclass(frozen=True)
class KpiSummary:
    conversion_rate: int
    no_show_rate: int
    net_enrollment: int
    positive_feedback_ratio: int
    praise_count: int
    concern_count: int

    def as_dict(self) -> dict[str, int]:
        return {
            "conversionRate": self.conversion_rate,
            "noShowRate": self.no_show_rate,
            "netEnrollment": self.net_enrollment,
            "positiveFeedbackRatio": self.positive_feedback_ratio,
            "praiseCount": self.praise_count,
            "concernCount": self.concern_count,
        }


def _parse_bound(value: str | None, name: str) -> Bound | None:
    if not value:
        return None
    try:
        if len(value) == 10:
            return dt.date.fromisoformat(value)
        return parse_timestamp(value)
    except ValueError as exc:
        raise ValidationError(f"{name} must be an ISO-8601 date") from exc


def _as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def _after_start(moment: dt.datetime, bound: Bound) -> bool:
    if isinstance(bound, dt.datetime):
        return _as_utc(moment) >= _as_utc(bound)
    return _as_utc(moment).date() >= bound


def _before_end(moment: dt.datetime, bound: Bound) -> bool:
    if isinstance(bound, dt.datetime):
        return _as_utc(moment) <= _as_utc(bound)
    return _as_utc(moment).date() <= bound


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _percentage(part: int, whole: int, default: int = 0) -> int:
    if whole == 0:
        return default
    return _round_half_up(100 * part / whole)


def item_date(item: Mapping[str, Any]) -> dt.datetime | None:
    """Return the first present of ``createdAt``, ``greetDateTime``, ``date``."""

    for name in DATE_FIELDS:
        value = item.get(name)
        if value:
            if not isinstance(value, str):
                return None
            try:
                return parse_timestamp(value)
            except ValueError:
                return None
    return None


# ----------------------------------------------------------------------
# Filters
# ----------------------------------------------------------------------
def filter_by_store(items: Iterable[dict], store_filter: str) -> list[dict]:
    if store_filter == ALL_STORES:
        return list(items)
    return [item for item in items if item.get("store") == store_filter]


def filter_by_date_range(items: Iterable[dict], date_range: DateRange | None) -> list[dict]:
    if date_range is None or date_range.start is None:
        return list(items)
    kept = []
    for item in items:
        moment = item_date(item)
        if moment is not None and date_range.contains(moment):
            kept.append(item)
    return kept


def validate_store_filter(store_filter: str | None) -> str:
    store_filter = store_filter or ALL_STORES
    if store_filter != ALL_STORES and store_filter not in STORES:
        raise ValidationError(f"store must be 'all' or one of: {', '.join(STORES)}")
    return store_filter


# ----------------------------------------------------------------------
# KPIs & chart series
# ----------------------------------------------------------------------
def compute_kpis(
    meet_and_greets: Sequence[Mapping[str, Any]],
    shift_reports: Sequence[Mapping[str, Any]],
    engagements: Sequence[Mapping[str, Any]],
) -> KpiSummary:
    attended = [mg for mg in meet_and_greets if mg.get("status") == "Attended"]
    converted = sum(1 for mg in attended if mg.get("converted"))
    no_shows = sum(1 for mg in meet_and_greets if mg.get("status") == "No-Show")

    adds = sum(report.get("enrollmentAdds") or 0 for report in shift_reports)
    drops = sum(report.get("enrollmentDrops") or 0 for report in shift_reports)

    praise = sum(1 for e in engagements if e.get("feedbackCategory") == "Praise")
    concern = sum(1 for e in engagements if e.get("feedbackCategory") == "Concern")

    return KpiSummary(
        conversion_rate=_percentage(converted, len(attended)),
        no_show_rate=_percentage(no_shows, len(attended) + no_shows),
        net_enrollment=adds - drops,
        # No praise or concern at all counts as fully positive.
        positive_feedback_ratio=_percentage(praise, praise + concern, default=100),
        praise_count=praise,
        concern_count=concern,
    )


def conversion_breakdown(meet_and_greets: Sequence[Mapping[str, Any]]) -> list[dict]:
    converted = sum(1 for mg in meet_and_greets if mg.get("converted"))
    attended_no_sale = sum(
        1 for mg in meet_and_greets if mg.get("status") == "Attended" and not mg.get("converted")
    )
    no_show = sum(1 for mg in meet_and_greets if mg.get("status") == "No-Show")
    cancelled = sum(1 for mg in meet_and_greets if mg.get("status") == "Cancelled")
    return [
        {"name": "Converted", "value": converted},
        {"name": "Attended (No Sale)", "value": attended_no_sale},
        {"name": "No-Show", "value": no_show},
        {"name": "Cancelled", "value": cancelled},
    ]


def enrollment_trend(shift_reports: Sequence[Mapping[str, Any]]) -> list[dict]:
    """Daily adds, drops and net enrollment, oldest day first."""

    daily: dict[dt.date, dict[str, int]] = defaultdict(lambda: {"adds": 0, "drops": 0, "net": 0})
    for report in shift_reports:
        moment = item_date({"date": report.get("date")})
        if moment is None:
            continue
        adds = report.get("enrollmentAdds") or 0
        drops = report.get("enrollmentDrops") or 0
        bucket = daily[_as_utc(moment).date()]
        bucket["adds"] += adds
        bucket["drops"] += drops
        bucket["net"] += adds - drops
    return [{"date": day.isoformat(), **daily[day]} for day in sorted(daily)]


def build_dashboard(
    *,
    meet_and_greets: Sequence[dict],
    engagements: Sequence[dict],
    shift_reports: Sequence[dict],
    store_filter: str = ALL_STORES,
    date_range: DateRange | None = None,
) -> dict:
    """Return filtered collections, KPIs and chart series for the dashboard."""

    filtered = {
        "meetAndGreets": filter_by_date_range(filter_by_store(meet_and_greets, store_filter), date_range),
        "engagements": filter_by_date_range(filter_by_store(engagements, store_filter), date_range),
        "shiftReports": filter_by_date_range(filter_by_store(shift_reports, store_filter), date_range),
    }
    kpis = compute_kpis(filtered["meetAndGreets"], filtered["shiftReports"], filtered["engagements"])
    return {
        "filters": {
            "store": store_filter,
            "from": _bound_text(date_range.start) if date_range else None,
            "to": _bound_text(date_range.end) if date_range else None,
        },
        "kpis": kpis.as_dict(),
        "conversionBreakdown": conversion_breakdown(filtered["meetAndGreets"]),
        "enrollmentTrend": enrollment_trend(filtered["shiftReports"]),
        **filtered,
    }


def _bound_text(bound: Bound | None) -> str | None:
    return bound.isoformat() if bound is not None else None


# ----------------------------------------------------------------------
# Export
# ----------------------------------------------------------------------
def to_csv(records: Sequence[Mapping[str, Any]]) -> str:
    fieldnames: list[str] = []
    for record in records:
        for key in record:
            if key not in fieldnames:
                fieldnames.append(key)
    buffer = io.StringIO()
    if fieldnames:
        writer = csv.DictWriter(buffer, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(records)
    return buffer.getvalue()
