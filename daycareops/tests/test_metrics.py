import copy
import datetime as dt
import unittest

from daycareops.core import metrics
from daycareops.core.metrics import DateRange
from daycareops.core.store import ValidationError


class FilterTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.items = [
            {"id": "a", "store": "Ellisville", "createdAt": "2024-01-15T09:00:00Z"},
            {"id": "b", "store": "Rock Hill", "greetDateTime": "2024-01-25T09:00:00Z"},
            {"id": "c", "store": "Ellisville", "date": "2024-01-20T23:30:00+00:00"},
            {"id": "d", "store": "Rock Hill"},
        ]

    def ids(self, items: list) -> list:
        return [item["id"] for item in items]

    def test_all_stores_is_identity(self) -> None:
        for items in (self.items, [], self.items[:1]):
            self.assertEqual(metrics.filter_by_store(items, "all"), items)

    def test_filter_by_store(self) -> None:
        self.assertEqual(self.ids(metrics.filter_by_store(self.items, "Rock Hill")), ["b", "d"])

    def test_filter_by_date_range_inclusive(self) -> None:
        date_range = DateRange(dt.date(2024, 1, 10), dt.date(2024, 1, 20))
        self.assertEqual(self.ids(metrics.filter_by_date_range(self.items, date_range)), ["a", "c"])

    def test_missing_start_is_identity(self) -> None:
        self.assertEqual(metrics.filter_by_date_range(self.items, DateRange()), self.items)
        self.assertEqual(metrics.filter_by_date_range(self.items, None), self.items)

    def test_end_defaults_to_start(self) -> None:
        date_range = DateRange(dt.date(2024, 1, 25))
        self.assertEqual(self.ids(metrics.filter_by_date_range(self.items, date_range)), ["b"])

    def test_created_at_takes_priority(self) -> None:
        item = {
            "id": "x",
            "createdAt": "2024-03-01T00:00:00Z",
            "greetDateTime": "2024-01-15T00:00:00Z",
        }
        date_range = DateRange(dt.date(2024, 1, 10), dt.date(2024, 1, 20))
        self.assertEqual(metrics.filter_by_date_range([item], date_range), [])

    def test_datetime_bounds_compare_instants(self) -> None:
        date_range = DateRange(
            dt.datetime(2024, 1, 15, 8, 0, tzinfo=dt.timezone.utc),
            dt.datetime(2024, 1, 15, 10, 0),
        )
        self.assertEqual(self.ids(metrics.filter_by_date_range(self.items, date_range)), ["a"])

    def test_unparseable_dates_are_dropped(self) -> None:
        items = [{"id": "bad", "createdAt": "yesterday"}]
        date_range = DateRange(dt.date(2024, 1, 1), dt.date(2030, 1, 1))
        self.assertEqual(metrics.filter_by_date_range(items, date_range), [])

    def test_inputs_are_not_mutated(self) -> None:
        before = copy.deepcopy(self.items)
        metrics.filter_by_store(self.items, "Ellisville")
        metrics.filter_by_date_range(self.items, DateRange(dt.date(2024, 1, 1)))
        self.assertEqual(self.items, before)

    def test_parse_range(self) -> None:
        parsed = DateRange.parse("2024-01-10", "2024-01-20")
        self.assertEqual(parsed, DateRange(dt.date(2024, 1, 10), dt.date(2024, 1, 20)))
        self.assertEqual(DateRange.parse(None, None), DateRange())
        moment = DateRange.parse("2024-01-10T08:00:00Z").start
        self.assertEqual(moment, dt.datetime(2024, 1, 10, 8, 0, tzinfo=dt.timezone.utc))
        with self.assertRaises(ValidationError):
            DateRange.parse("last week")

    def test_validate_store_filter(self) -> None:
        self.assertEqual(metrics.validate_store_filter(None), "all")
        self.assertEqual(metrics.validate_store_filter("Rock Hill"), "Rock Hill")
        with self.assertRaises(ValidationError):
            metrics.validate_store_filter("Downtown")


class KpiTestCase(unittest.TestCase):
    def test_conversion_and_no_show_rates(self) -> None:
        greets = [
            {"status": "Attended", "converted": True},
            {"status": "Attended", "converted": False},
            {"status": "No-Show"},
        ]
        kpis = metrics.compute_kpis(greets, [], [])
        self.assertEqual(kpis.conversion_rate, 50)
        self.assertEqual(kpis.no_show_rate, 33)

    def test_empty_inputs(self) -> None:
        kpis = metrics.compute_kpis([], [], [])
        self.assertEqual(kpis.conversion_rate, 0)
        self.assertEqual(kpis.no_show_rate, 0)
        self.assertEqual(kpis.net_enrollment, 0)
        self.assertEqual(kpis.positive_feedback_ratio, 100)

    def test_suggestions_do_not_count_toward_feedback_ratio(self) -> None:
        engagements = [{"feedbackCategory": "Suggestion"}] * 3
        self.assertEqual(metrics.compute_kpis([], [], engagements).positive_feedback_ratio, 100)
        engagements = [
            {"feedbackCategory": "Praise"},
            {"feedbackCategory": "Praise"},
            {"feedbackCategory": "Concern"},
            {"feedbackCategory": "Suggestion"},
        ]
        kpis = metrics.compute_kpis([], [], engagements)
        self.assertEqual(kpis.positive_feedback_ratio, 67)
        self.assertEqual((kpis.praise_count, kpis.concern_count), (2, 1))

    def test_rates_round_half_up(self) -> None:
        greets = [{"status": "Attended", "converted": True}] + [
            {"status": "Attended", "converted": False}
        ] * 7
        self.assertEqual(metrics.compute_kpis(greets, [], []).conversion_rate, 13)

    def test_converted_without_attendance_is_ignored(self) -> None:
        greets = [{"status": "Cancelled", "converted": True}, {"status": "Attended", "converted": False}]
        kpis = metrics.compute_kpis(greets, [], [])
        self.assertEqual(kpis.conversion_rate, 0)
        self.assertEqual(kpis.no_show_rate, 0)

    def test_net_enrollment(self) -> None:
        reports = [
            {"enrollmentAdds": 4, "enrollmentDrops": 1},
            {"enrollmentAdds": 0, "enrollmentDrops": 5},
        ]
        self.assertEqual(metrics.compute_kpis([], reports, []).net_enrollment, -2)

    def test_as_dict_uses_wire_names(self) -> None:
        payload = metrics.compute_kpis([], [], []).as_dict()
        self.assertEqual(
            set(payload),
            {
                "conversionRate",
                "noShowRate",
                "netEnrollment",
                "positiveFeedbackRatio",
                "praiseCount",
                "concernCount",
            },
        )


class SeriesTestCase(unittest.TestCase):
    def test_conversion_breakdown(self) -> None:
        greets = [
            {"status": "Attended", "converted": True},
            {"status": "Attended", "converted": False},
            {"status": "No-Show", "converted": False},
            {"status": "Cancelled", "converted": False},
            {"status": "Rescheduled", "converted": False},
        ]
        breakdown = {row["name"]: row["value"] for row in metrics.conversion_breakdown(greets)}
        self.assertEqual(
            breakdown,
            {"Converted": 1, "Attended (No Sale)": 1, "No-Show": 1, "Cancelled": 1},
        )

    def test_enrollment_trend_groups_by_day(self) -> None:
        reports = [
            {"date": "2024-02-02T18:00:00Z", "enrollmentAdds": 1, "enrollmentDrops": 0},
            {"date": "2024-02-01T09:00:00Z", "enrollmentAdds": 2, "enrollmentDrops": 1},
            {"date": "2024-02-01T17:00:00Z", "enrollmentAdds": 1, "enrollmentDrops": 3},
        ]
        self.assertEqual(
            metrics.enrollment_trend(reports),
            [
                {"date": "2024-02-01", "adds": 3, "drops": 4, "net": -1},
                {"date": "2024-02-02", "adds": 1, "drops": 0, "net": 1},
            ],
        )

    def test_build_dashboard_filters_before_aggregating(self) -> None:
        snapshot = metrics.build_dashboard(
            meet_and_greets=[
                {"store": "Ellisville", "status": "Attended", "converted": True,
                 "createdAt": "2024-01-12T10:00:00Z"},
                {"store": "Rock Hill", "status": "No-Show", "converted": False,
                 "createdAt": "2024-01-12T10:00:00Z"},
            ],
            engagements=[
                {"store": "Ellisville", "feedbackCategory": "Concern",
                 "createdAt": "2024-02-12T10:00:00Z"},
            ],
            shift_reports=[
                {"store": "Ellisville", "date": "2024-01-13T10:00:00Z",
                 "enrollmentAdds": 2, "enrollmentDrops": 0},
            ],
            store_filter="Ellisville",
            date_range=DateRange(dt.date(2024, 1, 1), dt.date(2024, 1, 31)),
        )
        self.assertEqual(len(snapshot["meetAndGreets"]), 1)
        self.assertEqual(snapshot["engagements"], [])
        self.assertEqual(snapshot["kpis"]["conversionRate"], 100)
        self.assertEqual(snapshot["kpis"]["noShowRate"], 0)
        self.assertEqual(snapshot["kpis"]["netEnrollment"], 2)
        self.assertEqual(snapshot["kpis"]["positiveFeedbackRatio"], 100)
        self.assertEqual(snapshot["filters"], {"store": "Ellisville", "from": "2024-01-01", "to": "2024-01-31"})
        self.assertEqual(snapshot["enrollmentTrend"][0]["date"], "2024-01-13")


class CsvTestCase(unittest.TestCase):
    def test_to_csv_uses_union_of_keys(self) -> None:
        text = metrics.to_csv([{"id": "a", "name": "Rex"}, {"id": "b", "notes": "calm"}])
        lines = text.splitlines()
        self.assertEqual(lines[0], "id,name,notes")
        self.assertEqual(lines[1], "a,Rex,")
        self.assertEqual(lines[2], "b,,calm")

    def test_to_csv_empty(self) -> None:
        self.assertEqual(metrics.to_csv([]), "")


if __name__ == "__main__":
    unittest.main()
