from __future__ import annotations

import dataclasses
import unittest
from datetime import datetime

from call_dashboard.config import build_settings, default_payload
from call_dashboard.normalizer import clean_fields, normalize_row, resolve_roles
from call_dashboard.sources import SOURCE_PROFILES, get_profile
from call_dashboard.validator import is_valid

SETTINGS = build_settings(default_payload())


def inbound_row(**overrides):
    row = {
        "Call ID": "IN-1",
        "Date/Time": "15/01/2024 09:05",
        "Agent Name": "Alice Smith",
        "Disposition": "Answered",
        "Talk Time": "04:10",
        "Wait Time": "00:30",
    }
    row.update(overrides)
    return row


def connect_row(**overrides):
    row = {
        "Call ID": "OC-1",
        "Date/Time (earliest)": "15/01/2024 09:10",
        "Agent": "Alice Smith",
        "Initial Direction": "Outbound",
        "Duration": "02:31",
    }
    row.update(overrides)
    return row


class InboundNormalizerTests(unittest.TestCase):
    def test_fields_metrics_and_flags(self):
        record = normalize_row(inbound_row(), "inbound", SETTINGS)
        self.assertEqual(record.parsed_date, datetime(2024, 1, 15, 9, 5))
        self.assertEqual(record.chart_bucket_key, "2024-01-15")
        self.assertEqual(record.metrics["handle_seconds"], 250.0)
        self.assertEqual(record.metrics["wait_seconds"], 30.0)
        self.assertFalse(record.flags["is_abandoned"])
        self.assertFalse(record.flags["date_is_ambiguous"])
        self.assertEqual(record.get("Agent Name"), "Alice Smith")

    def test_abandoned_keywords_are_case_insensitive_substrings(self):
        for status in ("Abandoned", "MISSED CALL", "Caller hangup", "No Answer"):
            with self.subTest(status=status):
                record = normalize_row(inbound_row(Disposition=status), "inbound", SETTINGS)
                self.assertTrue(record.flags["is_abandoned"])

    def test_blank_duration_is_absent_not_zero(self):
        record = normalize_row(inbound_row(**{"Talk Time": ""}), "inbound", SETTINGS)
        self.assertIsNone(record.metrics["handle_seconds"])

    def test_ambiguous_date_is_flagged(self):
        record = normalize_row(inbound_row(**{"Date/Time": "03/04/2024"}), "inbound", SETTINGS)
        self.assertTrue(record.flags["date_is_ambiguous"])
        self.assertEqual(record.parsed_date, datetime(2024, 4, 3))

        month_first = dataclasses.replace(SETTINGS, day_first=False)
        record = normalize_row(inbound_row(**{"Date/Time": "03/04/2024"}), "inbound", month_first)
        self.assertEqual(record.parsed_date, datetime(2024, 3, 4))

    def test_unparseable_date_keeps_raw_bucket_key(self):
        record = normalize_row(inbound_row(**{"Date/Time": "Week 3"}), "inbound", SETTINGS)
        self.assertIsNone(record.parsed_date)
        self.assertEqual(record.chart_bucket_key, "Week 3")

    def test_header_drift_is_absorbed(self):
        row = {"call_id": "X", "datetime": "2024-01-05", "queue_time": "15", "outcome": "abandoned"}
        record = normalize_row(row, "inbound", SETTINGS)
        self.assertEqual(record.metrics["wait_seconds"], 15.0)
        self.assertTrue(record.flags["is_abandoned"])
        self.assertEqual(record.parsed_date, datetime(2024, 1, 5))

    def test_renormalizing_fields_is_idempotent(self):
        first = normalize_row(inbound_row(**{" Wait Time ": " 00:30 "}), "inbound", SETTINGS)
        second = normalize_row(first.fields, "inbound", SETTINGS)
        self.assertEqual(first.derived(), second.derived())
        self.assertEqual(first.fields, second.fields)


class OutboundNormalizerTests(unittest.TestCase):
    def row(self, **overrides):
        row = {
            "Date": "31/01/2024",
            "Agent": "Bob Jones",
            "Total Calls": "1,010",
            "Outbound Calls": "13",
            "Answered Calls": "10",
            "Missed Calls": "2",
            "Voicemail Calls": "1",
            "Total Call Duration": "0:40:00",
        }
        row.update(overrides)
        return row

    def test_unambiguous_date_regardless_of_day_first(self):
        for day_first in (True, False):
            with self.subTest(day_first=day_first):
                settings = dataclasses.replace(SETTINGS, day_first=day_first)
                record = normalize_row(self.row(), "outbound", settings)
                self.assertEqual(record.parsed_date, datetime(2024, 1, 31))

    def test_fixed_schema_totals(self):
        record = normalize_row(self.row(), "outbound", SETTINGS)
        self.assertEqual(record.metrics["total_calls"], 1010.0)
        self.assertEqual(record.metrics["outbound_calls"], 13.0)
        self.assertEqual(record.metrics["answered_calls"], 10.0)
        self.assertEqual(record.metrics["missed_calls"], 2.0)
        self.assertEqual(record.metrics["voicemail_calls"], 1.0)
        self.assertEqual(record.metrics["total_call_duration"], 2400.0)
        self.assertEqual(record.metrics["call_count"], 13.0)
        self.assertNotIn("is_connected", record.flags)

    def test_call_count_falls_back_to_total_calls(self):
        row = self.row()
        del row["Outbound Calls"]
        record = normalize_row(row, "outbound", SETTINGS)
        self.assertIsNone(record.metrics["outbound_calls"])
        self.assertEqual(record.metrics["call_count"], 1010.0)


class ConnectRateNormalizerTests(unittest.TestCase):
    def test_connected_threshold_is_strict(self):
        over = normalize_row(connect_row(Duration="02:31"), "outbound_connectrate", SETTINGS)
        exact = normalize_row(connect_row(Duration="02:30"), "outbound_connectrate", SETTINGS)
        self.assertTrue(over.flags["is_connected"])
        self.assertFalse(exact.flags["is_connected"])
        self.assertEqual(exact.metrics["duration_seconds"], 150.0)

    def test_threshold_comes_from_settings(self):
        settings = dataclasses.replace(SETTINGS, connected_call_minimum_seconds=60)
        record = normalize_row(connect_row(Duration="01:01"), "outbound_connectrate", settings)
        self.assertTrue(record.flags["is_connected"])

    def test_direction_flag(self):
        self.assertTrue(
            normalize_row(connect_row(**{"Initial Direction": " OUTBOUND "}), "outbound_connectrate", SETTINGS)
            .flags["is_outbound_direction"]
        )
        self.assertFalse(
            normalize_row(connect_row(**{"Initial Direction": "Inbound"}), "outbound_connectrate", SETTINGS)
            .flags["is_outbound_direction"]
        )

    def test_missing_duration_is_not_connected(self):
        record = normalize_row(connect_row(Duration=""), "outbound_connectrate", SETTINGS)
        self.assertIsNone(record.metrics["duration_seconds"])
        self.assertFalse(record.flags["is_connected"])


class FcrNormalizerTests(unittest.TestCase):
    def test_composite_date_and_case_count(self):
        record = normalize_row({"Year": "2024", "Month": "1", "Date": "15", "Count": "3"}, "fcr", SETTINGS)
        self.assertEqual(record.parsed_date, datetime(2024, 1, 15))
        self.assertEqual(record.chart_bucket_key, "2024-01-15")
        self.assertEqual(record.metrics["case_count"], 3.0)

    def test_impossible_composite_is_dateless_and_rejected(self):
        record = normalize_row({"Year": "2024", "Month": "13", "Date": "5", "Count": "9"}, "fcr", SETTINGS)
        self.assertIsNone(record.parsed_date)
        self.assertFalse(is_valid(record, "fcr", SETTINGS))

    def test_generic_date_when_no_composite_columns(self):
        record = normalize_row({"Date": "2024-02-03", "Count": "4"}, "fcr", SETTINGS)
        self.assertEqual(record.parsed_date, datetime(2024, 2, 3))
        self.assertTrue(is_valid(record, "fcr", SETTINGS))


class HelpersTests(unittest.TestCase):
    def test_clean_fields_trims_and_drops_blank_headers(self):
        self.assertEqual(clean_fields({" A ": " 1 ", "": "x", "B": None}), {"A": "1", "B": ""})

    def test_resolve_roles_uses_configured_candidates(self):
        roles = resolve_roles(["Call ID", "Wait Time", "Other"], "inbound", SETTINGS)
        self.assertEqual(roles, {"call_id": "Call ID", "wait_time": "Wait Time"})

    def test_unknown_source_raises(self):
        with self.assertRaises(ValueError):
            normalize_row({"a": "1"}, "mystery", SETTINGS)
        with self.assertRaises(ValueError):
            get_profile("mystery")

    def test_strategy_table_covers_every_source(self):
        self.assertEqual(set(SOURCE_PROFILES), {"inbound", "outbound", "outbound_connectrate", "fcr"})
        profile = SOURCE_PROFILES["inbound"]
        record = profile.build(inbound_row(), SETTINGS)
        self.assertTrue(profile.accepts(record, SETTINGS))
        self.assertEqual(profile.candidates(SETTINGS)["call_id"][0], "Call ID")

    def test_profile_dispatches_through_its_own_callables(self):
        seen = []

        def tag(record, settings):
            seen.append(record.source_type)
            record.flags["tagged"] = True

        profile = dataclasses.replace(
            SOURCE_PROFILES["inbound"],
            normalize=tag,
            is_valid=lambda record, settings: False,
        )
        record = profile.build(inbound_row(), SETTINGS)
        self.assertEqual(seen, ["inbound"])
        self.assertTrue(record.flag("tagged"))
        self.assertNotIn("handle_seconds", record.metrics)
        self.assertFalse(profile.accepts(record, SETTINGS))


if __name__ == "__main__":
    unittest.main()
