from __future__ import annotations

import dataclasses
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import requests

from call_dashboard.config import build_settings, default_payload
from call_dashboard.errors import SourceLoadError
from call_dashboard.loader import (
    decode_csv_bytes,
    detect_delimiter,
    fetch_source_bytes,
    load_sources,
    parse_source,
    process_rows,
    tokenize_csv,
)
from call_dashboard.normalizer import normalize_row
from call_dashboard.sources import SOURCE_PROFILES
from call_dashboard.store import SourceStore

ROOT = Path(__file__).resolve().parents[1]
SAMPLE_DIR = ROOT / "sample-data"
SETTINGS = build_settings(default_payload())

SAMPLE_LOCATIONS = {
    "inbound": str(SAMPLE_DIR / "inbound_calls.csv"),
    "outbound": str(SAMPLE_DIR / "outbound_calls.csv"),
    "outbound_connectrate": str(SAMPLE_DIR / "outbound_connectrate.csv"),
    "fcr": str(SAMPLE_DIR / "first_contact_resolution.csv"),
}


class DecodeTests(unittest.TestCase):
    def test_bom_is_stripped(self):
        text, _ = decode_csv_bytes("\ufeffCall ID,Date\nA,2024-01-01\n".encode("utf-8"))
        self.assertTrue(text.startswith("Call ID"))

    def test_mixed_encoding_lines_decode(self):
        raw = "Agent,Status\n".encode("utf-8") + "José,Answered\n".encode("cp1252")
        text, _ = decode_csv_bytes(raw)
        self.assertIn("José", text)


class TokenizeTests(unittest.TestCase):
    def test_delimiters_are_detected(self):
        for delimiter in (",", "\t", ";", "|"):
            with self.subTest(delimiter=repr(delimiter)):
                text = delimiter.join(["Call ID", "Agent", "Status"]) + "\n"
                text += delimiter.join(["1", "Alice", "Answered"]) + "\n"
                text += delimiter.join(["2", "Bob", "Abandoned"]) + "\n"
                self.assertEqual(detect_delimiter(text), delimiter)
                headers, rows = tokenize_csv(text)
                self.assertEqual(headers, ["Call ID", "Agent", "Status"])
                self.assertEqual(rows[1]["Agent"], "Bob")

    def test_cells_stay_strings_and_blank_lines_are_skipped(self):
        headers, rows = tokenize_csv("Call ID,Count,Note\n007,1.50,\n\n\n008,NA,x\n")
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0], {"Call ID": "007", "Count": "1.50", "Note": ""})
        self.assertEqual(rows[1]["Count"], "NA")

    def test_quoted_values_keep_commas(self):
        _, rows = tokenize_csv('Agent,Total Calls\n"Smith, Jo","1,010"\n')
        self.assertEqual(rows[0], {"Agent": "Smith, Jo", "Total Calls": "1,010"})

    def test_empty_document_raises(self):
        with self.assertRaises(SourceLoadError):
            tokenize_csv("  \n\n", "inbound")

    def test_header_only_document_has_no_rows(self):
        headers, rows = tokenize_csv("Call ID,Agent\n")
        self.assertEqual(headers, ["Call ID", "Agent"])
        self.assertEqual(rows, [])


class FetchTests(unittest.TestCase):
    def test_missing_file_raises_source_error(self):
        with self.assertRaises(SourceLoadError) as ctx:
            fetch_source_bytes("inbound", "/nope/missing.csv", SETTINGS)
        self.assertEqual(ctx.exception.source, "inbound")
        self.assertIn("file not found", ctx.exception.reason)

    def test_empty_file_raises_source_error(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "empty.csv"
            path.write_bytes(b"")
            with self.assertRaises(SourceLoadError):
                fetch_source_bytes("fcr", str(path), SETTINGS)

    def test_oversized_file_is_rejected(self):
        settings = dataclasses.replace(SETTINGS, max_file_bytes=10)
        with self.assertRaises(SourceLoadError):
            fetch_source_bytes("inbound", SAMPLE_LOCATIONS["inbound"], settings)

    def test_url_fetch_uses_session_and_timeout(self):
        session = mock.Mock()
        session.get.return_value.content = b"Call ID\n1\n"
        raw = fetch_source_bytes("inbound", "https://example.test/in.csv", SETTINGS, session)
        self.assertEqual(raw, b"Call ID\n1\n")
        session.get.assert_called_once_with("https://example.test/in.csv", timeout=SETTINGS.fetch_timeout_seconds)

    def test_http_error_becomes_source_error(self):
        session = mock.Mock()
        session.get.return_value.raise_for_status.side_effect = requests.HTTPError("404 Not Found")
        with self.assertRaises(SourceLoadError) as ctx:
            fetch_source_bytes("outbound", "https://example.test/out.csv", SETTINGS, session)
        self.assertIn("404", ctx.exception.reason)


class ProcessRowsTests(unittest.TestCase):
    def test_row_errors_are_logged_and_skipped(self):
        failing = mock.Mock(side_effect=TypeError("bad cell"))
        broken = dataclasses.replace(SOURCE_PROFILES["inbound"], normalize=failing)
        with mock.patch.dict(SOURCE_PROFILES, {"inbound": broken}):
            with self.assertLogs("call_dashboard.loader", level="WARNING") as logs:
                records, skipped = process_rows("inbound", ["Call ID"], [{"Call ID": "1"}], SETTINGS)
        self.assertEqual(records, [])
        self.assertEqual(skipped, 1)
        self.assertIn("inbound row 2: bad cell", "\n".join(logs.output))

    def test_out_of_range_fcr_year_is_skipped(self):
        rows = [
            {"Year": "99999999999", "Month": "1", "Date": "1", "Count": "4"},
            {"Year": "2024", "Month": "1", "Date": "2", "Count": "3"},
        ]
        records, skipped = process_rows("fcr", ["Year", "Month", "Date", "Count"], rows, SETTINGS)
        self.assertEqual([r.metric("case_count") for r in records], [3.0])
        self.assertEqual(skipped, 1)

    def test_invalid_rows_are_counted_as_skipped(self):
        rows = [{"Call ID": "1"}, {"Call ID": ""}, {"Call ID": "3"}]
        records, skipped = process_rows("inbound", ["Call ID"], rows, SETTINGS)
        self.assertEqual([r.get("Call ID") for r in records], ["1", "3"])
        self.assertEqual(skipped, 1)


class SampleDataTests(unittest.TestCase):
    def test_sample_sources_parse(self):
        expected = {
            "inbound": (10, 1),
            "outbound": (4, 1),
            "outbound_connectrate": (5, 2),
            "fcr": (3, 2),
        }
        for source_type, (rows, skipped) in expected.items():
            with self.subTest(source_type=source_type):
                raw = Path(SAMPLE_LOCATIONS[source_type]).read_bytes()
                parsed = parse_source(source_type, raw, SETTINGS)
                self.assertEqual(len(parsed.records), rows)
                self.assertEqual(parsed.skipped_rows, skipped)
                self.assertEqual(parsed.delimiter, ",")


class LoadSourcesTests(unittest.TestCase):
    def test_all_sources_load_in_parallel(self):
        store = SourceStore()
        progress = []
        report = load_sources(store, SETTINGS, SAMPLE_LOCATIONS, progress_callback=lambda *a: progress.append(a))
        self.assertTrue(report.ok)
        self.assertEqual(report.loaded["inbound"], 10)
        self.assertEqual(sorted(store.source_types()), sorted(SAMPLE_LOCATIONS))
        self.assertEqual(len(progress), 4)
        self.assertEqual(progress[-1], (4, 4, 0))

    def test_one_failure_does_not_block_others(self):
        store = SourceStore()
        store.load("outbound", [normalize_row({"Date": "2024-01-01", "Agent": "Old"}, "outbound", SETTINGS)])
        locations = dict(SAMPLE_LOCATIONS, outbound="/nope/outbound.csv")
        report = load_sources(store, SETTINGS, locations)
        self.assertFalse(report.ok)
        self.assertTrue(report.partial)
        self.assertIn("outbound", report.errors)
        self.assertEqual(store.query("outbound"), [])
        self.assertIn("file not found", store.metadata("outbound").error)
        self.assertEqual(len(store.query("inbound")), 10)

    def test_bad_fcr_row_does_not_abort_the_load(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "fcr.csv"
            path.write_text("Year,Month,Date,Count\n99999999999,1,1,4\n2024,1,2,3\n", encoding="utf-8")
            store = SourceStore()
            report = load_sources(store, SETTINGS, {"fcr": str(path), "inbound": SAMPLE_LOCATIONS["inbound"]})
        self.assertTrue(report.ok)
        self.assertEqual(report.loaded, {"fcr": 1, "inbound": 10})
        self.assertEqual(report.skipped["fcr"], 1)

    def test_unexpected_source_failure_is_isolated(self):
        real_parse = parse_source

        def parse(source_type, raw, settings):
            if source_type == "fcr":
                raise RuntimeError("boom")
            return real_parse(source_type, raw, settings)

        store = SourceStore()
        with mock.patch("call_dashboard.loader.parse_source", side_effect=parse):
            with self.assertLogs("call_dashboard.loader", level="ERROR"):
                report = load_sources(store, SETTINGS, SAMPLE_LOCATIONS)
        self.assertTrue(report.partial)
        self.assertIn("boom", report.errors["fcr"])
        self.assertEqual(store.query("fcr"), [])
        self.assertIn("boom", store.metadata("fcr").error)
        self.assertEqual(report.loaded["inbound"], 10)

    def test_explicit_locations_limit_what_is_loaded(self):
        store = SourceStore()
        report = load_sources(store, SETTINGS, {"fcr": SAMPLE_LOCATIONS["fcr"]})
        self.assertEqual(store.source_types(), ["fcr"])
        self.assertEqual(report.to_dict()["loaded"], {"fcr": 3})


if __name__ == "__main__":
    unittest.main()
