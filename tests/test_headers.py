from __future__ import annotations

import unittest

from call_dashboard.headers import canonical_text, clean_header, resolve_exact_or_canonical, resolve_header


class HeaderResolverTests(unittest.TestCase):
    def test_match_ignores_case_whitespace_and_punctuation(self):
        headers = ["Call ID", "  WAIT-TIME ", "Agent Name"]
        self.assertEqual(resolve_header(headers, ["wait_time"]), "  WAIT-TIME ")
        self.assertEqual(resolve_header(headers, ["callid"]), "Call ID")

    def test_candidate_priority_wins_over_header_order(self):
        headers = ["queue_time", "Wait Time"]
        self.assertEqual(resolve_header(headers, ["Wait Time", "queue_time"]), "Wait Time")
        self.assertEqual(resolve_header(headers, ["queue_time", "Wait Time"]), "queue_time")

    def test_first_actual_header_wins_for_duplicate_canonical_forms(self):
        self.assertEqual(resolve_header(["Date", "date"], ["DATE"]), "Date")

    def test_no_match_returns_none(self):
        self.assertIsNone(resolve_header(["a", "b"], ["c"]))
        self.assertIsNone(resolve_header([], ["c"]))

    def test_exact_name_before_canonical(self):
        headers = ["total calls", "Total Calls"]
        self.assertEqual(resolve_exact_or_canonical(headers, "Total Calls"), "Total Calls")
        self.assertEqual(resolve_exact_or_canonical(["TOTAL_CALLS"], "Total Calls"), "TOTAL_CALLS")

    def test_bom_is_ignored(self):
        self.assertEqual(canonical_text("\ufeffCall ID"), "callid")
        self.assertEqual(clean_header("\ufeff Date "), "Date")
        self.assertEqual(clean_header(None), "")


if __name__ == "__main__":
    unittest.main()
