"""
Chart State - Ranking Catalog Tests

Totals rules, the inverted hide-incomplete key, the absolute view and
the legacy `a` metric parameter.
"""

import os
import sys
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from chartstate.catalogs import RankingField, ranking_catalog
from chartstate.catalogs.ranking import rewrite_legacy_metric
from chartstate.resolver import StateResolver
from chartstate.types import StateChange

R = RankingField


class TestRankingTotals(unittest.TestCase):

    def setUp(self):
        self.resolver = StateResolver(ranking_catalog())
        self.landing = self.resolver.resolve_initial("")

    def _change(self, resolved, name, value):
        return self.resolver.resolve_change(
            StateChange(name, value), resolved.state, resolved.user_overrides,
        )

    def test_landing(self):
        self.assertEqual(self.landing.view, "relative")
        self.assertTrue(self.landing.state[R.SHOW_TOTALS.value])
        self.assertTrue(self.landing.state[R.HIDE_INCOMPLETE.value])
        self.assertEqual(self.resolver.to_query_string(self.landing.state), "")

    def test_totals_off_forces_totals_only_off(self):
        totals_only = self._change(self.landing, R.SHOW_TOTALS_ONLY, True)
        self.assertTrue(totals_only.state["showTotalsOnly"])

        resolved = self._change(totals_only, R.SHOW_TOTALS, False)
        self.assertFalse(resolved.state["showTotalsOnly"])
        entry = resolved.log.changes_for(R.SHOW_TOTALS_ONLY)[0]
        self.assertEqual(entry.priority, "constraint (p1)")
        self.assertEqual(entry.url_key, "to")

    def test_cumulative_leaves_totals_only(self):
        totals_only = self._change(self.landing, R.SHOW_TOTALS_ONLY, True)
        resolved = self._change(totals_only, R.CUMULATIVE, True)
        self.assertTrue(resolved.state["showTotalsOnly"])
        self.assertEqual(resolved.log.changes_for(R.SHOW_TOTALS_ONLY), [])

    def test_cumulative_disables_pi(self):
        pi = self._change(self.landing, R.SHOW_PI, True)
        self.assertTrue(pi.state["showPI"])
        resolved = self._change(pi, R.CUMULATIVE, True)
        self.assertFalse(resolved.state["showPI"])
        self.assertFalse(resolved.ui["showPI"].visible)


class TestRankingUrl(unittest.TestCase):

    def setUp(self):
        self.resolver = StateResolver(ranking_catalog())

    def test_inverted_incomplete_key(self):
        resolved = self.resolver.resolve_initial("i=1")
        self.assertFalse(resolved.state["hideIncomplete"])
        self.assertEqual(self.resolver.to_query_string(resolved.state), "i=1")

    def test_absolute_view(self):
        resolved = self.resolver.resolve_initial("e=0")
        self.assertEqual(resolved.view, "absolute")
        self.assertFalse(resolved.state["showPercentage"])
        self.assertFalse(resolved.ui["showPercentage"].visible)
        self.assertFalse(resolved.ui["baselineMethod"].visible)
        self.assertEqual(self.resolver.to_query_string(resolved.state), "e=0")

    def test_absolute_mode_overrides_url(self):
        resolved = self.resolver.resolve_initial("e=0&r=1")
        self.assertFalse(resolved.state["showPercentage"])
        entry = resolved.log.changes_for("showPercentage")[0]
        self.assertEqual(entry.priority, "constraint (p2)")

    def test_legacy_metric_param(self):
        self.assertEqual(self.resolver.resolve_initial("a=0").state["metricType"], "cmr")
        self.assertEqual(self.resolver.resolve_initial("a=1").state["metricType"], "asmr")
        self.assertEqual(self.resolver.resolve_initial("a=1&m=le").state["metricType"], "le")
        self.assertEqual(self.resolver.resolve_initial("a=0&m=bogus").state["metricType"], "cmr")

    def test_rewrite_drops_legacy_key(self):
        self.assertEqual(rewrite_legacy_metric({"a": "1", "p": "yearly"}), {"p": "yearly", "m": "asmr"})
        self.assertEqual(rewrite_legacy_metric({"p": "yearly"}), {"p": "yearly"})

    def test_explorer_legacy_keys_not_migrated(self):
        resolved = self.resolver.resolve_initial("bdf=2015&pct=1")
        self.assertEqual(resolved.state["baselineDateFrom"], "2015")
        self.assertEqual(resolved.state["periodOfTime"], "fluseason")


if __name__ == "__main__":
    unittest.main()
