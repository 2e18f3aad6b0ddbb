"""
Chart State - CLI Tests
"""

import io
import json
import logging
import os
import shutil
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from chartstate.catalogs import explorer_catalog, ranking_catalog
from chartstate.cli import main, parse_change
from chartstate.logging import ROOT_LOGGER
from chartstate.resolver import StateResolver


class TestCli(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.config = os.path.join(self.tmpdir, "chartstate.yaml")

    def tearDown(self):
        shutil.rmtree(self.tmpdir)
        root = logging.getLogger(ROOT_LOGGER)
        root.handlers.clear()
        root.setLevel(logging.NOTSET)
        root.propagate = True

    def _run(self, *args):
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = main(["--config", self.config, "--log-level", "WARNING", *args])
        return code, out.getvalue(), err.getvalue()

    def _json(self, *args):
        code, out, err = self._run(*args)
        self.assertEqual(code, 0, err)
        return json.loads(out)

    def test_resolve(self):
        result = self._json("resolve", "zs=1&e=1")
        self.assertEqual(result["view"], "zscore")
        self.assertTrue(result["state"]["isZScore"])
        self.assertFalse(result["ui"]["cumulative"]["visible"])
        self.assertEqual(result["query"], "zs=1")

    def test_resolve_with_changes(self):
        result = self._json(
            "resolve", "c=DEU",
            "--change", "chartStyle=bar",
            "--change", "countries=DEU,FRA",
            "--change", "showBaseline=false",
        )
        self.assertEqual(result["state"]["countries"], ["DEU", "FRA"])
        self.assertFalse(result["state"]["showPredictionInterval"])
        self.assertEqual(result["query"], "c=DEU&c=FRA&cs=bar&sb=0&pi=0")
        self.assertEqual(result["user_overrides"], ["chartStyle", "countries", "showBaseline"])
        priorities = {c["field"]: c["priority"] for c in result["changes"]}
        self.assertEqual(priorities["showPredictionInterval"], "constraint (p1)")

    def test_numeric_bool_change(self):
        result = self._json("resolve", "", "--change", "showBaseline=0")
        self.assertIs(result["state"]["showBaseline"], False)
        self.assertFalse(result["state"]["showPredictionInterval"])
        self.assertEqual(result["query"], "sb=0&pi=0")

    def test_invalid_bool_change(self):
        code, _, err = self._run("resolve", "", "--change", "showBaseline=maybe")
        self.assertEqual(code, 2)
        self.assertIn("Invalid bool value for 'showBaseline'", err)

    def test_resolve_ranking(self):
        result = self._json("resolve", "e=0", "--page", "ranking")
        self.assertEqual(result["view"], "absolute")

    def test_unknown_field(self):
        code, _, err = self._run("resolve", "", "--change", "bogus=1")
        self.assertEqual(code, 2)
        self.assertIn("Unknown state field 'bogus'", err)

    def test_malformed_change(self):
        code, _, err = self._run("resolve", "", "--change", "countries")
        self.assertEqual(code, 2)
        self.assertIn("FIELD=VALUE", err)

    def test_classify(self):
        result = self._json("classify", "cumulative", "--state", '{"baselineMethod": "mean"}')
        self.assertEqual(result["update_type"], "update")
        self.assertEqual(self._json("classify", "countries")["update_type"], "download")

    def test_classify_rejects_non_object_state(self):
        code, _, _ = self._run("classify", "cumulative", "--state", "[1]")
        self.assertEqual(code, 2)

    def test_fields(self):
        rows = {r["field"]: r for r in self._json("fields", "--page", "ranking")}
        self.assertEqual(rows["hideIncomplete"]["key"], "i")
        self.assertTrue(rows["hideIncomplete"]["default"])
        self.assertIsNone(rows["view"]["key"])

    def test_no_command(self):
        code, out, _ = self._run()
        self.assertEqual(code, 1)
        self.assertIn("usage", out)

    def test_config_overrides(self):
        with open(self.config, "w") as f:
            f.write("explorer:\n  views:\n    mortality:\n      defaults:\n        countries: [DEU]\n")
        result = self._json("resolve", "")
        self.assertEqual(result["state"]["countries"], ["DEU"])
        self.assertEqual(result["query"], "")

    def test_invalid_config(self):
        with open(self.config, "w") as f:
            f.write("explorer:\n  constraints:\n    - name: never_baseline\n"
                    "      apply: {showBaseline: false}\n      priority: 2\n")
        code, _, err = self._run("resolve", "")
        self.assertEqual(code, 1)
        self.assertIn("Configuration error", err)


class TestParseChange(unittest.TestCase):

    def setUp(self):
        self.resolver = StateResolver(explorer_catalog())

    def test_yaml_values(self):
        self.assertIs(parse_change("cumulative=true", self.resolver).value, True)
        self.assertEqual(parse_change("countries=DEU", self.resolver).value, ["DEU"])

    def test_strings_kept_verbatim(self):
        self.assertEqual(parse_change("dateFrom=2020", self.resolver).value, "2020")
        self.assertEqual(parse_change("decimals=2", self.resolver).value, "2")

    def test_bool_values_coerced(self):
        self.assertIs(parse_change("cumulative=1", self.resolver).value, True)
        self.assertIs(parse_change("showBaseline=0", self.resolver).value, False)
        self.assertIs(parse_change("showBaseline=False", self.resolver).value, False)

    def test_inverted_key_not_flipped(self):
        ranking = StateResolver(ranking_catalog())
        self.assertIs(parse_change("hideIncomplete=true", ranking).value, True)
        self.assertIs(parse_change("hideIncomplete=0", ranking).value, False)

    def test_empty_value(self):
        self.assertIsNone(parse_change("dateFrom=", self.resolver).value)


if __name__ == "__main__":
    unittest.main()
