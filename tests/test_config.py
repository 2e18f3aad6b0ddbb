"""
Chart State - Config Loader Tests

Tests the layered loader: built-in defaults, base file, per-environment
overlay and CS_ environment variable overrides.
"""

import os
import shutil
import sys
import tempfile
import unittest
from unittest.mock import patch

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from chartstate.config import (
    DEFAULTS,
    _env_path,
    _load_env_overrides,
    _load_overlay_file,
    _set_nested,
    deep_merge,
    get_config_value,
    load_config,
)
from chartstate.types import ConfigurationError


class _CleanEnv(unittest.TestCase):
    """Runs each test with no CS_ variables set."""

    def setUp(self):
        self._env = patch.dict(os.environ)
        self._env.start()
        for key in list(os.environ):
            if key.startswith("CS_"):
                del os.environ[key]
        self.tmpdir = tempfile.mkdtemp()
        self.config_dir = os.path.join(self.tmpdir, "config")
        os.makedirs(self.config_dir)

    def tearDown(self):
        self._env.stop()
        shutil.rmtree(self.tmpdir)

    def _write(self, path, text):
        with open(path, "w") as f:
            f.write(text)
        return path


class TestDeepMerge(unittest.TestCase):

    def test_overlay_wins(self):
        self.assertEqual(deep_merge({"a": 1, "b": 2}, {"b": 3}), {"a": 1, "b": 3})

    def test_nested_dicts_merged(self):
        base = {"logging": {"level": "INFO", "format": "json"}}
        result = deep_merge(base, {"logging": {"level": "DEBUG"}})
        self.assertEqual(result["logging"], {"level": "DEBUG", "format": "json"})

    def test_lists_replaced(self):
        self.assertEqual(deep_merge({"c": ["USA"]}, {"c": ["DEU"]}), {"c": ["DEU"]})

    def test_base_not_mutated(self):
        base = {"a": {"b": 1}}
        deep_merge(base, {"a": {"b": 2}})
        self.assertEqual(base, {"a": {"b": 1}})


class TestSetNested(unittest.TestCase):

    def test_nested_keys(self):
        d = {}
        _set_nested(d, ["a", "b", "c"], "deep")
        self.assertEqual(d["a"]["b"]["c"], "deep")

    def test_env_paths(self):
        self.assertEqual(_env_path("LOGGING_LEVEL"), ["logging", "level"])
        self.assertEqual(_env_path("SHORT_URL__MAX_ENTRIES"), ["short_url", "max_entries"])
        self.assertEqual(_env_path("TIMEOUT"), ["timeout"])


class TestLoadConfig(_CleanEnv):

    def test_missing_base_file_uses_defaults(self):
        cfg = load_config(base_path=os.path.join(self.tmpdir, "missing.yaml"), include_env_vars=False)
        self.assertEqual(cfg["logging"], DEFAULTS["logging"])
        self.assertEqual(cfg["short_url"]["max_entries"], 1000)
        self.assertEqual(cfg["_active_env"], "default")

    def test_base_file_merged(self):
        path = self._write(
            os.path.join(self.tmpdir, "chartstate.yaml"),
            "logging:\n  level: DEBUG\nexplorer:\n  views:\n    mortality:\n      defaults:\n        countries: [DEU]\n",
        )
        cfg = load_config(base_path=path, include_env_vars=False)
        self.assertEqual(cfg["logging"]["level"], "DEBUG")
        self.assertEqual(cfg["short_url"]["base_url"], "https://www.mortality.watch")
        self.assertEqual(cfg["explorer"]["views"]["mortality"]["defaults"]["countries"], ["DEU"])
        self.assertEqual(cfg["_config_source"], path)

    def test_invalid_yaml(self):
        path = self._write(os.path.join(self.tmpdir, "bad.yaml"), "logging: [1, 2\n")
        with self.assertRaises(ConfigurationError):
            load_config(base_path=path, include_env_vars=False)

    def test_non_mapping(self):
        path = self._write(os.path.join(self.tmpdir, "list.yaml"), "- a\n- b\n")
        with self.assertRaises(ConfigurationError):
            load_config(base_path=path, include_env_vars=False)

    def test_overlay(self):
        base = self._write(os.path.join(self.tmpdir, "chartstate.yaml"), "short_url:\n  max_entries: 10\n")
        self._write(os.path.join(self.config_dir, "prod.yaml"), "short_url:\n  max_entries: 500\n")
        cfg = load_config(base_path=base, env="prod", config_dir=self.config_dir, include_env_vars=False)
        self.assertEqual(cfg["short_url"]["max_entries"], 500)
        self.assertEqual(cfg["short_url"]["base_url"], "https://www.mortality.watch")
        self.assertEqual(cfg["_active_env"], "prod")

    def test_overlay_from_env_var(self):
        base = self._write(os.path.join(self.tmpdir, "chartstate.yaml"), "")
        self._write(os.path.join(self.config_dir, "staging.yaml"), "logging:\n  level: WARNING\n")
        os.environ["CS_ENV"] = "staging"
        os.environ["CS_CONFIG_DIR"] = self.config_dir
        cfg = load_config(base_path=base, include_env_vars=False)
        self.assertEqual(cfg["logging"]["level"], "WARNING")
        self.assertEqual(cfg["_active_env"], "staging")

    def test_missing_overlay(self):
        base = os.path.join(self.tmpdir, "chartstate.yaml")
        self.assertEqual(_load_overlay_file(base, env="nope", config_dir=self.config_dir), {})
        self.assertEqual(_load_overlay_file(base, env="", config_dir=self.config_dir), {})

    def test_broken_overlay_skipped(self):
        base = os.path.join(self.tmpdir, "chartstate.yaml")
        self._write(os.path.join(self.config_dir, "prod.yaml"), "a: [1\n")
        with self.assertLogs("chartstate.config", level="WARNING"):
            self.assertEqual(_load_overlay_file(base, env="prod", config_dir=self.config_dir), {})


class TestEnvVarOverrides(_CleanEnv):

    def test_none_set(self):
        self.assertEqual(_load_env_overrides(), {})

    def test_simple_and_nested(self):
        os.environ["CS_LOGGING_LEVEL"] = "DEBUG"
        os.environ["CS_SHORT_URL__MAX_ENTRIES"] = "50"
        overrides = _load_env_overrides()
        self.assertEqual(overrides["logging"]["level"], "DEBUG")
        self.assertEqual(overrides["short_url"]["max_entries"], 50)

    def test_meta_vars_excluded(self):
        os.environ["CS_ENV"] = "prod"
        os.environ["CS_VERSION"] = "1.2.3"
        self.assertEqual(_load_env_overrides(), {})

    def test_env_beats_files(self):
        base = self._write(os.path.join(self.tmpdir, "chartstate.yaml"), "logging:\n  level: INFO\n")
        os.environ["CS_LOGGING_LEVEL"] = "ERROR"
        cfg = load_config(base_path=base)
        self.assertEqual(cfg["logging"]["level"], "ERROR")


class TestGetConfigValue(unittest.TestCase):

    def test_nested_path(self):
        cfg = {"a": {"b": {"c": 42}}}
        self.assertEqual(get_config_value("a.b.c", cfg), 42)

    def test_missing_path_returns_default(self):
        self.assertEqual(get_config_value("x.y", {"a": 1}, default="fallback"), "fallback")

    def test_intermediate_path(self):
        self.assertEqual(get_config_value("a", {"a": {"b": 1}}), {"b": 1})


if __name__ == "__main__":
    unittest.main()
