"""
Chart State - URL Synchronisation Tests

Self-caused navigation events are ignored; external ones re-resolve.
"""

import os
import sys
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from chartstate.catalogs import explorer_catalog
from chartstate.navigation import UrlStateSync
from chartstate.resolver import StateResolver
from chartstate.short_url import DEFAULT_BASE_URL, ShortUrlCache
from chartstate.types import StateChange


class _Router:
    """Records URL writes; optionally fires navigation synchronously."""

    def __init__(self):
        self.writes = []
        self.sync = None
        self.echoes = []

    def navigate(self, query, replace):
        self.writes.append((query, replace))
        if self.sync is not None:
            self.echoes.append(self.sync.on_navigation(query))


class TestUrlStateSync(unittest.TestCase):

    def setUp(self):
        self.router = _Router()
        self.seen = []
        self.sync = UrlStateSync(
            StateResolver(explorer_catalog()),
            navigate=self.router.navigate,
            on_state=self.seen.append,
        )

    def test_start_does_not_navigate(self):
        resolved = self.sync.start("c=DEU")
        self.assertEqual(resolved.state["countries"], ["DEU"])
        self.assertEqual(self.sync.current_query, "c=DEU")
        self.assertEqual(self.router.writes, [])

    def test_change_writes_canonical_url(self):
        self.sync.start("c=DEU")
        self.sync.change(StateChange("chartStyle", "bar"))
        self.assertEqual(self.router.writes, [("c=DEU&cs=bar", False)])
        self.assertEqual(self.sync.current.state["chartStyle"], "bar")

    def test_replace_flag_passed_through(self):
        self.sync.start("")
        self.sync.change(StateChange("countries", ["FRA"]), replace=True)
        self.assertEqual(self.router.writes, [("c=FRA", True)])

    def test_unchanged_url_not_written(self):
        self.sync.start("c=DEU")
        self.sync.change(StateChange("countries", ["DEU"]))
        self.assertEqual(self.router.writes, [])

    def test_change_before_start(self):
        self.sync.change(StateChange("countries", ["FRA"]))
        self.assertEqual(self.router.writes, [("c=FRA", False)])

    def test_self_caused_navigation_ignored(self):
        self.router.sync = self.sync
        self.sync.start("")
        self.sync.change(StateChange("chartStyle", "bar"))
        self.assertEqual(self.router.echoes, [None])
        self.assertEqual(self.seen, [])
        self.assertFalse(self.sync.is_internal_update)

    def test_flag_reset_when_navigate_raises(self):
        def broken(query, replace):
            raise RuntimeError("router gone")
        sync = UrlStateSync(StateResolver(explorer_catalog()), navigate=broken)
        sync.start("")
        with self.assertRaises(RuntimeError):
            sync.change(StateChange("chartStyle", "bar"))
        self.assertFalse(sync.is_internal_update)

    def test_external_navigation_resolves(self):
        self.sync.start("")
        resolved = self.sync.on_navigation("e=1")
        self.assertEqual(resolved.view, "excess")
        self.assertEqual(self.seen, [resolved])
        self.assertEqual(self.sync.current_query, "e=1")

    def test_equivalent_url_is_not_a_change(self):
        self.sync.start("c=DEU")
        self.assertIsNone(self.sync.on_navigation("c=DEU&sb=1"))
        self.assertEqual(self.seen, [])

    def test_share_url(self):
        self.assertIsNone(self.sync.share_url())
        sync = UrlStateSync(
            StateResolver(explorer_catalog()),
            navigate=self.router.navigate,
            short_urls=ShortUrlCache(),
        )
        sync.start("c=DEU&cs=bar")
        link = sync.share_url()
        self.assertEqual(link, f"{DEFAULT_BASE_URL}/s/1b88fa022ffd")
        self.assertEqual(sync.share_url(), link)
        self.assertEqual(sync.short_urls.stats.hits, 1)

    def test_share_urls_distinguish_charts(self):
        links = set()
        for query in ("", "ct=yearly", "bm=lin_reg", "sp=esp", "e=1", "e=1&cs=line"):
            sync = UrlStateSync(
                StateResolver(explorer_catalog()),
                navigate=self.router.navigate,
                short_urls=ShortUrlCache(),
            )
            sync.start(query)
            links.add(sync.share_url())
        self.assertEqual(len(links), 6)


if __name__ == "__main__":
    unittest.main()
