"""
Chart State - URL Synchronisation

Keeps the browser URL and the resolved state in step without feedback
loops. Writing the URL from a resolved state is an internal update: a
navigation event raised while the flag is set is ignored. Any other
navigation (back/forward, pasted link) re-resolves from the URL.

Usage:
    sync = UrlStateSync(resolver, navigate=router.push_query)
    sync.start(initial_query)
    sync.change(StateChange("countries", ["DEU"]))   # writes ?c=DEU
    sync.on_navigation(query)                        # from the router
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Mapping

from chartstate.resolver import StateResolver
from chartstate.short_url import ShortUrlCache
from chartstate.types import ResolvedState, StateChange

logger = logging.getLogger("chartstate.navigation")

Navigate = Callable[[str, bool], Any]
StateListener = Callable[[ResolvedState], Any]


class UrlStateSync:
    """Two-way binding between a StateResolver and the page URL."""

    def __init__(
        self,
        resolver: StateResolver,
        navigate: Navigate,
        short_urls: ShortUrlCache | None = None,
        on_state: StateListener | None = None,
    ):
        self.resolver = resolver
        self._navigate = navigate
        self.short_urls = short_urls
        self._on_state = on_state
        self._internal_update = False
        self.current: ResolvedState | None = None
        self.current_query: str | None = None

    @property
    def is_internal_update(self) -> bool:
        return self._internal_update

    @contextmanager
    def internal_update(self) -> Iterator[None]:
        previous = self._internal_update
        self._internal_update = True
        try:
            yield
        finally:
            self._internal_update = previous

    # ─── State → URL ─────────────────────────────────────────────────

    def start(self, query: str | Mapping[str, Any] = "") -> ResolvedState:
        """Resolve the landing URL. The URL itself is not rewritten."""
        resolved = self.resolver.resolve_initial(query)
        self.current = resolved
        self.current_query = self.resolver.to_query_string(resolved.state)
        return resolved

    def apply(self, resolved: ResolvedState, replace: bool = False) -> str:
        """Adopt a resolved state and write its canonical URL."""
        query = self.resolver.to_query_string(resolved.state)
        self.current = resolved
        if query == self.current_query:
            return query
        with self.internal_update():
            self._navigate(query, replace)
        self.current_query = query
        return query

    def change(self, change: StateChange, replace: bool = False) -> ResolvedState:
        """Resolve a user change on top of the current state and sync the URL."""
        if self.current is None:
            self.start("")
        resolved = self.resolver.resolve_change(
            change, self.current.state, self.current.user_overrides,
        )
        self.apply(resolved, replace=replace)
        return resolved

    # ─── URL → State ─────────────────────────────────────────────────

    def on_navigation(self, query: str | Mapping[str, Any]) -> ResolvedState | None:
        """
        Handle a router navigation event. Returns the new state, or None
        when the event was caused by our own URL write.
        """
        if self._internal_update:
            logger.debug("Ignoring self-caused navigation")
            return None

        resolved = self.resolver.resolve_initial(query)
        canonical = self.resolver.to_query_string(resolved.state)
        if self.current is not None and canonical == self.current_query:
            return None

        self.current = resolved
        self.current_query = canonical
        logger.debug("External navigation to '%s' (view %s)", canonical, resolved.view)
        if self._on_state is not None:
            self._on_state(resolved)
        return resolved

    # ─── Sharing ─────────────────────────────────────────────────────

    def share_url(self) -> str | None:
        if self.short_urls is None or self.current is None:
            return None
        return self.short_urls.get_short_url(self.resolver.encode(self.current.state))
