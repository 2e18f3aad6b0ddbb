"""
Chart State - State Resolver

Single entry point for all state resolution. Every resolution is a pure
function of (previous state, trigger, catalog):

  resolve_initial(query)
    legacy rewrite → detect view → decode → merge over view defaults
    → constraints → UI metadata

  resolve_change(change, previous_state, previous_overrides)
    validate field → mark override → merge (enter view on view change)
    → constraints → UI metadata → audited diff

The result carries the state, per-field UI metadata, the accumulated
user overrides and a log naming why each field changed.

Usage:
    resolver = StateResolver(explorer_catalog())
    resolved = resolver.resolve_initial("c=DEU&zs=1")
    resolved = resolver.resolve_change(
        StateChange("chartStyle", "bar"), resolved.state, resolved.user_overrides,
    )
    query = resolver.to_query_string(resolved.state)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

from chartstate.catalog import StateCatalog
from chartstate.codec import Query, format_query, normalize_query, parse_query
from chartstate.constraints import ConstraintResult, ConstraintSet
from chartstate.types import (
    INITIAL_TRIGGER,
    VIEW_FIELD,
    ChangeSource,
    FieldChange,
    ResolutionLog,
    ResolvedState,
    State,
    StateChange,
    copy_state,
    copy_value,
    values_equal,
)
from chartstate.logging import EventLogger
from chartstate.ui_state import UIStateComputer

Clock = Callable[[], datetime]

PRIORITY_USER = "user"
PRIORITY_DEFAULT = "default"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StateResolver:
    """
    Resolves page state for one catalog. The catalog is validated on
    construction so configuration errors surface at startup.
    """

    def __init__(
        self,
        catalog: StateCatalog,
        clock: Clock | None = None,
        ui: UIStateComputer | None = None,
        events: EventLogger | None = None,
    ):
        self.catalog = catalog.validate()
        self.constraints = ConstraintSet(catalog.constraints)
        self.clock = clock or _utc_now
        self.ui = ui or UIStateComputer()
        self.events = events or EventLogger("resolver")

    @property
    def codecs(self):
        return self.catalog.codecs

    @property
    def views(self):
        return self.catalog.views

    # ─── Initial Resolution ──────────────────────────────────────────

    def resolve_initial(self, query: str | Mapping[str, Any] = "") -> ResolvedState:
        """Resolve state from a URL query string or an already-parsed mapping."""
        parsed = parse_query(query) if isinstance(query, str) else normalize_query(query)
        parsed = self.catalog.prepare_query(parsed)

        view_id = self.views.detect(parsed)
        defaults = self.views.effective_defaults(view_id)
        decoded = self.codecs.decode_query(parsed, defaults)

        merged = copy_state(defaults)
        overrides: set[str] = set()
        for name, value in decoded.items():
            merged[name] = value
            if not values_equal(value, defaults.get(name)):
                overrides.add(name)
        merged[VIEW_FIELD] = view_id

        outcome = self.constraints.apply(merged, overrides, self.views[view_id])
        changes = self._diff(merged, outcome, trigger_field=None, defaults_changed=())

        log = ResolutionLog(
            timestamp=self._timestamp(),
            trigger=INITIAL_TRIGGER,
            before=merged,
            after=copy_state(outcome.state),
            changes=changes,
            user_overrides_from_url=sorted(overrides),
        )
        return self._finish(outcome.state, view_id, overrides, log)

    # ─── Change Resolution ───────────────────────────────────────────

    def resolve_change(
        self,
        change: StateChange,
        previous_state: Mapping[str, Any],
        previous_overrides: Iterable[str] = (),
    ) -> ResolvedState:
        """Apply one change on top of a previously resolved state."""
        name = self.catalog.check_field(change.field)
        before = copy_state(previous_state)
        overrides = set(previous_overrides)
        if change.source != ChangeSource.DEFAULT:
            overrides.add(name)

        candidate = copy_state(before)
        defaults_changed: set[str] = set()
        if name == VIEW_FIELD:
            view_id = self.views.resolve_id(change.value)
            candidate = self.views.enter_view(view_id, candidate, overrides)
            defaults_changed = {
                f for f in candidate
                if f != VIEW_FIELD and not values_equal(candidate.get(f), before.get(f))
            }
        else:
            candidate[name] = copy_value(change.value)
            view_id = self.views.resolve_id(candidate.get(VIEW_FIELD))
            candidate[VIEW_FIELD] = view_id

        outcome = self.constraints.apply(candidate, overrides, self.views[view_id])
        changes = self._diff(before, outcome, trigger_field=name, defaults_changed=defaults_changed)

        log = ResolutionLog(
            timestamp=self._timestamp(),
            trigger=change,
            before=before,
            after=copy_state(outcome.state),
            changes=changes,
        )
        return self._finish(outcome.state, view_id, overrides, log)

    def replay(self, changes: Iterable[StateChange], query: str | Mapping[str, Any] = "") -> ResolvedState:
        """Initial resolution followed by each change in order."""
        resolved = self.resolve_initial(query)
        for change in changes:
            resolved = self.resolve_change(change, resolved.state, resolved.user_overrides)
        return resolved

    def reset(self) -> ResolvedState:
        """Landing-page state with no user overrides."""
        return self.resolve_initial("")

    # ─── Encoding ────────────────────────────────────────────────────

    def encode(self, state: Mapping[str, Any]) -> Query:
        """Canonical minimal URL tokens: view shorthand, then non-default fields."""
        view_id = self.views.resolve_id(state.get(VIEW_FIELD))
        tokens: Query = dict(self.views.encode_view(view_id))
        tokens.update(self.codecs.encode_state(state, self.views.effective_defaults(view_id)))
        return tokens

    def to_query_string(self, state: Mapping[str, Any]) -> str:
        return format_query(self.encode(state))

    # ─── Internals ───────────────────────────────────────────────────

    def _timestamp(self) -> str:
        return self.clock().isoformat()

    def _diff(
        self,
        before: Mapping[str, Any],
        outcome: ConstraintResult,
        trigger_field: str | None,
        defaults_changed: Iterable[str],
    ) -> list[FieldChange]:
        """Audited changes, labelled with the rule that decided each field."""
        defaults_changed = set(defaults_changed)
        after = outcome.state
        changes = []
        for name in self.catalog.fields:
            old, new = before.get(name), after.get(name)
            if values_equal(old, new):
                continue
            constraint = outcome.applied.get(name)
            if constraint is not None:
                priority, reason = constraint.label, constraint.reason
            elif name == trigger_field:
                priority, reason = PRIORITY_USER, "User changed value"
            elif name in defaults_changed or name == VIEW_FIELD:
                priority, reason = PRIORITY_DEFAULT, f"Default for view '{after.get(VIEW_FIELD)}'"
            else:
                priority, reason = PRIORITY_DEFAULT, "Default value"
            changes.append(FieldChange(
                field=name,
                url_key=self.catalog.url_key(name),
                old_value=copy_value(old),
                new_value=copy_value(new),
                priority=priority,
                reason=reason,
            ))
        return changes

    def _finish(
        self,
        state: State,
        view_id: str,
        overrides: Iterable[str],
        log: ResolutionLog,
    ) -> ResolvedState:
        view = self.views[view_id]
        resolved = ResolvedState(
            state=state,
            ui=self.ui.compute(view, state),
            view=view_id,
            user_overrides=frozenset(overrides),
            log=log,
        )
        if self.events.enabled(logging.DEBUG):
            self.events.on_resolution(self.catalog.name, resolved, url=self.to_query_string(state))
        return resolved
