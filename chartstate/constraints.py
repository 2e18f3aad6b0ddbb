"""
Chart State - Constraint Set

Applies guarded patches to a candidate state in a single pass:

  1. every constraint (global, then view-scoped) is evaluated once
     against the pre-patch snapshot
  2. matches are applied in ascending priority, so higher priorities
     win on shared fields; within one priority the last matching
     writer in declaration order wins
  3. a patch to a user-overridden field is skipped when the constraint
     allows user override

No fixpoint iteration: a constraint whose precondition depends on a
field changed in the same pass sees the change on the next trigger.

Purely deterministic. Startup checks reject duplicate names and
contradictory hard constraints.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence

from chartstate.conditions import all_of, disjoint, evaluate_condition, field_is
from chartstate.types import (
    VIEW_FIELD,
    ConfigurationError,
    Constraint,
    Priority,
    State,
    ViewConfig,
    copy_state,
    copy_value,
    values_equal,
)

logger = logging.getLogger("chartstate.constraints")


@dataclass
class ConstraintResult:
    """Outcome of one constraint pass."""
    state: State
    applied: dict[str, Constraint] = field(default_factory=dict)  # field → winning constraint
    matched: list[Constraint] = field(default_factory=list)


def constraint_matches(constraint: Constraint, snapshot: Mapping[str, Any]) -> bool:
    """Evaluate both guards of a constraint. A raising predicate never matches."""
    if constraint.condition is not None and not evaluate_condition(constraint.condition, snapshot):
        return False
    if constraint.when is None:
        return True
    try:
        return bool(constraint.when(snapshot))
    except Exception as e:
        logger.warning(
            "Constraint '%s' predicate raised %s: %s; treating as non-matching",
            constraint.name, type(e).__name__, e,
        )
        return False


class ConstraintSet:
    """Global constraints plus the active view's constraints."""

    def __init__(self, constraints: Iterable[Constraint] = ()):
        self.constraints: tuple[Constraint, ...] = tuple(constraints)

    def __len__(self) -> int:
        return len(self.constraints)

    def __iter__(self):
        return iter(self.constraints)

    def for_view(self, view: ViewConfig | None) -> list[Constraint]:
        """Constraints in evaluation order: global first, then view-scoped."""
        scoped = list(view.constraints) if view is not None else []
        return list(self.constraints) + scoped

    # ─── Apply ───────────────────────────────────────────────────────

    def apply(
        self,
        state: Mapping[str, Any],
        user_overrides: Iterable[str] = (),
        view: ViewConfig | None = None,
    ) -> ConstraintResult:
        overrides = frozenset(user_overrides)
        snapshot = MappingProxyType(copy_state(state))

        ordered = self.for_view(view)
        matched = [c for c in ordered if constraint_matches(c, snapshot)]
        # sorted() is stable: declaration order survives within a priority
        matched.sort(key=lambda c: c.priority)

        result = copy_state(state)
        applied: dict[str, Constraint] = {}

        for constraint in matched:
            for name, value in constraint.apply.items():
                if name in overrides and constraint.allow_user_override:
                    continue
                previous = applied.get(name)
                if (
                    previous is not None
                    and previous.priority == constraint.priority
                    and not values_equal(result.get(name), value)
                ):
                    logger.warning(
                        "Constraints '%s' and '%s' (p%d) disagree on %s; '%s' wins",
                        previous.name, constraint.name, constraint.priority,
                        name, constraint.name,
                    )
                result[name] = copy_value(value)
                applied[name] = constraint

        return ConstraintResult(state=result, applied=applied, matched=matched)


# ═══════════════════════════════════════════════════════════════════
# Startup Checks
# ═══════════════════════════════════════════════════════════════════

def _scoped_condition(constraint: Constraint, view_id: str | None):
    if view_id is None:
        return constraint.condition
    if constraint.condition is None:
        return field_is(VIEW_FIELD, view_id)
    return all_of(field_is(VIEW_FIELD, view_id), constraint.condition)


def check_scope(
    global_constraints: Sequence[Constraint],
    view: ViewConfig | None = None,
) -> None:
    """
    Validate the constraints active in one view scope.

    Raises ConfigurationError on duplicate names, or on two hard
    constraints patching the same field with different values whose
    conditions are not provably disjoint. Opaque `when` predicates are
    assumed to overlap anything.
    """
    view_id = view.id if view is not None else None
    scope = f"view '{view_id}'" if view_id else "global"
    scope_condition = field_is(VIEW_FIELD, view_id) if view_id else None

    active: list[tuple[Constraint, Any]] = []
    for c in global_constraints:
        if scope_condition is not None and disjoint(c.condition, scope_condition):
            continue
        active.append((c, _scoped_condition(c, view_id)))
    if view is not None:
        active.extend((c, _scoped_condition(c, view.id)) for c in view.constraints)

    seen: set[str] = set()
    for c, _ in active:
        if c.name in seen:
            raise ConfigurationError(f"Duplicate constraint name '{c.name}' in {scope}")
        seen.add(c.name)

    hard = [(c, cond) for c, cond in active if c.priority == Priority.HARD]
    for i, (a, a_cond) in enumerate(hard):
        for b, b_cond in hard[i + 1:]:
            for name, value in a.apply.items():
                if name not in b.apply or values_equal(value, b.apply[name]):
                    continue
                if disjoint(a_cond, b_cond):
                    continue
                raise ConfigurationError(
                    f"Contradictory hard constraints '{a.name}' and '{b.name}' "
                    f"on field '{name}' ({value!r} vs {b.apply[name]!r}) in {scope}"
                )
