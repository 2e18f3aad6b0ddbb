"""
Chart State - Constraint Set Tests

Tests:
  - priority law: a p2 patch beats a p1 patch on a shared field
  - override protection: soft constraints skip user-set fields
  - single pass: every guard sees the pre-patch snapshot
  - raising predicates never match
  - startup scope checks (duplicate names, contradictory hard rules)
"""

import os
import sys
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from chartstate.conditions import all_of, field_is
from chartstate.constraints import ConstraintSet, check_scope, constraint_matches
from chartstate.types import ConfigurationError, Constraint, Priority, ViewConfig


def _c(name, apply, priority=Priority.RULE, condition=None, when=None, allow=False):
    return Constraint(
        name=name, apply=apply, reason=f"reason {name}", priority=priority,
        allow_user_override=allow, condition=condition, when=when,
    )


class TestApply(unittest.TestCase):

    def test_priority_law(self):
        hard = _c("hard", {"x": 2}, Priority.HARD)
        rule = _c("rule", {"x": 1}, Priority.RULE)
        for order in ([hard, rule], [rule, hard]):
            result = ConstraintSet(order).apply({"x": 0})
            self.assertEqual(result.state["x"], 2)
            self.assertEqual(result.applied["x"].name, "hard")

    def test_last_writer_wins_within_priority(self):
        first = _c("first", {"x": 1})
        second = _c("second", {"x": 2})
        with self.assertLogs("chartstate.constraints", level="WARNING") as cm:
            result = ConstraintSet([first, second]).apply({"x": 0})
        self.assertEqual(result.state["x"], 2)
        self.assertIn("disagree", cm.output[0])

    def test_view_constraints_after_globals(self):
        view = ViewConfig("v", "V", constraints=(_c("view_rule", {"x": "view"}),))
        constraints = ConstraintSet([_c("global_rule", {"x": "global"})])
        self.assertEqual(
            [c.name for c in constraints.for_view(view)],
            ["global_rule", "view_rule"],
        )
        with self.assertLogs("chartstate.constraints", level="WARNING"):
            result = constraints.apply({"x": None}, view=view)
        self.assertEqual(result.state["x"], "view")

    def test_override_protection(self):
        soft = _c("restore", {"pi": True}, Priority.SOFT, allow=True)
        protected = ConstraintSet([soft]).apply({"pi": False}, user_overrides={"pi"})
        self.assertFalse(protected.state["pi"])
        self.assertNotIn("pi", protected.applied)

        unprotected = ConstraintSet([soft]).apply({"pi": False})
        self.assertTrue(unprotected.state["pi"])

    def test_override_not_protected_without_flag(self):
        hard = _c("force", {"pi": False}, Priority.HARD)
        result = ConstraintSet([hard]).apply({"pi": True}, user_overrides={"pi"})
        self.assertFalse(result.state["pi"])

    def test_guards_see_pre_patch_snapshot(self):
        turn_off = _c("turn_off", {"a": False}, condition=field_is("b", True))
        follow = _c("follow", {"c": 1}, condition=field_is("a", True))
        result = ConstraintSet([turn_off, follow]).apply({"a": True, "b": True, "c": 0})
        self.assertEqual(result.state, {"a": False, "b": True, "c": 1})
        self.assertEqual([c.name for c in result.matched], ["turn_off", "follow"])

    def test_input_not_mutated(self):
        state = {"x": [1]}
        result = ConstraintSet([_c("grow", {"x": [1, 2]})]).apply(state)
        self.assertEqual(state, {"x": [1]})
        self.assertEqual(result.state["x"], [1, 2])

    def test_condition_and_when_both_required(self):
        c = _c("both", {"x": 1}, condition=field_is("a", 1), when=lambda s: s["b"] == 2)
        self.assertTrue(constraint_matches(c, {"a": 1, "b": 2}))
        self.assertFalse(constraint_matches(c, {"a": 1, "b": 3}))
        self.assertFalse(constraint_matches(c, {"a": 0, "b": 2}))

    def test_raising_predicate_never_matches(self):
        broken = _c("broken", {"x": 1}, when=lambda s: s["missing"])
        with self.assertLogs("chartstate.constraints", level="WARNING") as cm:
            result = ConstraintSet([broken]).apply({"x": 0})
        self.assertEqual(result.state["x"], 0)
        self.assertIn("broken", cm.output[0])

    def test_snapshot_is_read_only(self):
        def mutate(state):
            state["x"] = 99
            return True
        sneaky = _c("sneaky", {"y": 1}, when=mutate)
        with self.assertLogs("chartstate.constraints", level="WARNING"):
            result = ConstraintSet([sneaky]).apply({"x": 0, "y": 0})
        self.assertEqual(result.state, {"x": 0, "y": 0})


class TestConstraintDefinition(unittest.TestCase):

    def test_priority_out_of_range(self):
        with self.assertRaises(ConfigurationError):
            _c("bad", {"x": 1}, priority=3)

    def test_label(self):
        self.assertEqual(_c("a", {"x": 1}, Priority.HARD).label, "constraint (p2)")
        self.assertEqual(_c("b", {"x": 1}, Priority.SOFT).label, "constraint (p0)")


class TestCheckScope(unittest.TestCase):

    def test_duplicate_names(self):
        with self.assertRaises(ConfigurationError):
            check_scope([_c("dup", {"x": 1}), _c("dup", {"y": 1})])

    def test_contradictory_hard_constraints(self):
        a = _c("on", {"x": True}, Priority.HARD)
        b = _c("off", {"x": False}, Priority.HARD, condition=field_is("y", 1))
        with self.assertRaises(ConfigurationError):
            check_scope([a, b])

    def test_disjoint_hard_constraints_allowed(self):
        a = _c("on", {"x": True}, Priority.HARD, condition=field_is("y", 1))
        b = _c("off", {"x": False}, Priority.HARD, condition=field_is("y", 2))
        check_scope([a, b])

    def test_agreeing_hard_constraints_allowed(self):
        a = _c("a", {"x": True}, Priority.HARD)
        b = _c("b", {"x": True}, Priority.HARD)
        check_scope([a, b])

    def test_lower_priorities_may_disagree(self):
        check_scope([_c("a", {"x": 1}), _c("b", {"x": 2})])

    def test_global_scoped_to_other_view_excluded(self):
        mortality_only = _c(
            "matrix_off", {"sb": False}, Priority.HARD,
            condition=all_of(field_is("view", "mortality"), field_is("cs", "matrix")),
        )
        excess = ViewConfig(
            "excess", "Excess",
            constraints=(_c("requires_baseline", {"sb": True}, Priority.HARD),),
        )
        check_scope([mortality_only], excess)

    def test_view_constraint_conflicts_with_global(self):
        global_off = _c("baseline_off", {"sb": False}, Priority.HARD)
        excess = ViewConfig(
            "excess", "Excess",
            constraints=(_c("requires_baseline", {"sb": True}, Priority.HARD),),
        )
        check_scope([global_off])
        with self.assertRaises(ConfigurationError):
            check_scope([global_off], excess)


if __name__ == "__main__":
    unittest.main()
