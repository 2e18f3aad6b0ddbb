"""
Chart State - Condition Trees

Declarative conditions shared by UI visibility rules and constraints:

    {"field": "chartStyle", "is": "bar"}
    {"field": "chartStyle", "is_not": "matrix"}
    {"and": [cond, cond, ...]}
    {"or":  [cond, cond, ...]}

Evaluation short-circuits and never raises: a malformed node or a leaf
on a missing field evaluates to False.

Also provides a conservative static check used at startup to prove that
two conditions can never hold at the same time.
"""

from __future__ import annotations

from typing import Any, Mapping

from chartstate.types import Condition, field_name, values_equal


# ─── Builders ────────────────────────────────────────────────────────

def field_is(name: Any, value: Any) -> dict[str, Any]:
    return {"field": field_name(name), "is": value}


def field_is_not(name: Any, value: Any) -> dict[str, Any]:
    return {"field": field_name(name), "is_not": value}


def all_of(*conditions: Condition) -> dict[str, Any]:
    return {"and": list(conditions)}


def any_of(*conditions: Condition) -> dict[str, Any]:
    return {"or": list(conditions)}


# ─── Evaluation ──────────────────────────────────────────────────────

def evaluate_condition(condition: Any, state: Mapping[str, Any]) -> bool:
    """Evaluate a condition tree against a state snapshot."""
    if not isinstance(condition, Mapping):
        return False

    if "and" in condition:
        children = condition["and"]
        if not isinstance(children, (list, tuple)):
            return False
        return all(evaluate_condition(c, state) for c in children)

    if "or" in condition:
        children = condition["or"]
        if not isinstance(children, (list, tuple)):
            return False
        return any(evaluate_condition(c, state) for c in children)

    name = condition.get("field")
    if not isinstance(name, str) or name not in state:
        return False

    value = state[name]
    if "is" in condition:
        return values_equal(value, condition["is"])
    if "is_not" in condition:
        return not values_equal(value, condition["is_not"])
    return False


def condition_fields(condition: Any) -> set[str]:
    """All field names referenced by a condition tree."""
    if not isinstance(condition, Mapping):
        return set()
    fields: set[str] = set()
    for key in ("and", "or"):
        if isinstance(condition.get(key), (list, tuple)):
            for child in condition[key]:
                fields |= condition_fields(child)
    if isinstance(condition.get("field"), str):
        fields.add(condition["field"])
    return fields


# ─── Static Disjointness ─────────────────────────────────────────────

def _requirements(condition: Any) -> tuple[dict[str, Any], dict[str, list[Any]], bool]:
    """
    Collect what a condition definitely requires.

    Returns (equalities, inequalities, satisfiable). Only leaves and AND
    nodes contribute; OR nodes and malformed nodes require nothing.
    """
    eq: dict[str, Any] = {}
    neq: dict[str, list[Any]] = {}

    if not isinstance(condition, Mapping):
        return eq, neq, True

    if "and" in condition and isinstance(condition["and"], (list, tuple)):
        satisfiable = True
        for child in condition["and"]:
            c_eq, c_neq, c_sat = _requirements(child)
            satisfiable = satisfiable and c_sat
            for name, value in c_eq.items():
                if name in eq and not values_equal(eq[name], value):
                    satisfiable = False
                eq.setdefault(name, value)
            for name, values in c_neq.items():
                neq.setdefault(name, []).extend(values)
        for name, value in eq.items():
            if any(values_equal(value, v) for v in neq.get(name, [])):
                satisfiable = False
        return eq, neq, satisfiable

    name = condition.get("field")
    if isinstance(name, str):
        if "is" in condition:
            eq[name] = condition["is"]
        elif "is_not" in condition:
            neq[name] = [condition["is_not"]]
    return eq, neq, True


def disjoint(a: Condition | None, b: Condition | None) -> bool:
    """
    True only when the two conditions provably never hold together.
    None stands for "always true" and is never disjoint from a
    satisfiable condition.
    """
    a_eq, a_neq, a_sat = _requirements(a)
    b_eq, b_neq, b_sat = _requirements(b)
    if not a_sat or not b_sat:
        return True

    for name, value in a_eq.items():
        if name in b_eq and not values_equal(value, b_eq[name]):
            return True
        if any(values_equal(value, v) for v in b_neq.get(name, [])):
            return True
    for name, value in b_eq.items():
        if any(values_equal(value, v) for v in a_neq.get(name, [])):
            return True
    return False
