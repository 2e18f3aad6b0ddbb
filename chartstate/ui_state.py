"""
Chart State - UI State Computer

Derives per-field visible/disabled metadata from the active view's UI
rules and the resolved state. Consumers never re-derive visibility.
"""

from __future__ import annotations

from typing import Any, Mapping

from chartstate.conditions import evaluate_condition
from chartstate.types import UIElement, UIFieldState, ViewConfig, Visibility


def compute_element_state(element: UIElement, state: Mapping[str, Any]) -> UIFieldState:
    if element.visibility == Visibility.HIDDEN:
        return UIFieldState(visible=False, disabled=True)

    if element.visibility == Visibility.CONDITIONAL:
        visible = evaluate_condition(element.condition, state)
        return UIFieldState(visible=visible, disabled=not visible)

    return UIFieldState(visible=True, disabled=not element.toggleable)


def compute_ui_state(view: ViewConfig, state: Mapping[str, Any]) -> dict[str, UIFieldState]:
    """UI metadata for every field the view declares a rule for."""
    return {name: compute_element_state(element, state) for name, element in view.ui.items()}


class UIStateComputer:
    """Computes UI metadata for a view; used by StateResolver."""

    def compute(self, view: ViewConfig, state: Mapping[str, Any]) -> dict[str, UIFieldState]:
        return compute_ui_state(view, state)

    def is_visible(self, view: ViewConfig, name: str, state: Mapping[str, Any]) -> bool:
        element = view.ui.get(name)
        return element is not None and compute_element_state(element, state).visible
