"""
Chart State - View Registry

Named view modes (e.g. mortality, excess, z-score) with their defaults,
UI rules and view-scoped constraints, plus detection of the active view
from URL parameters.

Detection order:
  1. shorthand parameters in the registry's precedence order
     (most specific first, e.g. zs=1 before e=1)
  2. a generic view=<id> parameter naming a registered view
  3. the default view
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from chartstate.codec import FieldCodecRegistry
from chartstate.types import (
    VIEW_FIELD,
    ConfigurationError,
    State,
    ViewConfig,
    copy_state,
    values_equal,
)

logger = logging.getLogger("chartstate.views")


def _first_token(token: Any) -> Any:
    if isinstance(token, (list, tuple)):
        return token[0] if token else None
    return token


class ViewRegistry:
    """Registered views, the default view and shorthand precedence."""

    def __init__(
        self,
        views: Iterable[ViewConfig] = (),
        default_view: str = "",
        precedence: Iterable[str] = (),
    ):
        self._views: dict[str, ViewConfig] = {}
        for view in views:
            self.register(view)
        self.default_view = default_view or next(iter(self._views), "")
        self.precedence: tuple[str, ...] = tuple(precedence)

    def register(self, view: ViewConfig) -> None:
        if view.id in self._views:
            raise ConfigurationError(f"Duplicate view '{view.id}'")
        self._views[view.id] = view

    def get(self, view_id: str) -> ViewConfig | None:
        return self._views.get(view_id)

    def __getitem__(self, view_id: str) -> ViewConfig:
        return self._views[view_id]

    def __contains__(self, view_id: object) -> bool:
        return view_id in self._views

    def __iter__(self):
        return iter(self._views.values())

    def ids(self) -> list[str]:
        return list(self._views)

    def resolve_id(self, view_id: Any) -> str:
        """Registered view id, or the default view for anything unknown."""
        if isinstance(view_id, str) and view_id in self._views:
            return view_id
        return self.default_view

    # ─── Detection ───────────────────────────────────────────────────

    def detect(self, query: Mapping[str, Any]) -> str:
        for view_id in self.precedence:
            view = self._views[view_id]
            if view.url_param and _first_token(query.get(view.url_param)) == view.url_value:
                return view_id

        explicit = _first_token(query.get(VIEW_FIELD))
        if isinstance(explicit, str) and explicit in self._views:
            return explicit

        return self.default_view

    def encode_view(self, view_id: str) -> dict[str, str]:
        """URL tokens that select a view. The default view needs none."""
        if view_id == self.default_view or view_id not in self._views:
            return {}
        view = self._views[view_id]
        if view.url_param:
            return {view.url_param: view.url_value}
        return {VIEW_FIELD: view_id}

    def shorthand_keys(self) -> set[str]:
        keys = {v.url_param for v in self._views.values() if v.url_param}
        keys.add(VIEW_FIELD)
        return keys

    # ─── Defaults ────────────────────────────────────────────────────

    def effective_defaults(self, view_id: str) -> State:
        """Default view defaults, overlaid with the view's own, plus its id."""
        view_id = self.resolve_id(view_id)
        base = self._views[self.default_view].defaults if self.default_view in self._views else {}
        merged = copy_state(base)
        merged.update(copy_state(self._views[view_id].defaults))
        merged[VIEW_FIELD] = view_id
        return merged

    def enter_view(
        self,
        view_id: str,
        state: Mapping[str, Any],
        user_overrides: Iterable[str] = (),
    ) -> State:
        """
        Switch to a view: its defaults replace every field the user has
        not explicitly set. Constraints run afterwards.
        """
        view_id = self.resolve_id(view_id)
        overrides = set(user_overrides)
        result = copy_state(state)
        for name, value in self.effective_defaults(view_id).items():
            if name == VIEW_FIELD or name not in overrides:
                result[name] = value
        result[VIEW_FIELD] = view_id
        return result

    # ─── Compatibility ───────────────────────────────────────────────

    def is_metric_compatible(self, view_id: str, metric: str) -> bool:
        view = self._views.get(view_id)
        if view is None or view.compatible_metrics is None:
            return True
        return metric in view.compatible_metrics

    def is_chart_style_compatible(self, view_id: str, chart_style: str) -> bool:
        view = self._views.get(view_id)
        if view is None or view.compatible_chart_styles is None:
            return True
        return chart_style in view.compatible_chart_styles

    # ─── Validation ──────────────────────────────────────────────────

    def validate(self, codecs: FieldCodecRegistry) -> None:
        """Startup checks. Raises ConfigurationError on the first problem."""
        if self.default_view not in self._views:
            raise ConfigurationError(f"Default view '{self.default_view}' is not registered")

        for view_id in self.precedence:
            if view_id not in self._views:
                raise ConfigurationError(f"Unknown view '{view_id}' in detection precedence")
            if not self._views[view_id].url_param:
                raise ConfigurationError(
                    f"View '{view_id}' is in detection precedence but has no URL parameter"
                )

        shorthands: dict[tuple[str, str], str] = {}
        for view in self._views.values():
            if not view.url_param:
                continue
            pair = (view.url_param, view.url_value)
            if pair in shorthands:
                raise ConfigurationError(
                    f"Views '{shorthands[pair]}' and '{view.id}' share shorthand "
                    f"{view.url_param}={view.url_value}"
                )
            shorthands[pair] = view.id
            if codecs.by_key(view.url_param) is not None:
                raise ConfigurationError(
                    f"Shorthand parameter '{view.url_param}' of view '{view.id}' "
                    f"collides with a field URL key"
                )
            if view.id != self.default_view and view.id not in self.precedence:
                raise ConfigurationError(
                    f"View '{view.id}' has a shorthand parameter but is not in detection precedence"
                )

        for view in self._views.values():
            codecs.require(view.defaults, context=f"defaults of view '{view.id}'")
            codecs.require(view.ui, context=f"UI of view '{view.id}'")
            defaults = self.effective_defaults(view.id)
            for name, element in view.ui.items():
                if not element.is_required:
                    continue
                if name not in defaults or not values_equal(defaults[name], element.fixed_value):
                    raise ConfigurationError(
                        f"View '{view.id}' requires {name}={element.fixed_value!r} "
                        f"but its default is {defaults.get(name)!r}"
                    )
        logger.debug("Validated %d views (default '%s')", len(self._views), self.default_view)
