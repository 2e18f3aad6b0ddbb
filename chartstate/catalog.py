"""
Chart State - State Catalog

A catalog bundles everything a page needs to resolve its state: the
closed set of field names, their codecs, the views, global constraints
and legacy URL rewriters. Validation is eager; an inconsistent catalog
raises ConfigurationError before the first resolution.

Catalogs can be adjusted from YAML config:

    explorer:
      views:
        mortality:
          defaults: {countries: [USA, GBR]}
      constraints:
        - name: deaths_no_pi
          when: {field: type, is: deaths}
          apply: {showPredictionInterval: false}
          reason: Deaths charts hide prediction intervals
          priority: 1

Usage:
    from chartstate.catalogs import explorer_catalog
    catalog = explorer_catalog().with_overrides(config.get("explorer", {}))
"""

from __future__ import annotations

import dataclasses
import enum
import logging
from typing import Any, Callable, Iterable, Mapping

from chartstate.codec import (
    LEGACY_PARAM_MAPPINGS,
    FieldCodecRegistry,
    Query,
    migrate_legacy_params,
)
from chartstate.conditions import condition_fields
from chartstate.constraints import check_scope
from chartstate.types import (
    VIEW_FIELD,
    ConfigurationError,
    Constraint,
    Priority,
    UnknownFieldError,
    ViewConfig,
    field_name,
)
from chartstate.views import ViewRegistry

logger = logging.getLogger("chartstate.catalog")

QueryRewriter = Callable[[Mapping[str, Any]], Query]


class StateCatalog:
    """Fields, codecs, views and constraints of one page."""

    def __init__(
        self,
        name: str,
        fields: type[enum.Enum] | Iterable[Any],
        codecs: FieldCodecRegistry,
        views: ViewRegistry,
        constraints: Iterable[Constraint] = (),
        legacy_params: Mapping[str, str] = LEGACY_PARAM_MAPPINGS,
        query_rewriters: Iterable[QueryRewriter] = (),
    ):
        self.name = name
        self.field_enum = fields if isinstance(fields, type) and issubclass(fields, enum.Enum) else None
        self.fields: tuple[str, ...] = tuple(field_name(f) for f in fields)
        self.codecs = codecs
        self.views = views
        self.constraints: tuple[Constraint, ...] = tuple(constraints)
        self.legacy_params = dict(legacy_params)
        self.query_rewriters: tuple[QueryRewriter, ...] = tuple(query_rewriters)

    def __repr__(self) -> str:
        return (
            f"StateCatalog({self.name!r}, fields={len(self.fields)}, "
            f"views={self.views.ids()}, constraints={len(self.constraints)})"
        )

    # ─── Lookup ──────────────────────────────────────────────────────

    def has_field(self, name: Any) -> bool:
        return field_name(name) in self.fields

    def check_field(self, name: Any) -> str:
        name = field_name(name)
        if name not in self.fields:
            raise UnknownFieldError(name, self.name)
        return name

    def url_key(self, name: Any) -> str:
        return self.codecs.url_key(name)

    def prepare_query(self, query: Mapping[str, Any]) -> Query:
        """Apply legacy key renames and page-specific rewriters."""
        prepared = migrate_legacy_params(query, self.legacy_params)
        for rewrite in self.query_rewriters:
            prepared = rewrite(prepared)
        return prepared

    # ─── Validation ──────────────────────────────────────────────────

    def validate(self) -> StateCatalog:
        """Raise ConfigurationError on any inconsistency. Returns self."""
        declared = set(self.fields)
        if len(declared) != len(self.fields):
            raise ConfigurationError(f"Catalog '{self.name}' declares a field twice")

        coded = set(self.codecs.fields())
        if declared != coded:
            missing = sorted(declared - coded)
            extra = sorted(coded - declared)
            raise ConfigurationError(
                f"Catalog '{self.name}' fields and codecs differ: "
                f"missing codecs {missing}, codecs for undeclared fields {extra}"
            )
        if VIEW_FIELD not in declared:
            raise ConfigurationError(f"Catalog '{self.name}' has no '{VIEW_FIELD}' field")

        self.views.validate(self.codecs)

        default_view = self.views[self.views.default_view]
        uncovered = sorted(declared - set(default_view.defaults) - {VIEW_FIELD})
        if uncovered:
            raise ConfigurationError(
                f"Default view '{default_view.id}' has no defaults for {uncovered}"
            )

        for view in self.views:
            for constraint in view.constraints:
                self._check_constraint_fields(constraint, f"view '{view.id}'")
        for constraint in self.constraints:
            self._check_constraint_fields(constraint, "global")

        check_scope(self.constraints)
        for view in self.views:
            check_scope(self.constraints, view)

        logger.debug("Catalog validated: %r", self)
        return self

    def _check_constraint_fields(self, constraint: Constraint, scope: str):
        referenced = set(constraint.apply) | condition_fields(constraint.condition)
        self.codecs.require(referenced, context=f"constraint '{constraint.name}' ({scope})")

    # ─── Overrides ───────────────────────────────────────────────────

    def with_overrides(self, section: Mapping[str, Any] | None) -> StateCatalog:
        """
        New validated catalog with a config section applied: view
        defaults are merged per view, constraints replace a global
        constraint of the same name or are appended.
        """
        if not section:
            return self.validate()

        if not isinstance(section, Mapping):
            raise ConfigurationError(f"Config section for '{self.name}' must be a mapping")
        views_cfg = section.get("views") or {}
        if not isinstance(views_cfg, Mapping):
            raise ConfigurationError(f"'views' for '{self.name}' must be a mapping of view id to settings")

        views = list(self.views)
        for view_id, view_cfg in views_cfg.items():
            if view_id not in self.views:
                raise ConfigurationError(f"Config names unknown view '{view_id}' for '{self.name}'")
            if not isinstance(view_cfg, Mapping):
                raise ConfigurationError(f"Settings for view '{view_id}' in '{self.name}' must be a mapping")
            if not isinstance(view_cfg.get("defaults") or {}, Mapping):
                raise ConfigurationError(f"Defaults for view '{view_id}' in '{self.name}' must be a mapping")
            index = self.views.ids().index(view_id)
            view = views[index]
            changes: dict[str, Any] = {}
            if view_cfg.get("defaults"):
                changes["defaults"] = {**view.defaults, **view_cfg["defaults"]}
            if view_cfg.get("label"):
                changes["label"] = view_cfg["label"]
            views[index] = dataclasses.replace(view, **changes)

        constraints = list(self.constraints)
        for entry in section.get("constraints") or []:
            constraint = load_constraint(entry)
            names = [c.name for c in constraints]
            if constraint.name in names:
                constraints[names.index(constraint.name)] = constraint
            else:
                constraints.append(constraint)

        registry = ViewRegistry(views, self.views.default_view, self.views.precedence)
        # Codec defaults follow the (possibly overridden) default view
        codecs = self.codecs.with_defaults(registry.effective_defaults(registry.default_view))
        catalog = StateCatalog(
            name=self.name,
            fields=self.field_enum or self.fields,
            codecs=codecs,
            views=registry,
            constraints=constraints,
            legacy_params=self.legacy_params,
            query_rewriters=self.query_rewriters,
        )
        return catalog.validate()


# ─── Configuration Loader ────────────────────────────────────────────

def load_constraint(entry: Mapping[str, Any]) -> Constraint:
    """
    Build a declarative Constraint from a config entry.

    Expected structure:
        name: deaths_no_pi
        when: {field: type, is: deaths}      # optional condition tree
        apply: {showPredictionInterval: false}
        reason: Deaths charts hide prediction intervals
        priority: 1                           # 0, 1 or 2
        allow_user_override: false
    """
    if not isinstance(entry, Mapping):
        raise ConfigurationError(f"Constraint entry must be a mapping, got {type(entry).__name__}")
    name = entry.get("name")
    if not name:
        raise ConfigurationError("Constraint entry has no name")
    apply = entry.get("apply")
    if not isinstance(apply, Mapping) or not apply:
        raise ConfigurationError(f"Constraint '{name}' has no 'apply' patch")
    condition = entry.get("when")
    if condition is not None and not isinstance(condition, Mapping):
        raise ConfigurationError(f"Constraint '{name}' has a non-mapping 'when' condition")
    return Constraint(
        name=name,
        apply=dict(apply),
        reason=entry.get("reason", name),
        priority=entry.get("priority", Priority.RULE),
        allow_user_override=bool(entry.get("allow_user_override", False)),
        condition=condition,
    )
