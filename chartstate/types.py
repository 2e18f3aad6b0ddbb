"""
Chart State - Type Definitions

All data structures for state resolution: state changes, constraints,
UI visibility rules, view configurations and the audited resolution
result handed to the rendering and data layers.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Union

State = dict[str, Any]
Condition = Mapping[str, Any]
Predicate = Callable[[Mapping[str, Any]], bool]

INITIAL_TRIGGER = "initial"
VIEW_FIELD = "view"


# ─── Errors ──────────────────────────────────────────────────────────

class ChartStateError(Exception):
    """Base class for chart state errors."""
    pass


class ConfigurationError(ChartStateError):
    """Raised at startup when a catalog is inconsistent."""
    pass


class UnknownFieldError(ChartStateError, KeyError):
    """Raised when a change targets a field the catalog does not define."""

    def __init__(self, field_name: str, catalog: str = ""):
        self.field_name = field_name
        self.catalog = catalog
        where = f" in catalog '{catalog}'" if catalog else ""
        super().__init__(f"Unknown state field '{field_name}'{where}")

    def __str__(self) -> str:
        return self.args[0]


# ─── Value helpers ───────────────────────────────────────────────────

def field_name(value: Any) -> str:
    """Normalize a field identifier (plain str or str-enum member)."""
    if isinstance(value, enum.Enum):
        return value.value
    return value


def values_equal(a: Any, b: Any) -> bool:
    """Equality that never treats a bool as equal to an int."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    return a == b


def copy_value(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return list(value)
    return value


def copy_state(state: Mapping[str, Any]) -> State:
    """Shallow snapshot with list values copied so callers never share them."""
    return {k: copy_value(v) for k, v in state.items()}


# ─── State Changes ───────────────────────────────────────────────────

class ChangeSource(str, enum.Enum):
    """Where a state change originated."""
    USER = "user"
    URL = "url"
    DEFAULT = "default"


@dataclass(frozen=True)
class StateChange:
    """A change to a single state field."""
    field: str
    value: Any
    source: ChangeSource = ChangeSource.USER

    def __post_init__(self):
        object.__setattr__(self, "field", field_name(self.field))
        object.__setattr__(self, "source", ChangeSource(self.source))

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "value": self.value, "source": self.source.value}


# ─── Constraints ─────────────────────────────────────────────────────

class Priority(enum.IntEnum):
    """Constraint priority. Higher priorities are applied later and win."""
    SOFT = 0
    RULE = 1
    HARD = 2


@dataclass(frozen=True)
class Constraint:
    """
    A guarded patch applied during resolution.

    `when` is an arbitrary predicate over the state; `condition` is the
    declarative form (a condition tree, see chartstate.conditions) which
    can also be analysed at startup. With neither set the constraint
    always matches.
    """
    name: str
    apply: Mapping[str, Any]
    reason: str
    priority: int = Priority.RULE
    allow_user_override: bool = False
    when: Predicate | None = None
    condition: Condition | None = None

    def __post_init__(self):
        if self.priority not in (0, 1, 2):
            raise ConfigurationError(
                f"Constraint '{self.name}' has priority {self.priority!r}; expected 0, 1 or 2"
            )
        object.__setattr__(self, "priority", int(self.priority))
        object.__setattr__(
            self, "apply", {field_name(k): v for k, v in self.apply.items()}
        )

    @property
    def label(self) -> str:
        return f"constraint (p{self.priority})"


# ─── UI Elements ─────────────────────────────────────────────────────

class Visibility(str, enum.Enum):
    HIDDEN = "hidden"
    VISIBLE = "visible"
    CONDITIONAL = "conditional"


@dataclass(frozen=True)
class UIElement:
    """Visibility rule for one UI control."""
    visibility: Visibility
    toggleable: bool = True
    fixed_value: Any = None
    condition: Condition | None = None

    @property
    def is_required(self) -> bool:
        """Visible but locked to `fixed_value`."""
        return self.visibility == Visibility.VISIBLE and not self.toggleable


def hidden() -> UIElement:
    """Never rendered."""
    return UIElement(Visibility.HIDDEN, toggleable=False)


def toggleable() -> UIElement:
    """Rendered and user-editable."""
    return UIElement(Visibility.VISIBLE, toggleable=True)


def required(value: Any) -> UIElement:
    """Rendered, locked to a forced value."""
    return UIElement(Visibility.VISIBLE, toggleable=False, fixed_value=value)


def conditional(condition: Condition) -> UIElement:
    """Rendered only while the condition holds."""
    return UIElement(Visibility.CONDITIONAL, condition=condition)


@dataclass(frozen=True)
class UIFieldState:
    visible: bool
    disabled: bool

    def to_dict(self) -> dict[str, bool]:
        return {"visible": self.visible, "disabled": self.disabled}


# ─── Views ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ViewConfig:
    """
    A named view mode: defaults, per-field UI rules and view-scoped
    constraints. `url_param`/`url_value` is the shorthand that activates
    the view (e.g. zs=1); None for views reached only via view=<id>.
    """
    id: str
    label: str
    url_param: str | None = None
    url_value: str = "1"
    ui: Mapping[str, UIElement] = field(default_factory=dict)
    defaults: Mapping[str, Any] = field(default_factory=dict)
    constraints: tuple[Constraint, ...] = ()
    compatible_metrics: tuple[str, ...] | None = None
    compatible_chart_styles: tuple[str, ...] | None = None

    def __post_init__(self):
        object.__setattr__(self, "ui", {field_name(k): v for k, v in self.ui.items()})
        object.__setattr__(
            self, "defaults", {field_name(k): v for k, v in self.defaults.items()}
        )
        object.__setattr__(self, "constraints", tuple(self.constraints))


# ─── Resolution Result ───────────────────────────────────────────────

@dataclass(frozen=True)
class FieldChange:
    """One audited field change within a resolution."""
    field: str
    url_key: str
    old_value: Any
    new_value: Any
    priority: str
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "url_key": self.url_key,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "priority": self.priority,
            "reason": self.reason,
        }


@dataclass
class ResolutionLog:
    """Audit trail of a single resolution."""
    timestamp: str
    trigger: Union[str, StateChange]
    before: State = field(default_factory=dict)
    after: State = field(default_factory=dict)
    changes: list[FieldChange] = field(default_factory=list)
    user_overrides_from_url: list[str] = field(default_factory=list)

    @property
    def is_initial(self) -> bool:
        return self.trigger == INITIAL_TRIGGER

    def changes_for(self, name: str) -> list[FieldChange]:
        name = field_name(name)
        return [c for c in self.changes if c.field == name]

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "trigger": self.trigger if isinstance(self.trigger, str) else self.trigger.to_dict(),
            "before": dict(self.before),
            "after": dict(self.after),
            "changes": [c.to_dict() for c in self.changes],
            "user_overrides_from_url": list(self.user_overrides_from_url),
        }


@dataclass(frozen=True)
class ResolvedState:
    """
    Complete resolved state with UI metadata and audit log.
    Consumers render purely from `state` and `ui`.
    """
    state: State
    ui: dict[str, UIFieldState]
    view: str
    user_overrides: frozenset[str]
    log: ResolutionLog

    @property
    def changed_fields(self) -> list[str]:
        return [c.field for c in self.log.changes]

    def to_dict(self) -> dict[str, Any]:
        return {
            "view": self.view,
            "state": dict(self.state),
            "ui": {k: v.to_dict() for k, v in self.ui.items()},
            "user_overrides": sorted(self.user_overrides),
            "log": self.log.to_dict(),
        }
