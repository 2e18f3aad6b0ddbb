"""
Chart State - State Resolution Package

Deterministic state resolution for chart pages: URL codecs, business
rule constraints, view modes, UI metadata and a serialized refresh
queue.

  - chartstate.resolver: StateResolver (resolve_initial, resolve_change)
  - chartstate.catalogs: built-in explorer and ranking catalogs
  - chartstate.update_queue: UpdateQueue for data refreshes
  - chartstate.navigation: UrlStateSync between state and URL
"""

from chartstate.types import (
    ChangeSource, ChartStateError, ConfigurationError, Constraint,
    FieldChange, Priority, ResolutionLog, ResolvedState, StateChange,
    UIElement, UIFieldState, UnknownFieldError, ViewConfig,
)
from chartstate.catalog import StateCatalog
from chartstate.catalogs import explorer_catalog, load_catalog, ranking_catalog
from chartstate.classifier import FieldUpdateType, UpdatePlan, classify
from chartstate.navigation import UrlStateSync
from chartstate.resolver import StateResolver
from chartstate.short_url import ShortUrlCache
from chartstate.update_queue import UpdateQueue

__version__ = "0.1.0"
