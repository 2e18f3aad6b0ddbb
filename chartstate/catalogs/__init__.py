"""Built-in page catalogs."""

from __future__ import annotations

from typing import Any, Mapping

from chartstate.catalog import StateCatalog
from chartstate.catalogs.explorer import ExplorerField, explorer_catalog
from chartstate.catalogs.ranking import RankingField, ranking_catalog
from chartstate.types import ConfigurationError

CATALOGS = {
    "explorer": explorer_catalog,
    "ranking": ranking_catalog,
}


def load_catalog(page: str, config: Mapping[str, Any] | None = None) -> StateCatalog:
    """Built-in catalog for a page with its config section applied."""
    factory = CATALOGS.get(page)
    if factory is None:
        raise ConfigurationError(f"Unknown page '{page}'; expected one of {sorted(CATALOGS)}")
    section = (config or {}).get(page)
    return factory().with_overrides(section)


__all__ = [
    "CATALOGS",
    "ExplorerField",
    "RankingField",
    "explorer_catalog",
    "load_catalog",
    "ranking_catalog",
]
