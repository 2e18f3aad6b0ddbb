"""
Chart State - Update Classifier

Maps a changed field to the data operation it needs:

  download  fetch fresh data from the server (countries, metric type)
  update    recompute the dataset (baseline method, baseline period)
  filter    re-render with existing data (date range, chart style)
  none      display-only, nothing to refresh (labels, logo)

Each level implies the ones below it: a download also recomputes and
re-filters.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Iterable, Mapping


class FieldUpdateType(str, enum.Enum):
    DOWNLOAD = "download"
    UPDATE = "update"
    FILTER = "filter"
    NONE = "none"


_RANK = {
    FieldUpdateType.NONE: 0,
    FieldUpdateType.FILTER: 1,
    FieldUpdateType.UPDATE: 2,
    FieldUpdateType.DOWNLOAD: 3,
}

# Combined dateFrom/dateTo change from the range slider
DATE_RANGE_KEY = "dateRange"

FIELD_UPDATE_STRATEGY: dict[str, FieldUpdateType] = {
    "countries": FieldUpdateType.DOWNLOAD,
    "type": FieldUpdateType.DOWNLOAD,
    "chartType": FieldUpdateType.DOWNLOAD,
    "ageGroups": FieldUpdateType.DOWNLOAD,

    "baselineMethod": FieldUpdateType.UPDATE,
    "standardPopulation": FieldUpdateType.UPDATE,
    "baselineDateFrom": FieldUpdateType.UPDATE,
    "baselineDateTo": FieldUpdateType.UPDATE,
    "sliderStart": FieldUpdateType.UPDATE,

    "dateFrom": FieldUpdateType.FILTER,
    "dateTo": FieldUpdateType.FILTER,
    "chartStyle": FieldUpdateType.FILTER,
    "view": FieldUpdateType.FILTER,
    "isExcess": FieldUpdateType.FILTER,
    "isZScore": FieldUpdateType.FILTER,
    "showBaseline": FieldUpdateType.FILTER,
    "cumulative": FieldUpdateType.FILTER,  # update unless baselineMethod is auto
    "showPredictionInterval": FieldUpdateType.FILTER,
    "showPercentage": FieldUpdateType.FILTER,
    "showTotal": FieldUpdateType.FILTER,
    "userColors": FieldUpdateType.FILTER,

    "showLabels": FieldUpdateType.NONE,
    "maximize": FieldUpdateType.NONE,
    "showLogarithmic": FieldUpdateType.NONE,
    "showLogo": FieldUpdateType.NONE,
    "showQrCode": FieldUpdateType.NONE,
    "showCaption": FieldUpdateType.NONE,
    "showTitle": FieldUpdateType.NONE,
    "decimals": FieldUpdateType.NONE,
    "darkMode": FieldUpdateType.NONE,
    "chartPreset": FieldUpdateType.NONE,
}


@dataclass(frozen=True)
class UpdatePlan:
    """Data operations to run for one queued key."""
    key: str
    update_type: FieldUpdateType
    download: bool
    recompute: bool
    refilter: bool

    @property
    def is_noop(self) -> bool:
        return not (self.download or self.recompute or self.refilter)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "update_type": self.update_type.value,
            "download": self.download,
            "recompute": self.recompute,
            "refilter": self.refilter,
        }


def normalize_key(key: str) -> str:
    """Strip the legacy underscore prefix (e.g. _countries)."""
    return key[1:] if key.startswith("_") else key


def field_update_type(
    key: str,
    state: Mapping[str, Any] | None = None,
    strategy: Mapping[str, FieldUpdateType] = FIELD_UPDATE_STRATEGY,
) -> FieldUpdateType:
    name = normalize_key(key)
    if name == DATE_RANGE_KEY:
        return FieldUpdateType.FILTER
    # Cumulative sums change the baseline fit unless the method is auto
    if name == "cumulative" and state is not None and state.get("baselineMethod") != "auto":
        return FieldUpdateType.UPDATE
    return strategy.get(name, FieldUpdateType.NONE)


def classify(
    key: str,
    state: Mapping[str, Any] | None = None,
    strategy: Mapping[str, FieldUpdateType] = FIELD_UPDATE_STRATEGY,
) -> UpdatePlan:
    update_type = field_update_type(key, state, strategy)
    rank = _RANK[update_type]
    return UpdatePlan(
        key=normalize_key(key),
        update_type=update_type,
        download=rank >= _RANK[FieldUpdateType.DOWNLOAD],
        recompute=rank >= _RANK[FieldUpdateType.UPDATE],
        refilter=rank >= _RANK[FieldUpdateType.FILTER],
    )


def most_demanding(
    keys: Iterable[str],
    state: Mapping[str, Any] | None = None,
    strategy: Mapping[str, FieldUpdateType] = FIELD_UPDATE_STRATEGY,
) -> str | None:
    """The key whose refresh covers all others; first one wins ties."""
    best: str | None = None
    best_rank = -1
    for key in keys:
        rank = _RANK[field_update_type(key, state, strategy)]
        if rank > best_rank:
            best, best_rank = key, rank
    return best
