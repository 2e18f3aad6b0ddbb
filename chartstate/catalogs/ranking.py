"""
Chart State - Ranking Catalog

Field set, URL codecs, views and business rules of the ranking table.

Views:
  relative  default, excess relative to baseline
  absolute  e=0, raw values (no baseline, percentage or PI)

The URL key `i` is inverted: i=1 shows incomplete data, so the
hideIncomplete field is True when the key is absent. The legacy
`a` parameter (a=1 ASMR, a=0 CMR) is honoured when `m` is absent or
invalid.
"""

from __future__ import annotations

import enum
from typing import Any, Mapping

from chartstate.catalog import StateCatalog
from chartstate.codec import CodecKind, FieldCodec, FieldCodecRegistry, Query
from chartstate.conditions import all_of, field_is
from chartstate.types import Constraint, Priority, ViewConfig, conditional, hidden, toggleable
from chartstate.views import ViewRegistry


class RankingField(str, enum.Enum):
    VIEW = "view"
    PERIOD_OF_TIME = "periodOfTime"
    JURISDICTION_TYPE = "jurisdictionType"
    METRIC_TYPE = "metricType"
    STANDARD_POPULATION = "standardPopulation"
    SHOW_TOTALS = "showTotals"
    SHOW_TOTALS_ONLY = "showTotalsOnly"
    SHOW_PERCENTAGE = "showPercentage"
    SHOW_PI = "showPI"
    CUMULATIVE = "cumulative"
    HIDE_INCOMPLETE = "hideIncomplete"
    DECIMAL_PRECISION = "decimalPrecision"
    BASELINE_METHOD = "baselineMethod"
    BASELINE_DATE_FROM = "baselineDateFrom"
    BASELINE_DATE_TO = "baselineDateTo"
    DATE_FROM = "dateFrom"
    DATE_TO = "dateTo"


R = RankingField

METRIC_TYPES = ("cmr", "asmr", "le")
LEGACY_ASMR_KEY = "a"

# Explorer legacy keys that keep their meaning here (p and c are
# ranking fields, so pct and cum are not migrated)
RANKING_LEGACY_PARAMS = {"bdf": "bf", "bdt": "bt"}

RANKING_DEFAULTS = {
    R.VIEW: "relative",
    R.PERIOD_OF_TIME: "fluseason",
    R.JURISDICTION_TYPE: "countries",
    R.METRIC_TYPE: "asmr",
    R.STANDARD_POPULATION: "who",
    R.SHOW_TOTALS: True,
    R.SHOW_TOTALS_ONLY: False,
    R.SHOW_PERCENTAGE: True,
    R.SHOW_PI: False,
    R.CUMULATIVE: False,
    R.HIDE_INCOMPLETE: True,
    R.DECIMAL_PRECISION: "1",
    R.BASELINE_METHOD: "mean",
    R.BASELINE_DATE_FROM: None,
    R.BASELINE_DATE_TO: None,
    R.DATE_FROM: None,
    R.DATE_TO: None,
}

RANKING_CODECS = (
    FieldCodec(R.VIEW, None),
    FieldCodec(R.PERIOD_OF_TIME, "p"),
    FieldCodec(R.JURISDICTION_TYPE, "j"),
    FieldCodec(R.METRIC_TYPE, "m", choices=METRIC_TYPES),
    FieldCodec(R.STANDARD_POPULATION, "sp"),
    FieldCodec(R.SHOW_TOTALS, "t", CodecKind.BOOL),
    FieldCodec(R.SHOW_TOTALS_ONLY, "to", CodecKind.BOOL),
    FieldCodec(R.SHOW_PERCENTAGE, "r", CodecKind.BOOL),
    FieldCodec(R.SHOW_PI, "pi", CodecKind.BOOL),
    FieldCodec(R.CUMULATIVE, "c", CodecKind.BOOL),
    FieldCodec(R.HIDE_INCOMPLETE, "i", CodecKind.BOOL, inverted=True),
    FieldCodec(R.DECIMAL_PRECISION, "dp"),
    FieldCodec(R.BASELINE_METHOD, "bm"),
    FieldCodec(R.BASELINE_DATE_FROM, "bf"),
    FieldCodec(R.BASELINE_DATE_TO, "bt"),
    FieldCodec(R.DATE_FROM, "df"),
    FieldCodec(R.DATE_TO, "dt"),
)


# ─── Constraints ─────────────────────────────────────────────────────

RANKING_CONSTRAINTS = (
    Constraint(
        name="totals_only_requires_totals",
        condition=field_is(R.SHOW_TOTALS, False),
        apply={R.SHOW_TOTALS_ONLY: False},
        reason="Show totals only requires show totals to be enabled",
        priority=Priority.RULE,
    ),
    Constraint(
        name="no_pi_when_cumulative",
        condition=field_is(R.CUMULATIVE, True),
        apply={R.SHOW_PI: False},
        reason="Prediction intervals are not available in cumulative mode",
        priority=Priority.RULE,
    ),
    Constraint(
        name="no_pi_when_totals_only",
        condition=field_is(R.SHOW_TOTALS_ONLY, True),
        apply={R.SHOW_PI: False},
        reason="Prediction intervals are not available in totals-only mode",
        priority=Priority.RULE,
    ),
)


# ─── Views ───────────────────────────────────────────────────────────

ASMR_ONLY = field_is(R.METRIC_TYPE, "asmr")
PI_AVAILABLE = all_of(field_is(R.CUMULATIVE, False), field_is(R.SHOW_TOTALS_ONLY, False))

RELATIVE_VIEW = ViewConfig(
    id="relative",
    label="Excess Mortality",
    ui={
        R.STANDARD_POPULATION: conditional(ASMR_ONLY),
        R.BASELINE_METHOD: toggleable(),
        R.BASELINE_DATE_FROM: toggleable(),
        R.BASELINE_DATE_TO: toggleable(),
        R.SHOW_PERCENTAGE: toggleable(),
        R.SHOW_PI: conditional(PI_AVAILABLE),
        R.SHOW_TOTALS_ONLY: conditional(field_is(R.SHOW_TOTALS, True)),
        R.CUMULATIVE: toggleable(),
        R.SHOW_TOTALS: conditional(field_is(R.CUMULATIVE, True)),
    },
    defaults=RANKING_DEFAULTS,
)

ABSOLUTE_VIEW = ViewConfig(
    id="absolute",
    label="Raw Values",
    url_param="e",
    url_value="0",
    ui={
        R.STANDARD_POPULATION: conditional(ASMR_ONLY),
        R.BASELINE_METHOD: hidden(),
        R.BASELINE_DATE_FROM: hidden(),
        R.BASELINE_DATE_TO: hidden(),
        R.SHOW_PERCENTAGE: hidden(),
        R.SHOW_PI: hidden(),
        R.SHOW_TOTALS_ONLY: conditional(field_is(R.SHOW_TOTALS, True)),
        R.CUMULATIVE: toggleable(),
        R.SHOW_TOTALS: conditional(field_is(R.CUMULATIVE, True)),
    },
    defaults={
        R.SHOW_PERCENTAGE: False,
        R.SHOW_PI: False,
    },
    constraints=(
        Constraint(
            name="absolute_mode",
            apply={R.SHOW_PERCENTAGE: False, R.SHOW_PI: False},
            reason="Percentage and prediction intervals require baseline (relative mode)",
            priority=Priority.HARD,
        ),
    ),
)


# ─── Legacy Parameters ───────────────────────────────────────────────

def _first(token: Any) -> Any:
    if isinstance(token, list):
        return token[0] if token else None
    return token


def rewrite_legacy_metric(query: Mapping[str, Any]) -> Query:
    """a=1/a=0 predates m=asmr/m=cmr; a valid m always wins."""
    if LEGACY_ASMR_KEY not in query:
        return dict(query)
    rewritten = {k: v for k, v in query.items() if k != LEGACY_ASMR_KEY}
    if _first(rewritten.get("m")) in METRIC_TYPES:
        return rewritten
    flag = str(_first(query[LEGACY_ASMR_KEY]) or "").lower()
    if flag in ("1", "true"):
        rewritten["m"] = "asmr"
    elif flag in ("0", "false"):
        rewritten["m"] = "cmr"
    return rewritten


def ranking_catalog() -> StateCatalog:
    """Built-in ranking catalog (validated on use by StateResolver)."""
    return StateCatalog(
        name="ranking",
        fields=RankingField,
        codecs=FieldCodecRegistry(RANKING_CODECS).with_defaults(
            RELATIVE_VIEW.defaults
        ),
        views=ViewRegistry(
            [RELATIVE_VIEW, ABSOLUTE_VIEW],
            default_view="relative",
            precedence=("absolute",),
        ),
        constraints=RANKING_CONSTRAINTS,
        legacy_params=RANKING_LEGACY_PARAMS,
        query_rewriters=(rewrite_legacy_metric,),
    )
