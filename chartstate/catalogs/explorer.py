"""
Chart State - Explorer Catalog

Field set, URL codecs, views and business rules of the chart explorer.

Views:
  mortality  default, optional baseline
  excess     e=1, baseline forced on
  zscore     zs=1, deviations from baseline
  asd        asd=1, age-standardized deaths (deaths only)

Detection precedence is zscore → asd → excess; a legacy isExcess=true
parameter is read as e=1.
"""

from __future__ import annotations

import enum
from typing import Any, Mapping

from chartstate.catalog import StateCatalog
from chartstate.codec import CodecKind, FieldCodec, FieldCodecRegistry, Query
from chartstate.conditions import all_of, any_of, field_is
from chartstate.types import (
    Constraint,
    Priority,
    ViewConfig,
    conditional,
    hidden,
    required,
    toggleable,
)
from chartstate.views import ViewRegistry


class ExplorerField(str, enum.Enum):
    COUNTRIES = "countries"
    TYPE = "type"
    CHART_TYPE = "chartType"
    CHART_STYLE = "chartStyle"
    DATE_FROM = "dateFrom"
    DATE_TO = "dateTo"
    SLIDER_START = "sliderStart"
    BASELINE_DATE_FROM = "baselineDateFrom"
    BASELINE_DATE_TO = "baselineDateTo"
    STANDARD_POPULATION = "standardPopulation"
    AGE_GROUPS = "ageGroups"
    SHOW_BASELINE = "showBaseline"
    BASELINE_METHOD = "baselineMethod"
    CUMULATIVE = "cumulative"
    SHOW_TOTAL = "showTotal"
    MAXIMIZE = "maximize"
    SHOW_PREDICTION_INTERVAL = "showPredictionInterval"
    SHOW_LABELS = "showLabels"
    SHOW_PERCENTAGE = "showPercentage"
    SHOW_LOGARITHMIC = "showLogarithmic"
    USER_COLORS = "userColors"
    DECIMALS = "decimals"
    SHOW_LOGO = "showLogo"
    SHOW_QR_CODE = "showQrCode"
    SHOW_CAPTION = "showCaption"
    SHOW_TITLE = "showTitle"
    DARK_MODE = "darkMode"
    VIEW = "view"
    IS_EXCESS = "isExcess"
    IS_ZSCORE = "isZScore"


F = ExplorerField

METRICS = ("cmr", "asmr", "le", "deaths", "population")
CHART_STYLES = ("line", "bar", "matrix")
AGGREGATE_AGE_METRICS = ("asmr", "le")

DEFAULT_SLIDER_START = "2010"


# ─── Codecs ──────────────────────────────────────────────────────────

def _bool(name: F, key: str) -> FieldCodec:
    return FieldCodec(name, key, CodecKind.BOOL)


EXPLORER_CODECS = (
    FieldCodec(F.COUNTRIES, "c", CodecKind.ARRAY),
    FieldCodec(F.TYPE, "t", choices=METRICS),
    FieldCodec(F.CHART_TYPE, "ct"),
    FieldCodec(F.CHART_STYLE, "cs", choices=CHART_STYLES),
    FieldCodec(F.DATE_FROM, "df"),
    FieldCodec(F.DATE_TO, "dt"),
    FieldCodec(F.SLIDER_START, "ss"),
    FieldCodec(F.BASELINE_DATE_FROM, "bf"),
    FieldCodec(F.BASELINE_DATE_TO, "bt"),
    FieldCodec(F.STANDARD_POPULATION, "sp"),
    FieldCodec(F.AGE_GROUPS, "ag", CodecKind.ARRAY),
    _bool(F.SHOW_BASELINE, "sb"),
    FieldCodec(F.BASELINE_METHOD, "bm"),
    _bool(F.CUMULATIVE, "ce"),
    _bool(F.SHOW_TOTAL, "st"),
    _bool(F.MAXIMIZE, "m"),
    _bool(F.SHOW_PREDICTION_INTERVAL, "pi"),
    _bool(F.SHOW_LABELS, "sl"),
    _bool(F.SHOW_PERCENTAGE, "p"),
    _bool(F.SHOW_LOGARITHMIC, "lg"),
    FieldCodec(F.USER_COLORS, "uc", CodecKind.ARRAY),
    FieldCodec(F.DECIMALS, "dec"),
    _bool(F.SHOW_LOGO, "l"),
    _bool(F.SHOW_QR_CODE, "qr"),
    _bool(F.SHOW_CAPTION, "cap"),
    _bool(F.SHOW_TITLE, "ti"),
    _bool(F.DARK_MODE, "dm"),
    # State-only: the active view is carried by its shorthand parameter
    FieldCodec(F.VIEW, None),
    FieldCodec(F.IS_EXCESS, None, CodecKind.BOOL),
    FieldCodec(F.IS_ZSCORE, None, CodecKind.BOOL),
)


# ─── Global Constraints ──────────────────────────────────────────────

VIEW_FLAGS = {
    "mortality": (False, False),
    "excess": (True, False),
    "zscore": (False, True),
    "asd": (False, False),
}


def _view_sync(view_id: str) -> Constraint:
    is_excess, is_zscore = VIEW_FLAGS[view_id]
    return Constraint(
        name=f"view_sync_{view_id}",
        condition=field_is(F.VIEW, view_id),
        apply={F.IS_EXCESS: is_excess, F.IS_ZSCORE: is_zscore},
        reason=f"View '{view_id}' sets the view flags",
        priority=Priority.HARD,
    )


# The population and matrix rules turn the baseline off; views that
# require a baseline handle those inputs with their own rules instead.
GLOBAL_CONSTRAINTS = (
    Constraint(
        name="population_type",
        condition=all_of(field_is(F.TYPE, "population"), field_is(F.VIEW, "mortality")),
        apply={F.SHOW_BASELINE: False, F.SHOW_PREDICTION_INTERVAL: False},
        reason="Population type does not support baseline or prediction intervals",
        priority=Priority.HARD,
    ),
    Constraint(
        name="asmr_le_age_groups",
        condition=any_of(*(field_is(F.TYPE, m) for m in AGGREGATE_AGE_METRICS)),
        apply={F.AGE_GROUPS: ["all"]},
        reason='ASMR and life expectancy only support the "all" age group',
        priority=Priority.HARD,
    ),
    Constraint(
        name="matrix_style",
        condition=all_of(field_is(F.CHART_STYLE, "matrix"), field_is(F.VIEW, "mortality")),
        apply={
            F.SHOW_BASELINE: False,
            F.SHOW_PREDICTION_INTERVAL: False,
            F.MAXIMIZE: False,
            F.SHOW_LOGARITHMIC: False,
        },
        reason="Matrix style disables baseline, prediction intervals, maximize and logarithmic scale",
        priority=Priority.HARD,
    ),
    *(_view_sync(view_id) for view_id in VIEW_FLAGS),
    Constraint(
        name="baseline_off",
        condition=field_is(F.SHOW_BASELINE, False),
        apply={F.SHOW_PREDICTION_INTERVAL: False},
        reason="Prediction intervals require baseline",
        priority=Priority.RULE,
    ),
    Constraint(
        name="cumulative_off",
        condition=field_is(F.CUMULATIVE, False),
        apply={F.SHOW_TOTAL: False},
        reason="Show total requires cumulative mode",
        priority=Priority.RULE,
    ),
    Constraint(
        name="baseline_on_restore_pi",
        condition=all_of(field_is(F.SHOW_BASELINE, True), field_is(F.VIEW, "mortality")),
        apply={F.SHOW_PREDICTION_INTERVAL: True},
        reason="Restore prediction interval to default when baseline is enabled",
        priority=Priority.SOFT,
        allow_user_override=True,
    ),
)


# ─── View-scoped Constraints ─────────────────────────────────────────

def _requires_baseline(view_id: str, label: str) -> Constraint:
    return Constraint(
        name=f"{view_id}_requires_baseline",
        apply={F.SHOW_BASELINE: True},
        reason=f"{label} requires baseline data",
        priority=Priority.HARD,
    )


def _no_logarithmic(view_id: str, label: str) -> Constraint:
    return Constraint(
        name=f"{view_id}_no_logarithmic",
        apply={F.SHOW_LOGARITHMIC: False},
        reason=f"Logarithmic scale not available in {label}",
        priority=Priority.HARD,
    )


def _compatible_metric(view_id: str, metrics: tuple[str, ...], fallback: str) -> Constraint:
    incompatible = [m for m in METRICS if m not in metrics]
    apply: dict[str, Any] = {F.TYPE: fallback}
    # Constraints see the pre-patch type, so the age-group rule for the
    # fallback metric is applied here
    if fallback in AGGREGATE_AGE_METRICS:
        apply[F.AGE_GROUPS] = ["all"]
    return Constraint(
        name=f"{view_id}_compatible_metric",
        condition=any_of(*(field_is(F.TYPE, m) for m in incompatible)),
        apply=apply,
        reason=f"View '{view_id}' supports only {', '.join(metrics)}",
        priority=Priority.HARD,
    )


def _no_matrix(view_id: str, fallback: str) -> Constraint:
    return Constraint(
        name=f"{view_id}_no_matrix",
        condition=field_is(F.CHART_STYLE, "matrix"),
        apply={F.CHART_STYLE: fallback},
        reason=f"Matrix chart style not supported in view '{view_id}'",
        priority=Priority.HARD,
    )


EXCESS_METRICS = ("cmr", "asmr", "deaths")
ZSCORE_METRICS = ("cmr", "asmr", "deaths")
ASD_METRICS = ("deaths",)

BAR_ONLY = field_is(F.CHART_STYLE, "bar")
CUMULATIVE_BARS = all_of(field_is(F.CHART_STYLE, "bar"), field_is(F.CUMULATIVE, True))


MORTALITY_VIEW = ViewConfig(
    id="mortality",
    label="Mortality Analysis",
    ui={
        F.SHOW_BASELINE: toggleable(),
        F.SHOW_PREDICTION_INTERVAL: conditional(field_is(F.SHOW_BASELINE, True)),
        F.SHOW_LOGARITHMIC: toggleable(),
        F.MAXIMIZE: toggleable(),
        F.SHOW_LABELS: toggleable(),
        F.CUMULATIVE: hidden(),
        F.SHOW_PERCENTAGE: hidden(),
        F.SHOW_TOTAL: hidden(),
    },
    defaults={
        F.COUNTRIES: ["USA", "SWE"],
        F.TYPE: "asmr",
        F.CHART_TYPE: "fluseason",
        F.CHART_STYLE: "line",
        F.AGE_GROUPS: ["all"],
        F.STANDARD_POPULATION: "who",
        F.IS_EXCESS: False,
        F.IS_ZSCORE: False,
        F.DATE_FROM: None,
        F.DATE_TO: None,
        F.SLIDER_START: DEFAULT_SLIDER_START,
        F.BASELINE_DATE_FROM: None,
        F.BASELINE_DATE_TO: None,
        F.SHOW_BASELINE: True,
        F.BASELINE_METHOD: "mean",
        F.SHOW_PREDICTION_INTERVAL: True,
        F.CUMULATIVE: False,
        F.SHOW_TOTAL: False,
        F.SHOW_PERCENTAGE: False,
        F.SHOW_LOGARITHMIC: False,
        F.MAXIMIZE: False,
        F.SHOW_LABELS: True,
        F.DECIMALS: "auto",
        F.SHOW_LOGO: True,
        F.SHOW_QR_CODE: True,
        F.SHOW_CAPTION: True,
        F.SHOW_TITLE: True,
        F.USER_COLORS: None,
        F.DARK_MODE: False,
    },
    compatible_metrics=("cmr", "asmr", "le", "deaths"),
)

EXCESS_VIEW = ViewConfig(
    id="excess",
    label="Excess Mortality",
    url_param="e",
    ui={
        F.SHOW_BASELINE: required(True),
        F.SHOW_PREDICTION_INTERVAL: toggleable(),
        F.SHOW_LOGARITHMIC: hidden(),
        F.MAXIMIZE: conditional(BAR_ONLY),
        F.SHOW_LABELS: toggleable(),
        F.CUMULATIVE: toggleable(),
        F.SHOW_PERCENTAGE: toggleable(),
        F.SHOW_TOTAL: conditional(CUMULATIVE_BARS),
    },
    defaults={
        F.CHART_STYLE: "bar",
        F.SHOW_BASELINE: True,
        F.SHOW_PREDICTION_INTERVAL: False,
        F.SHOW_PERCENTAGE: True,
        F.CUMULATIVE: False,
        F.SHOW_LOGARITHMIC: False,
    },
    constraints=(
        _requires_baseline("excess", "Excess mortality"),
        _no_logarithmic("excess", "excess mode"),
        _compatible_metric("excess", EXCESS_METRICS, "asmr"),
        _no_matrix("excess", "bar"),
    ),
    compatible_metrics=EXCESS_METRICS,
    compatible_chart_styles=("line", "bar"),
)

ZSCORE_VIEW = ViewConfig(
    id="zscore",
    label="Z-Score Analysis",
    url_param="zs",
    ui={
        F.SHOW_BASELINE: hidden(),
        F.SHOW_PREDICTION_INTERVAL: toggleable(),
        F.SHOW_LOGARITHMIC: hidden(),
        F.MAXIMIZE: conditional(BAR_ONLY),
        F.SHOW_LABELS: toggleable(),
        F.CUMULATIVE: hidden(),
        F.SHOW_PERCENTAGE: hidden(),
        F.SHOW_TOTAL: hidden(),
    },
    defaults={
        F.CHART_STYLE: "line",
        F.SHOW_BASELINE: True,
        F.SHOW_PREDICTION_INTERVAL: False,
        F.SHOW_LOGARITHMIC: False,
    },
    constraints=(
        _requires_baseline("zscore", "Z-score calculation"),
        _no_logarithmic("zscore", "z-score analysis"),
        Constraint(
            name="zscore_no_cumulative",
            apply={F.CUMULATIVE: False, F.SHOW_TOTAL: False, F.SHOW_PERCENTAGE: False},
            reason="Z-scores show deviations, not cumulative or percentage values",
            priority=Priority.HARD,
        ),
        _no_matrix("zscore", "line"),
        _compatible_metric("zscore", ZSCORE_METRICS, "asmr"),
    ),
    compatible_metrics=ZSCORE_METRICS,
    compatible_chart_styles=("line", "bar"),
)

ASD_VIEW = ViewConfig(
    id="asd",
    label="Age-Standardized Deaths",
    url_param="asd",
    ui={
        F.SHOW_BASELINE: required(True),
        F.SHOW_PREDICTION_INTERVAL: toggleable(),
        F.SHOW_LOGARITHMIC: hidden(),
        F.MAXIMIZE: conditional(BAR_ONLY),
        F.SHOW_LABELS: toggleable(),
        F.CUMULATIVE: toggleable(),
        F.SHOW_PERCENTAGE: toggleable(),
        F.SHOW_TOTAL: conditional(CUMULATIVE_BARS),
    },
    defaults={
        F.TYPE: "deaths",
        F.CHART_STYLE: "line",
        F.SHOW_BASELINE: True,
        F.SHOW_PREDICTION_INTERVAL: False,
        F.SHOW_PERCENTAGE: False,
        F.CUMULATIVE: False,
        F.SHOW_LOGARITHMIC: False,
    },
    constraints=(
        _requires_baseline("asd", "Age-standardized deaths calculation"),
        _no_logarithmic("asd", "ASD mode"),
        _compatible_metric("asd", ASD_METRICS, "deaths"),
        _no_matrix("asd", "line"),
    ),
    compatible_metrics=ASD_METRICS,
    compatible_chart_styles=("line", "bar"),
)

VIEW_PRECEDENCE = ("zscore", "asd", "excess")


# ─── Legacy Parameters ───────────────────────────────────────────────

def rewrite_legacy_excess(query: Mapping[str, Any]) -> Query:
    """Old links carried isExcess=true instead of e=1."""
    if "isExcess" not in query:
        return dict(query)
    rewritten = {k: v for k, v in query.items() if k != "isExcess"}
    flag = query["isExcess"]
    if isinstance(flag, list):
        flag = flag[0] if flag else ""
    if str(flag).lower() == "true" and "e" not in rewritten:
        rewritten["e"] = "1"
    return rewritten


def explorer_catalog() -> StateCatalog:
    """Built-in explorer catalog (validated on use by StateResolver)."""
    return StateCatalog(
        name="explorer",
        fields=ExplorerField,
        codecs=FieldCodecRegistry(EXPLORER_CODECS).with_defaults(
            {**MORTALITY_VIEW.defaults, F.VIEW.value: "mortality"}
        ),
        views=ViewRegistry(
            [MORTALITY_VIEW, EXCESS_VIEW, ZSCORE_VIEW, ASD_VIEW],
            default_view="mortality",
            precedence=VIEW_PRECEDENCE,
        ),
        constraints=GLOBAL_CONSTRAINTS,
        query_rewriters=(rewrite_legacy_excess,),
    )
