"""
Chart State - CLI

Resolve URLs and changes from the command line and inspect catalogs.

Usage:
    # Resolve a URL, optionally followed by user changes
    python -m chartstate resolve "c=DEU&zs=1" \\
        --change chartStyle=bar --change countries=DEU,FRA

    # Ranking page
    python -m chartstate resolve "e=0&t=0" --page ranking

    # Which data refresh a field change needs
    python -m chartstate classify cumulative --state '{"baselineMethod": "mean"}'

    # Field table (field, URL key, kind, default)
    python -m chartstate fields --page ranking
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from typing import Any

import yaml

from chartstate.catalogs import CATALOGS, load_catalog
from chartstate.classifier import classify
from chartstate.codec import CodecKind, FieldCodec
from chartstate.config import DEFAULT_CONFIG_PATH, get_config_value, load_config
from chartstate.logging import configure_logging
from chartstate.resolver import StateResolver
from chartstate.types import ChartStateError, ConfigurationError, StateChange, UnknownFieldError


def _print_json(data: Any):
    print(json.dumps(data, indent=2, default=str))


def _decode_scalar(codec: FieldCodec, raw: str) -> Any:
    # Values name the state, not the wire bit, so inverted keys are not flipped
    plain = dataclasses.replace(codec, inverted=False)
    value = plain.decode(raw.strip(), default=None)
    if value is None:
        raise ValueError(f"Invalid {codec.kind.value} value for '{codec.field}': '{raw}'")
    return value


def parse_change(text: str, resolver: StateResolver) -> StateChange:
    """FIELD=VALUE, with VALUE parsed as YAML (true, 3, [a, b])."""
    name, sep, raw = text.partition("=")
    if not sep or not name:
        raise ValueError(f"Expected FIELD=VALUE, got '{text}'")
    name = resolver.catalog.check_field(name.strip())
    try:
        value = yaml.safe_load(raw) if raw else None
    except yaml.YAMLError:
        value = raw
    codec = resolver.codecs.get(name)
    if codec is None or value is None:
        return StateChange(name, value)
    if codec.kind == CodecKind.ARRAY and isinstance(value, str):
        value = [v.strip() for v in value.split(",") if v.strip()]
    elif codec.kind == CodecKind.STRING:
        value = raw
    elif codec.kind in (CodecKind.BOOL, CodecKind.NUMBER):
        value = _decode_scalar(codec, raw)
    return StateChange(name, value)


# ─── Commands ────────────────────────────────────────────────────────

def cmd_resolve(args, config: dict[str, Any]) -> int:
    resolver = StateResolver(load_catalog(args.page, config))
    resolved = resolver.resolve_initial(args.query or "")
    changes = [c.to_dict() for c in resolved.log.changes]

    for text in args.change or []:
        change = parse_change(text, resolver)
        resolved = resolver.resolve_change(change, resolved.state, resolved.user_overrides)
        changes.extend(c.to_dict() for c in resolved.log.changes)

    _print_json({
        "view": resolved.view,
        "state": resolved.state,
        "ui": {k: v.to_dict() for k, v in resolved.ui.items()},
        "query": resolver.to_query_string(resolved.state),
        "user_overrides": sorted(resolved.user_overrides),
        "changes": changes,
    })
    return 0


def cmd_classify(args, config: dict[str, Any]) -> int:
    state = json.loads(args.state) if args.state else None
    if state is not None and not isinstance(state, dict):
        print("Error: --state must be a JSON object", file=sys.stderr)
        return 2
    _print_json(classify(args.field, state).to_dict())
    return 0


def cmd_fields(args, config: dict[str, Any]) -> int:
    catalog = load_catalog(args.page, config)
    defaults = catalog.views.effective_defaults(catalog.views.default_view)
    rows = []
    for codec in catalog.codecs:
        rows.append({
            "field": codec.field,
            "key": codec.key,
            "kind": codec.kind.value,
            "default": defaults.get(codec.field),
        })
    _print_json(rows)
    return 0


# ─── Entry Point ─────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chartstate",
        description="Chart State - URL state resolution",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config", default=DEFAULT_CONFIG_PATH,
        help=f"Config YAML (default: {DEFAULT_CONFIG_PATH}, optional)",
    )
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")

    subs = parser.add_subparsers(dest="command", help="Command")

    resolve_p = subs.add_parser("resolve", help="Resolve a URL query and optional changes")
    resolve_p.add_argument("query", nargs="?", default="")
    resolve_p.add_argument("--page", "-p", choices=sorted(CATALOGS), default="explorer")
    resolve_p.add_argument("--change", "-c", action="append", metavar="FIELD=VALUE")

    classify_p = subs.add_parser("classify", help="Classify the refresh a field change needs")
    classify_p.add_argument("field")
    classify_p.add_argument("--state", "-s", help="Current state as JSON")

    fields_p = subs.add_parser("fields", help="List fields, URL keys and defaults")
    fields_p.add_argument("--page", "-p", choices=sorted(CATALOGS), default="explorer")

    return parser


COMMANDS = {
    "resolve": cmd_resolve,
    "classify": cmd_classify,
    "fields": cmd_fields,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    try:
        config = load_config(base_path=args.config)
        level = args.log_level or get_config_value("logging.level", config, "INFO")
        configure_logging(level=str(level))
        return COMMANDS[args.command](args, config)
    except UnknownFieldError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    except (ChartStateError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
