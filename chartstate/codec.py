"""
Chart State - Field Codecs

Bidirectional mapping between logical state fields and short URL tokens.

Wire format:
  - booleans   → "0" / "1" (inverted fields flip the bit)
  - strings    → percent-encoded
  - numbers    → canonical decimal text
  - arrays     → repeated keys, one percent-encoded token per element
                 (a single comma-joined token is also accepted on decode)

A field holding its default is never written, so URLs stay minimal and
canonical. Tokens are kept in wire form end to end: parse_query does not
unquote values, decode does.

Usage:
    from chartstate.codec import FieldCodec, FieldCodecRegistry, CodecKind

    codecs = FieldCodecRegistry([
        FieldCodec("showBaseline", "sb", CodecKind.BOOL, default=True),
        FieldCodec("countries", "c", CodecKind.ARRAY, default=["USA", "SWE"]),
    ])
    tokens = codecs.encode_state(state, defaults)
    values = codecs.decode_query(parse_query("sb=0&c=DEU"), defaults)
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping
from urllib.parse import quote, unquote

from chartstate.types import ConfigurationError, copy_value, field_name, values_equal

logger = logging.getLogger("chartstate.codec")

Query = dict[str, Any]

_MISSING = object()

_TRUE_TOKENS = {"1", "true"}
_FALSE_TOKENS = {"0", "false"}


class CodecKind(str, enum.Enum):
    BOOL = "bool"
    STRING = "string"
    NUMBER = "number"
    ARRAY = "array"


class MalformedToken(ValueError):
    """A URL token that cannot be decoded for its field."""
    pass


# ═══════════════════════════════════════════════════════════════════
# Field Codec
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class FieldCodec:
    """
    Codec for one state field.

    `key` is the short URL parameter; None marks a state-only field
    that is never serialized. `choices` restricts accepted values
    (per element for arrays).
    """
    field: str
    key: str | None
    kind: CodecKind = CodecKind.STRING
    default: Any = None
    choices: tuple[Any, ...] | None = None
    inverted: bool = False

    def __post_init__(self):
        object.__setattr__(self, "field", field_name(self.field))
        object.__setattr__(self, "kind", CodecKind(self.kind))
        if self.choices is not None:
            object.__setattr__(self, "choices", tuple(self.choices))

    @property
    def serialized(self) -> bool:
        return self.key is not None

    # ─── Encode ──────────────────────────────────────────────────────

    def encode(self, value: Any, default: Any = _MISSING) -> str | list[str] | None:
        """Encode a value to its URL token. None means the key is omitted."""
        if default is _MISSING:
            default = self.default
        if self.key is None or value is None or values_equal(value, default):
            return None

        if self.kind == CodecKind.BOOL:
            bit = bool(value) != self.inverted
            return "1" if bit else "0"

        if self.kind == CodecKind.ARRAY:
            items = [quote(str(item), safe="") for item in value]
            return items if items else [""]

        if self.kind == CodecKind.NUMBER:
            if isinstance(value, float) and value.is_integer():
                return str(int(value)) if abs(value) < 2**53 else repr(value)
            return str(value)

        return quote(str(value), safe="")

    # ─── Decode ──────────────────────────────────────────────────────

    def decode(self, token: Any, default: Any = _MISSING) -> Any:
        """
        Decode a URL token. Malformed tokens fall back to `default`
        (the codec default unless the caller supplies a view default).
        """
        if default is _MISSING:
            default = self.default
        if token is None:
            return copy_value(default)
        try:
            return self._decode(token)
        except MalformedToken as e:
            logger.debug("Malformed token for %s (%s=%r): %s", self.field, self.key, token, e)
            return copy_value(default)

    def _decode(self, token: Any) -> Any:
        if self.kind == CodecKind.ARRAY:
            return self._decode_array(token)

        # Scalar fields take the first of repeated keys
        if isinstance(token, (list, tuple)):
            if not token:
                raise MalformedToken("empty token list")
            token = token[0]
        if not isinstance(token, str):
            token = str(token)

        if self.kind == CodecKind.BOOL:
            text = token.strip().lower()
            if text in _TRUE_TOKENS:
                return not self.inverted
            if text in _FALSE_TOKENS:
                return self.inverted
            raise MalformedToken(f"not a boolean: {token!r}")

        if self.kind == CodecKind.NUMBER:
            text = unquote(token).strip()
            try:
                return int(text)
            except ValueError:
                pass
            try:
                number = float(text)
            except ValueError:
                raise MalformedToken(f"not a number: {token!r}") from None
            if not math.isfinite(number):
                raise MalformedToken(f"not a finite number: {token!r}")
            return number

        value = unquote(token)
        self._check_choice(value)
        return value

    def _decode_array(self, token: Any) -> list[str]:
        if isinstance(token, (list, tuple)):
            raw = [str(t) for t in token]
        else:
            raw = str(token).split(",")
        items = [unquote(t) for t in raw if t != ""]
        for item in items:
            self._check_choice(item)
        return items

    def _check_choice(self, value: Any):
        if self.choices is not None and value not in self.choices:
            raise MalformedToken(f"{value!r} not in {list(self.choices)}")


# ═══════════════════════════════════════════════════════════════════
# Registry
# ═══════════════════════════════════════════════════════════════════

class FieldCodecRegistry:
    """Ordered set of field codecs. Registration order is URL order."""

    def __init__(self, codecs: Iterable[FieldCodec] = ()):
        self._codecs: dict[str, FieldCodec] = {}
        self._by_key: dict[str, FieldCodec] = {}
        for codec in codecs:
            self.register(codec)

    def register(self, codec: FieldCodec) -> None:
        if codec.field in self._codecs:
            raise ConfigurationError(f"Duplicate codec for field '{codec.field}'")
        if codec.key is not None:
            if codec.key in self._by_key:
                other = self._by_key[codec.key].field
                raise ConfigurationError(
                    f"URL key '{codec.key}' used by both '{other}' and '{codec.field}'"
                )
            self._by_key[codec.key] = codec
        self._codecs[codec.field] = codec

    def with_defaults(self, defaults: Mapping[str, Any]) -> FieldCodecRegistry:
        """Copy of this registry with codec defaults taken from a state."""
        return FieldCodecRegistry(
            dataclasses.replace(c, default=copy_value(defaults[c.field]))
            if c.field in defaults else c
            for c in self._codecs.values()
        )

    def get(self, name: Any) -> FieldCodec | None:
        return self._codecs.get(field_name(name))

    def by_key(self, key: str) -> FieldCodec | None:
        return self._by_key.get(key)

    def __contains__(self, name: Any) -> bool:
        return field_name(name) in self._codecs

    def __iter__(self) -> Iterator[FieldCodec]:
        return iter(self._codecs.values())

    def __len__(self) -> int:
        return len(self._codecs)

    def fields(self) -> list[str]:
        return list(self._codecs)

    def url_keys(self) -> list[str]:
        return list(self._by_key)

    def url_key(self, name: Any) -> str:
        name = field_name(name)
        codec = self._codecs.get(name)
        return codec.key if codec is not None and codec.key else name

    def require(self, fields: Iterable[Any], context: str = "") -> None:
        """Raise ConfigurationError if any field lacks a codec."""
        missing = sorted({field_name(f) for f in fields} - set(self._codecs))
        if missing:
            where = f" ({context})" if context else ""
            raise ConfigurationError(f"Missing codec for fields {missing}{where}")

    def decode_query(self, query: Mapping[str, Any], defaults: Mapping[str, Any]) -> dict[str, Any]:
        """Decode every serialized field present in the query."""
        decoded: dict[str, Any] = {}
        for codec in self._codecs.values():
            if codec.key is None:
                continue
            token = query.get(codec.key)
            if token is None:
                continue
            decoded[codec.field] = codec.decode(token, defaults.get(codec.field, codec.default))
        return decoded

    def encode_state(self, state: Mapping[str, Any], defaults: Mapping[str, Any]) -> Query:
        """Encode non-default fields to URL tokens, in registry order."""
        tokens: Query = {}
        for codec in self._codecs.values():
            if codec.key is None or codec.field not in state:
                continue
            token = codec.encode(state[codec.field], defaults.get(codec.field, codec.default))
            if token is not None:
                tokens[codec.key] = token
        return tokens


# ═══════════════════════════════════════════════════════════════════
# Query Strings
# ═══════════════════════════════════════════════════════════════════

def parse_query(query_string: str) -> Query:
    """
    Parse a query string into key → token (or list of tokens for
    repeated keys). Values stay percent-encoded.
    """
    result: Query = {}
    text = query_string.lstrip("?")
    for part in text.split("&"):
        if not part:
            continue
        key, _, value = part.partition("=")
        key = unquote(key)
        if not key:
            continue
        if key in result:
            existing = result[key]
            if isinstance(existing, list):
                existing.append(value)
            else:
                result[key] = [existing, value]
        else:
            result[key] = value
    return result


def normalize_query(query: Mapping[str, Any]) -> Query:
    """Drop unset entries from an already-parsed query mapping."""
    result: Query = {}
    for key, value in query.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            values = [str(v) for v in value if v is not None]
            if values:
                result[key] = values[0] if len(values) == 1 else values
        else:
            result[key] = str(value)
    return result


def format_query(tokens: Mapping[str, Any]) -> str:
    """Render tokens (already in wire form) as a query string."""
    parts = []
    for key, token in tokens.items():
        if isinstance(token, (list, tuple)):
            parts.extend(f"{key}={t}" for t in token)
        else:
            parts.append(f"{key}={token}")
    return "&".join(parts)


# ─── Legacy Parameters ───────────────────────────────────────────────

# Old bookmark and QR-code keys → current keys
LEGACY_PARAM_MAPPINGS: dict[str, str] = {
    "bdf": "bf",  # baselineDateFrom
    "bdt": "bt",  # baselineDateTo
    "cum": "ce",  # cumulative
    "pct": "p",   # showPercentage
}


def migrate_legacy_params(
    query: Mapping[str, Any],
    mapping: Mapping[str, str] = LEGACY_PARAM_MAPPINGS,
) -> Query:
    """Rename legacy keys. An explicit current key always beats its legacy alias."""
    if not any(key in mapping for key in query):
        return dict(query)
    migrated: Query = {}
    for key, value in query.items():
        new_key = mapping.get(key)
        if new_key is None:
            migrated[key] = value
        elif new_key not in query:
            migrated[new_key] = value
    return migrated
