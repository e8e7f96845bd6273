"""Attribute expressions and cross-resource references.

An expression is a literal scalar, a list or mapping of expressions, or a
reference to another resource's attribute. References take two forms:

- ``{"ref": "aws_vpc.main.id"}`` - a mapping with the single key ``ref``
- ``"${aws_vpc.main.id}"`` - a token inside a string

A string that consists of exactly one token resolves to the referenced value
as-is (type preserved). Tokens embedded in longer strings are interpolated
as text, e.g. ``"arn:aws:ecr:::${aws_ecr_repository.app.name}"``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

REF_KEY = "ref"
UNKNOWN = "(known after apply)"

_ADDRESS_RE = re.compile(r"^([a-z][a-z0-9_]*)\.([A-Za-z0-9_-]+)$")
_REFERENCE_RE = re.compile(
    r"^([a-z][a-z0-9_]*\.[A-Za-z0-9_-]+)\.([A-Za-z0-9_]+(?:\.[A-Za-z0-9_]+)*)$"
)
_TOKEN_RE = re.compile(r"\$\{([^}]*)\}")


@dataclass(frozen=True, slots=True)
class Reference:
    """A reference to ``attribute`` of the resource at ``address``.

    ``attribute`` may be a dotted path into nested mappings
    (``settings.name``); the first segment names the attribute.
    """

    address: str
    attribute: str

    @property
    def path(self) -> list[str]:
        return self.attribute.split(".")

    def __str__(self) -> str:
        return f"{self.address}.{self.attribute}"


def split_address(address: str) -> tuple[str, str]:
    """Split ``"<type>.<name>"`` into its parts."""
    match = _ADDRESS_RE.match(address)
    if match is None:
        raise ValueError(f"Invalid resource address '{address}': expected '<type>.<name>'")
    return match.group(1), match.group(2)


def parse_reference(text: str) -> Reference:
    """Parse ``"<type>.<name>.<attribute>"`` into a :class:`Reference`."""
    match = _REFERENCE_RE.match(text.strip())
    if match is None:
        raise ValueError(f"Invalid reference '{text}': expected '<type>.<name>.<attribute>'")
    return Reference(address=match.group(1), attribute=match.group(2))


def _ref_mapping(value: dict[str, Any]) -> str | None:
    if len(value) == 1 and REF_KEY in value and isinstance(value[REF_KEY], str):
        return value[REF_KEY]
    return None


def _whole_token(value: str) -> str | None:
    match = _TOKEN_RE.fullmatch(value)
    return match.group(1) if match else None


def find_references(expr: Any) -> list[Reference]:
    """Collect every reference in *expr*, in document order (duplicates kept)."""
    if isinstance(expr, str):
        return [parse_reference(m.group(1)) for m in _TOKEN_RE.finditer(expr)]
    if isinstance(expr, dict):
        ref = _ref_mapping(expr)
        if ref is not None:
            return [parse_reference(ref)]
        return [r for v in expr.values() for r in find_references(v)]
    if isinstance(expr, list):
        return [r for v in expr for r in find_references(v)]
    return []


def resolve(expr: Any, lookup: Callable[[Reference], Any]) -> Any:
    """Substitute every reference in *expr* with ``lookup(reference)``, recursively.

    Interpolating an :data:`UNKNOWN` value into a longer string yields
    :data:`UNKNOWN` for the whole string.
    """
    if isinstance(expr, str):
        token = _whole_token(expr)
        if token is not None:
            return lookup(parse_reference(token))
        if "${" not in expr:
            return expr
        unknown = False

        def _sub(match: re.Match[str]) -> str:
            nonlocal unknown
            value = lookup(parse_reference(match.group(1)))
            if value == UNKNOWN:
                unknown = True
            return str(value)

        text = _TOKEN_RE.sub(_sub, expr)
        return UNKNOWN if unknown else text
    if isinstance(expr, dict):
        ref = _ref_mapping(expr)
        if ref is not None:
            return lookup(parse_reference(ref))
        return {k: resolve(v, lookup) for k, v in expr.items()}
    if isinstance(expr, list):
        return [resolve(v, lookup) for v in expr]
    return expr


def contains_unknown(value: Any) -> bool:
    """Whether *value* holds a not-yet-known placeholder anywhere."""
    if isinstance(value, str):
        return value == UNKNOWN
    if isinstance(value, dict):
        return any(contains_unknown(v) for v in value.values())
    if isinstance(value, list):
        return any(contains_unknown(v) for v in value)
    return False


def lookup_path(value: Any, path: list[str]) -> Any:
    """Walk *path* through nested mappings; ``None`` when a segment is missing."""
    current = value
    for segment in path:
        if not isinstance(current, dict) or segment not in current:
            return None
        current = current[segment]
    return current
