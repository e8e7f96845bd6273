"""Resource declarations and attribute expressions."""

from infragraph.resources.base import ResourceDeclaration
from infragraph.resources.catalog import CATALOG, ResourceTypeSpec, catalog_by_type
from infragraph.resources.expressions import (
    UNKNOWN,
    Reference,
    find_references,
    parse_reference,
    resolve,
    split_address,
)

__all__ = [
    "CATALOG",
    "UNKNOWN",
    "Reference",
    "ResourceDeclaration",
    "ResourceTypeSpec",
    "catalog_by_type",
    "find_references",
    "parse_reference",
    "resolve",
    "split_address",
]
