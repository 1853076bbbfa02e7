"""Fixture discovery exports."""
from .loader import FixtureLoader, discover, is_reference_document, read_fixture, resolve_href, select_cases
from .metadata import FixtureMetadata, parse_metadata

__all__ = [
    "FixtureLoader",
    "FixtureMetadata",
    "discover",
    "is_reference_document",
    "parse_metadata",
    "read_fixture",
    "resolve_href",
    "select_cases",
]
