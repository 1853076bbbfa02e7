"""Extraction of reftest metadata (relation links, assertion, flags) from markup."""
from __future__ import annotations

from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import List, Optional, Tuple

from reftest.core.models import RELATIONS


@dataclass
class FixtureMetadata:
    """Metadata declared by one document."""

    relations: List[Tuple[str, str]] = field(default_factory=list)
    assertion: str = ""
    flags: Tuple[str, ...] = tuple()
    fuzzy: Optional[str] = None
    title: str = ""

    @property
    def reference(self) -> Optional[Tuple[str, str]]:
        return self.relations[0] if self.relations else None


class _MetadataParser(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.metadata = FixtureMetadata()
        self._in_title = False
        self._title_parts: list[str] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, Optional[str]]]) -> None:
        name = _local_name(tag)
        values = {key.lower(): (value or "") for key, value in attrs}
        if name == "link":
            href = values.get("href", "").strip()
            for token in values.get("rel", "").lower().split():
                if token in RELATIONS and href:
                    self.metadata.relations.append((token, href))
        elif name == "meta":
            self._handle_meta(values.get("name", "").strip().lower(), values.get("content", ""))
        elif name == "title":
            self._in_title = True

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, Optional[str]]]) -> None:
        self.handle_starttag(tag, attrs)
        if _local_name(tag) == "title":
            self._in_title = False

    def handle_endtag(self, tag: str) -> None:
        if _local_name(tag) == "title" and self._in_title:
            self._in_title = False
            self.metadata.title = " ".join("".join(self._title_parts).split())

    def handle_data(self, data: str) -> None:
        if self._in_title:
            self._title_parts.append(data)

    def _handle_meta(self, name: str, content: str) -> None:
        if name == "assert":
            self.metadata.assertion = " ".join(content.split())
        elif name == "flags":
            self.metadata.flags = tuple(content.split())
        elif name == "fuzzy":
            self.metadata.fuzzy = content.strip()


def _local_name(tag: str) -> str:
    return tag.lower().rsplit(":", 1)[-1]


def parse_metadata(markup: str) -> FixtureMetadata:
    """Parse ``markup`` and return the reftest metadata it declares."""

    parser = _MetadataParser()
    parser.feed(markup)
    parser.close()
    return parser.metadata
