"""Discovery of test/reference document pairs under a fixture tree."""
from __future__ import annotations

import fnmatch
import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Set
from urllib.parse import unquote, urlsplit

from reftest.core.errors import FatalRunError, MissingReferenceError
from reftest.core.models import FuzzyAllowance, TestCase
from reftest.core.results import (
    SKIP_NO_REFERENCE,
    SKIP_REFERENCE_NOT_FOUND,
    SKIP_UNREADABLE,
    SkippedFixture,
)

from .metadata import parse_metadata

log = logging.getLogger(__name__)

DOCUMENT_SUFFIXES = (".html", ".htm", ".xhtml", ".xht", ".svg")
REFERENCE_DIRS = {"reference", "references"}
REFERENCE_STEM_SUFFIXES = ("-ref", "_ref", "-notref")


class FixtureLoader:
    """Enumerates test cases lazily; each ``discover`` call starts afresh."""

    def __init__(self, *, suffixes: Sequence[str] = DOCUMENT_SUFFIXES) -> None:
        self._suffixes = tuple(suffix.lower() for suffix in suffixes)
        self._skipped: List[SkippedFixture] = []
        self._references: Set[Path] = set()

    @property
    def skipped(self) -> tuple[SkippedFixture, ...]:
        """Documents skipped so far; documents later found to be references are omitted."""

        return tuple(item for item in self._skipped if item.path not in self._references)

    def discover(self, root: Path | str) -> Iterator[TestCase]:
        root_path = Path(root).expanduser().resolve()
        if not root_path.exists():
            raise FatalRunError(f"Fixture root does not exist: {root_path}")
        self._skipped = []
        self._references = set()
        return self._iterate(root_path)

    def _iterate(self, root: Path) -> Iterator[TestCase]:
        for path in self._candidates(root):
            if path in self._references or is_reference_document(path, root):
                continue
            try:
                case = read_fixture(path, root)
            except MissingReferenceError:
                self._skipped.append(SkippedFixture(path=path, reason=SKIP_NO_REFERENCE))
                continue
            except (OSError, UnicodeError, ValueError) as exc:
                log.warning("skipping unreadable fixture %s: %s", path, exc)
                self._skipped.append(SkippedFixture(path=path, reason=SKIP_UNREADABLE, detail=str(exc)))
                continue
            self._references.add(case.reference_path)
            if not case.reference_path.is_file():
                self._skipped.append(
                    SkippedFixture(
                        path=path,
                        reason=SKIP_REFERENCE_NOT_FOUND,
                        detail=str(case.reference_path),
                    )
                )
                continue
            log.debug("discovered %s", case.identifier())
            yield case

    def _candidates(self, root: Path) -> Iterator[Path]:
        if root.is_file():
            yield root
            return
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(name for name in dirnames if not name.startswith("."))
            for filename in sorted(filenames):
                if filename.lower().endswith(self._suffixes):
                    yield Path(dirpath) / filename


def discover(root: Path | str) -> Iterator[TestCase]:
    """Shortcut for ``FixtureLoader().discover(root)``."""

    return FixtureLoader().discover(root)


def read_fixture(path: Path, root: Optional[Path] = None) -> TestCase:
    """Build a test case from the metadata declared by ``path``."""

    markup = path.read_text(encoding="utf-8", errors="replace")
    metadata = parse_metadata(markup)
    reference = metadata.reference
    if reference is None:
        raise MissingReferenceError(path)
    relation, href = reference
    reference_path = resolve_href(href, path, root)
    fuzzy = FuzzyAllowance.parse(metadata.fuzzy) if metadata.fuzzy else None
    return TestCase(
        id=_case_id(path, root),
        test_path=path,
        reference_path=reference_path,
        relation=relation,
        assertion=metadata.assertion,
        flags=frozenset(metadata.flags),
        title=metadata.title,
        fuzzy=fuzzy,
    )


def resolve_href(href: str, document: Path, root: Optional[Path] = None) -> Path:
    """Map a link ``href`` to a file path.

    Relative hrefs resolve against the linking document's directory;
    root-relative hrefs (``/css/reference/x.html``) resolve against the
    discovery root. Fragments and queries are dropped and percent escapes
    decoded.
    """

    target = unquote(urlsplit(href).path)
    if target.startswith("/"):
        if root is None:
            base = document.parent
        else:
            base = root if root.is_dir() else root.parent
        return (base / target.lstrip("/")).resolve()
    return (document.parent / target).resolve()


def is_reference_document(path: Path, root: Optional[Path] = None) -> bool:
    """Whether ``path`` describes itself as a reference by name or location."""

    stem = path.stem.lower()
    if stem.endswith(REFERENCE_STEM_SUFFIXES):
        return True
    parents = path.parent.relative_to(root).parts if root and path.parent.is_relative_to(root) else path.parent.parts
    return any(part.lower() in REFERENCE_DIRS for part in parents)


def select_cases(
    cases: Iterable[TestCase],
    *,
    patterns: Sequence[str] = (),
    flags: Sequence[str] = (),
    skip_flags: Sequence[str] = (),
) -> Iterator[TestCase]:
    """Filter cases by id glob and flag inclusion/exclusion, preserving order."""

    for case in cases:
        if patterns and not any(fnmatch.fnmatchcase(case.id, pattern) for pattern in patterns):
            continue
        if flags and not set(flags) & case.flags:
            continue
        if skip_flags and set(skip_flags) & case.flags:
            continue
        yield case


def _case_id(path: Path, root: Optional[Path]) -> str:
    if root is not None and root.is_dir():
        try:
            return path.relative_to(root).as_posix()
        except ValueError:
            pass
    return path.name
