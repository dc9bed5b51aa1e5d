"""Minimal spec file reader for declared sources.

Only what the reconciliation engine needs is extracted: the ordered list
of ``SourceN:`` and ``PatchN:`` tags, with simple macro expansion
(``%{name}``, ``%{version}``, ``%{release}`` and ``%define``/``%global``
definitions). Conditionals and shell expansions are not evaluated.
"""

from __future__ import annotations

import logging
import posixpath
import re
from pathlib import Path
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

_HEADER_RE = re.compile(r"^(Name|Version|Release)\s*:\s*(\S+)", re.IGNORECASE)
_DEFINE_RE = re.compile(r"^%(?:define|global)\s+(\w+)\s+(.*?)\s*$")
_SOURCE_RE = re.compile(
    r"^(?:Source|Patch)\d*\s*:\s*(\S+)", re.IGNORECASE
)
_MACRO_RE = re.compile(r"%\{\??(\w+)\}")

# Nested definitions are expanded at most this many times.
_MAX_EXPANSION_DEPTH = 10


def expand_macros(value: str, macros: dict[str, str]) -> str:
    """Expand ``%{name}`` references in *value*; unknown macros stay as-is."""

    def _replace(match: re.Match) -> str:
        return macros.get(match.group(1), match.group(0))

    for _ in range(_MAX_EXPANSION_DEPTH):
        expanded = _MACRO_RE.sub(_replace, value)
        if expanded == value:
            break
        value = expanded
    return value


def source_name(value: str) -> tuple[str, str | None]:
    """Split an expanded Source/Patch value into ``(file name, url)``.

    A plain file name has no URL. For a URL the file name is the last path
    component, or the fragment when it starts with ``/`` (the
    ``https://host/archive/v1.tar.gz#/pkg-1.tar.gz`` convention).
    """
    if "://" not in value:
        return value, None
    parsed = urlparse(value)
    if parsed.fragment.startswith("/"):
        return posixpath.basename(parsed.fragment), value
    return posixpath.basename(parsed.path), value


def parse_spec_sources(text: str) -> list[tuple[str, str | None]]:
    """Return ``(name, url)`` pairs for each Source/Patch tag in *text*."""
    macros: dict[str, str] = {}
    sources: list[tuple[str, str | None]] = []

    for raw_line in text.splitlines():
        line = raw_line.strip()

        match = _DEFINE_RE.match(line)
        if match:
            macros[match.group(1)] = match.group(2)
            continue

        match = _HEADER_RE.match(line)
        if match:
            macros[match.group(1).lower()] = expand_macros(
                match.group(2), macros
            )
            continue

        match = _SOURCE_RE.match(line)
        if match:
            value = expand_macros(match.group(1), macros)
            if "%{" in value:
                logger.warning("Unexpanded macro in source: %s", value)
            sources.append(source_name(value))

    return sources


def read_spec_sources(path: Path) -> list[tuple[str, str | None]]:
    """Read the spec file at *path* and return its declared sources.

    Raises:
        OSError: If the spec file cannot be read.
    """
    text = path.read_text(encoding="utf-8", errors="replace")
    sources = parse_spec_sources(text)
    logger.debug("%s declares %d sources", path.name, len(sources))
    return sources


def find_spec_file(project_dir: Path) -> Path | None:
    """Return the single ``*.spec`` file in *project_dir*, if exactly one exists."""
    specs = sorted(project_dir.glob("*.spec"))
    if len(specs) == 1:
        return specs[0]
    if len(specs) > 1:
        logger.warning(
            "Several spec files in %s, pass --spec to choose one",
            project_dir,
        )
    return None
