"""Content classification and hashing for source files.

Decides whether a source file belongs in git (text) or in the blob store
(binary), and computes the SHA-1 digest that addresses it in the store.
Classification looks at file bytes only, never at the file extension.
"""

from __future__ import annotations

import hashlib
from enum import Enum
from pathlib import Path

from charset_normalizer import from_bytes

from pkgsources.errors import SourceNotFound, SourceReadError

# Bytes inspected when classifying a file.
SAMPLE_SIZE = 8192
# Fraction of suspicious bytes above which a sample is binary.
BINARY_RATIO = 0.30

_CHUNK_SIZE = 65536

# Control bytes that still occur in ordinary text (BS, TAB, LF, FF, CR, ESC).
_TEXT_CONTROLS = frozenset({8, 9, 10, 12, 13, 27})


class FileKind(str, Enum):
    """Where a source file belongs: git (text) or the blob store (binary)."""

    TEXT = "text"
    BINARY = "binary"


# =============================================================================
# Classification
# =============================================================================


def _read_sample(path: Path) -> bytes:
    if not path.is_file():
        raise SourceNotFound(path.name)
    try:
        with open(path, "rb") as fh:
            return fh.read(SAMPLE_SIZE)
    except OSError as exc:
        raise SourceReadError(path.name, str(exc)) from exc


def _decodes_as_utf8(sample: bytes, truncated: bool) -> bool:
    try:
        sample.decode("utf-8")
    except UnicodeDecodeError as exc:
        # A multi-byte sequence cut off by the sample boundary is fine.
        return truncated and exc.start >= len(sample) - 3
    return True


def classify_bytes(sample: bytes, truncated: bool = False) -> FileKind:
    """Classify a byte sample as text or binary.

    Rules, in order:

    1. Empty samples are text.
    2. Any NUL byte makes the sample binary.
    3. Bytes >= 0x80 must decode as UTF-8 or as some encoding that
       charset-normalizer can identify; otherwise the sample is binary.
    4. If more than ``BINARY_RATIO`` of the bytes are control characters
       that do not occur in text, the sample is binary.

    Args:
        sample: Leading bytes of the file.
        truncated: True when the file is longer than the sample.
    """
    if not sample:
        return FileKind.TEXT
    if b"\x00" in sample:
        return FileKind.BINARY

    if any(b >= 0x80 for b in sample):
        if not _decodes_as_utf8(sample, truncated):
            if from_bytes(sample).best() is None:
                return FileKind.BINARY

    odd = sum(
        1
        for b in sample
        if (b < 0x20 and b not in _TEXT_CONTROLS) or b == 0x7F
    )
    if odd / len(sample) > BINARY_RATIO:
        return FileKind.BINARY
    return FileKind.TEXT


def classify(path: Path) -> FileKind:
    """Classify the file at *path* as text or binary.

    Raises:
        SourceNotFound: If the file does not exist.
        SourceReadError: If the file cannot be read.
    """
    sample = _read_sample(path)
    truncated = len(sample) == SAMPLE_SIZE
    return classify_bytes(sample, truncated=truncated)


# =============================================================================
# Hashing
# =============================================================================


def digest(path: Path) -> str:
    """Return the SHA-1 hex digest of the file at *path*.

    The file is streamed in chunks so large archives are never held in
    memory.

    Raises:
        SourceNotFound: If the file does not exist.
        SourceReadError: If reading fails part-way.
    """
    if not path.is_file():
        raise SourceNotFound(path.name)
    sha = hashlib.sha1()
    try:
        with open(path, "rb") as fh:
            for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
                sha.update(chunk)
    except OSError as exc:
        raise SourceReadError(path.name, str(exc)) from exc
    return sha.hexdigest()
