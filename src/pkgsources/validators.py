"""
Input validation for source names and content digests.

Source names come from spec files, manifests, and ``git ls-files``; they are
used to build paths inside the project directory and URLs on the blob
store, so they are checked before either happens.
"""

import re

DIGEST_LENGTH = 40

_DIGEST_RE = re.compile(r"^[0-9a-f]{40}$")


# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Source name")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_source_name(name: str) -> tuple[bool, str]:
    """
    Validate a project-relative source file name.

    Args:
        name: The file name to validate

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Cannot be absolute
        - Cannot contain a '..' path segment
        - Cannot have empty path segments (e.g., 'a//b')
    """
    if not name or not name.strip():
        return (
            False,
            format_validation_error("Source name", "cannot be empty"),
        )

    if name.startswith("/"):
        return (
            False,
            format_validation_error(
                "Source name", f"cannot be absolute: {name}"
            ),
        )

    segments = name.split("/")
    if ".." in segments:
        return (
            False,
            format_validation_error(
                "Source name", f"cannot contain '..': {name}"
            ),
        )

    if "" in segments:
        return (
            False,
            format_validation_error(
                "Source name", f"cannot have empty path segments: {name}"
            ),
        )

    return (True, "")


def validate_digest(digest: str) -> tuple[bool, str]:
    """
    Validate a content digest (40 lowercase hex characters).

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not isinstance(digest, str) or not _DIGEST_RE.match(digest):
        return (
            False,
            format_validation_error(
                "Digest",
                f"must be {DIGEST_LENGTH} lowercase hex characters: {digest!r}",
            ),
        )
    return (True, "")
