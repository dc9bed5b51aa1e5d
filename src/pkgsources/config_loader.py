"""
Config file discovery and loading for pkgsources.

Provides convention-based config file discovery, env var interpolation,
and a shallow merge where the project-level file wins over global ones.

Usage:
    from pkgsources.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".pkgsources"

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


# ---------------------------------------------------------------------------
# Env var interpolation
# ---------------------------------------------------------------------------


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    * ``${VAR}`` becomes the value of VAR, or ``""`` when unset.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    * A ``${`` with no closing ``}`` is left untouched.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    """Walk a nested dict/list and interpolate env vars in all strings."""
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def discover_config_files(project_dir: Path | None = None) -> list[Path]:
    """Return existing config file paths in precedence order (highest first).

    Search order:
        1. ``PKGSOURCES_CONFIG`` env var (explicit single path)
        2. ``.pkgsources/config.yml`` in the project directory
        3. ``.pkgsources/config.yaml`` in the project directory
        4. ``~/.config/pkgsources/config.yml`` (XDG global)

    Only paths that exist on disk are returned.
    """
    candidates: list[Path] = []

    env_path = os.environ.get("PKGSOURCES_CONFIG")
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    base = project_dir or Path.cwd()
    candidates.append(base / CONFIG_DIR_NAME / "config.yml")
    candidates.append(base / CONFIG_DIR_NAME / "config.yaml")

    candidates.append(
        Path.home() / ".config" / "pkgsources" / "config.yml"
    )

    return [p for p in candidates if p.exists()]


_STARTER_CONFIG = """\
# pkgsources configuration
#
# Store settings can also be set via environment variables:
#   PKGSOURCES_STORE_URL, PKGSOURCES_USERNAME, PKGSOURCES_PASSWORD,
#   PKGSOURCES_INSECURE, PKGSOURCES_TIMEOUT
#
# store:
#   url: https://sources.example.com/repo/pkgs
#   username: ${USER}
#   password: ${PKGSOURCES_PASSWORD}
#   insecure: false
#   timeout: 30
#
# sources:
#   manifest: sources.json
#   unknown_policy: enqueue
#   keep:
#     - .gitignore
#
# logging:
#   level: INFO
#   file: null
"""


def ensure_config(project_dir: Path | None = None) -> Path:
    """Ensure a config file exists, creating a starter one if needed.

    If any config file is already discoverable its path is returned
    unchanged. Otherwise ``.pkgsources/config.yml`` is written under
    *project_dir* (default: CWD) with every section commented out.

    Returns:
        Path to the config file (existing or newly created).
    """
    existing = discover_config_files(project_dir)
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = (project_dir or Path.cwd()) / CONFIG_DIR_NAME / "config.yml"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)

    return config_path


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def load_hierarchical_config(
    project_dir: Path | None = None,
) -> dict[str, Any]:
    """Load and merge all discovered config files.

    Files are loaded from lowest precedence to highest; each file's
    top-level keys **replace** (not deep-merge) those from earlier files.
    Env var interpolation is applied after the merge.

    Returns an empty dict when no config files exist (zero-config).

    Raises:
        yaml.YAMLError: If a config file is not valid YAML.
    """
    paths = discover_config_files(project_dir)

    if not paths:
        logger.debug("No config files found, using zero-config defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            with open(path, encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except yaml.YAMLError:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
