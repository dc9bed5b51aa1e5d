"""Runtime configuration for the pkgsources client.

Reads blob store settings from CLI args, environment variables, .env files,
and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    PKGSOURCES_STORE_URL: Blob store base URL (required)
    PKGSOURCES_USERNAME: Store username (optional)
    PKGSOURCES_PASSWORD: Store password (optional)
    PKGSOURCES_INSECURE: Skip SSL verification (optional, default: false)
    PKGSOURCES_TIMEOUT: Request timeout in seconds (optional, default: 30)
    PKGSOURCES_MANIFEST: Manifest file name (optional, default: sources.json)
    PKGSOURCES_UNKNOWN_POLICY: What to do when an existence check fails,
        "enqueue" or "skip" (optional, default: enqueue)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_MANIFEST_NAME = "sources.json"
UNKNOWN_POLICIES = ("enqueue", "skip")


@dataclass
class Config:
    store_url: str
    username: str | None = None
    password: str | None = None
    insecure: bool = False
    debug: bool = False
    timeout: float = 30.0
    manifest_name: str = DEFAULT_MANIFEST_NAME
    unknown_policy: str = "enqueue"


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the URL, policy, or manifest name is invalid.
    """
    config.store_url = config.store_url.strip()

    if not config.store_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid store URL '{config.store_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.store_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid store URL '{config.store_url}': URL must include a hostname"
        )

    config.store_url = config.store_url.rstrip("/")

    if config.unknown_policy not in UNKNOWN_POLICIES:
        raise ValueError(
            f"Invalid unknown policy '{config.unknown_policy}': "
            f"must be one of {', '.join(UNKNOWN_POLICIES)}"
        )

    if not config.manifest_name.strip():
        raise ValueError("Manifest name cannot be empty.")

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_config(
    store_url: str | None = None,
    username: str | None = None,
    password: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    manifest_name: str | None = None,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        store_url: Override store URL.
        username: Override store username.
        password: Override store password.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        manifest_name: Override manifest file name.
        yaml_fallbacks: Flat dict of values from the YAML config file.
            Used as fallback when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If the store URL is missing or any value is invalid.
    """
    fb = yaml_fallbacks or {}

    final_url = (
        store_url or os.getenv("PKGSOURCES_STORE_URL") or fb.get("url")
    )
    if not final_url:
        raise ValueError(
            "Store URL not found. Set PKGSOURCES_STORE_URL environment variable, "
            "pass --store-url, or add 'store.url' to config.yml."
        )

    final_username = (
        username or os.getenv("PKGSOURCES_USERNAME") or fb.get("username")
    )
    final_password = (
        password or os.getenv("PKGSOURCES_PASSWORD") or fb.get("password")
    )

    if insecure:
        final_insecure = True
    else:
        env_insecure = _get_bool_env("PKGSOURCES_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("PKGSOURCES_DEBUG")
        final_debug = bool(env_debug) if env_debug is not None else False

    timeout_raw = os.getenv("PKGSOURCES_TIMEOUT")
    if timeout_raw is not None:
        try:
            final_timeout = float(timeout_raw)
        except ValueError:
            raise ValueError(
                f"Invalid PKGSOURCES_TIMEOUT '{timeout_raw}': must be a number between 1 and 600"
            ) from None
        if not (1 <= final_timeout <= 600):
            raise ValueError(
                f"Invalid PKGSOURCES_TIMEOUT '{timeout_raw}': must be a number between 1 and 600"
            )
    elif "timeout" in fb:
        final_timeout = float(fb["timeout"])
    else:
        final_timeout = 30.0

    final_manifest = (
        manifest_name
        or os.getenv("PKGSOURCES_MANIFEST")
        or fb.get("manifest")
        or DEFAULT_MANIFEST_NAME
    )

    final_policy = (
        os.getenv("PKGSOURCES_UNKNOWN_POLICY")
        or fb.get("unknown_policy")
        or "enqueue"
    ).lower()

    config = Config(
        store_url=final_url,
        username=final_username.strip() if final_username else None,
        password=final_password if final_password else None,
        insecure=final_insecure,
        debug=final_debug,
        timeout=final_timeout,
        manifest_name=final_manifest.strip(),
        unknown_policy=final_policy,
    )

    validate_config(config)

    return config
