"""Runtime configuration for the progress sync engine.

Reads document-store settings from CLI args, environment variables,
.env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    STUDY_SYNC_API_URL: Document store API base URL (default: https://api.github.com)
    STUDY_SYNC_STATE_FILE: Local state file (default: ~/.study_sync/state.json)
    STUDY_SYNC_RATE_LIMIT_BUFFER: Seconds added to rate-limit reset times (default: 30)
    STUDY_SYNC_TIMEOUT: HTTP read timeout in seconds (default: 30)
    STUDY_SYNC_DEBUG: Enable debug logging (optional, default: false)

The credential itself is not part of ``Config``: it lives in the local
state store once ``setup`` has validated it.
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_STATE_FILE = "~/.study_sync/state.json"
DEFAULT_DESCRIPTION = "Study Progress Tracker - Progress Data"
DEFAULT_FILENAME = "study-progress.json"


@dataclass
class Config:
    api_url: str = DEFAULT_API_URL
    state_file: str = DEFAULT_STATE_FILE
    document_description: str = DEFAULT_DESCRIPTION
    document_filename: str = DEFAULT_FILENAME
    rate_limit_buffer_seconds: int = 30
    request_timeout: int = 30
    debug: bool = False


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the API URL is malformed or a value is out of range.
    """
    config.api_url = config.api_url.strip()

    if not config.api_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid API URL '{config.api_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.api_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid API URL '{config.api_url}': URL must include a hostname"
        )

    config.api_url = config.api_url.removesuffix("/")

    if not config.document_filename.strip():
        raise ValueError("Document filename cannot be empty")

    if not config.document_description.strip():
        raise ValueError("Document description cannot be empty")

    if not (0 <= config.rate_limit_buffer_seconds <= 3600):
        raise ValueError(
            f"Invalid rate limit buffer {config.rate_limit_buffer_seconds}: "
            "must be between 0 and 3600 seconds"
        )

    if not (1 <= config.request_timeout <= 600):
        raise ValueError(
            f"Invalid request timeout {config.request_timeout}: "
            "must be between 1 and 600 seconds"
        )

    if config.api_url.startswith("http://"):
        logger.warning(
            "WARNING: API URL is not HTTPS; the credential is sent in clear text."
        )


def _int_setting(
    env_key: str,
    fallbacks: dict,
    fallback_key: str,
    default: int,
) -> int:
    """Resolve an integer from env var > YAML fallback > default."""
    raw = os.getenv(env_key)
    if raw is not None:
        try:
            return int(raw)
        except ValueError:
            raise ValueError(
                f"Invalid {env_key} '{raw}': must be a whole number"
            ) from None
    if fallback_key in fallbacks:
        return int(fallbacks[fallback_key])
    return default


def load_config(
    api_url: str | None = None,
    state_file: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        api_url: Override API base URL.
        state_file: Override local state file path.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flat dict of values from the YAML ``store`` and
            ``sync`` sections.  Used when CLI arg and env var are unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value is malformed or out of range.
    """
    fb = yaml_fallbacks or {}

    final_url = (
        api_url
        or os.getenv("STUDY_SYNC_API_URL")
        or fb.get("api_url")
        or DEFAULT_API_URL
    )
    final_state_file = (
        state_file
        or os.getenv("STUDY_SYNC_STATE_FILE")
        or fb.get("state_file")
        or DEFAULT_STATE_FILE
    )

    if debug:
        final_debug = True
    else:
        env_debug = os.getenv("STUDY_SYNC_DEBUG")
        if env_debug is not None:
            final_debug = env_debug.lower() in ("true", "1", "yes", "on")
        else:
            final_debug = bool(fb.get("debug", False))

    config = Config(
        api_url=final_url,
        state_file=final_state_file,
        document_description=fb.get("document_description")
        or DEFAULT_DESCRIPTION,
        document_filename=fb.get("document_filename") or DEFAULT_FILENAME,
        rate_limit_buffer_seconds=_int_setting(
            "STUDY_SYNC_RATE_LIMIT_BUFFER",
            fb,
            "rate_limit_buffer_seconds",
            30,
        ),
        request_timeout=_int_setting(
            "STUDY_SYNC_TIMEOUT", fb, "request_timeout", 30
        ),
        debug=final_debug,
    )

    validate_config(config)

    return config
