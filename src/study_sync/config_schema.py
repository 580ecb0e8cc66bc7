"""Unified configuration schema for study_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the document store, sync behaviour, and logging, plus an
adapter that flattens them into the fallbacks accepted by
``config.load_config()``.

Usage:
    from study_sync.config_loader import load_hierarchical_config
    from study_sync.config_schema import build_config, to_fallbacks

    unified = build_config(load_hierarchical_config())
    config = load_config(yaml_fallbacks=to_fallbacks(unified))
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class StoreConfig(BaseModel):
    """Remote document store settings.

    All fields are optional so env vars and CLI args can supply them.
    """

    api_url: str | None = Field(
        default=None, description="Document store API base URL"
    )
    request_timeout: int = Field(
        default=30,
        ge=1,
        le=600,
        description="HTTP read timeout in seconds (1-600)",
    )
    rate_limit_buffer_seconds: int = Field(
        default=30,
        ge=0,
        le=3600,
        description="Seconds added to server reset times (0-3600)",
    )

    model_config = {"frozen": True}


class SyncSection(BaseModel):
    """Where local state lives and how the shared document is tagged."""

    state_file: str | None = Field(
        default=None, description="Local JSON state file"
    )
    document_description: str | None = Field(
        default=None, description="Marker used to find the shared document"
    )
    document_filename: str | None = Field(
        default=None, description="File inside the document holding progress"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``text`` or ``json``.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: str = Field(default="text", pattern="^(text|json)$")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level configuration.  ``UnifiedConfig()`` is always valid."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    sync: SyncSection = Field(default_factory=SyncSection)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the merged YAML dict.

    Missing sections get defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def to_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten the ``store`` and ``sync`` sections for ``load_config()``.

    ``None`` values are dropped so they never mask built-in defaults.
    """
    merged = {
        **unified.store.model_dump(),
        **unified.sync.model_dump(),
    }
    return {k: v for k, v in merged.items() if v is not None}
