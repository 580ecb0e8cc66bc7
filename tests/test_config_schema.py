"""Tests for config_schema.py: UnifiedConfig and fallback flattening."""

import pytest
from pydantic import ValidationError

from study_sync.config_schema import UnifiedConfig, build_config, to_fallbacks


def test_empty_config_is_valid():
    unified = build_config({})

    assert unified == UnifiedConfig()
    assert unified.logging.level == "INFO"
    assert unified.store.rate_limit_buffer_seconds == 30


def test_sections_parsed():
    unified = build_config(
        {
            "store": {"api_url": "https://x", "request_timeout": 5},
            "sync": {"state_file": "/tmp/s.json"},
            "logging": {"format": "json", "file": "/tmp/log"},
        }
    )

    assert unified.store.request_timeout == 5
    assert unified.sync.state_file == "/tmp/s.json"
    assert unified.logging.format == "json"


def test_out_of_range_rejected():
    with pytest.raises(ValidationError):
        build_config({"store": {"rate_limit_buffer_seconds": 99999}})


def test_bad_log_format_rejected():
    with pytest.raises(ValidationError):
        build_config({"logging": {"format": "xml"}})


def test_to_fallbacks_drops_none():
    fallbacks = to_fallbacks(
        build_config({"store": {"api_url": "https://x"}})
    )

    assert fallbacks["api_url"] == "https://x"
    assert fallbacks["request_timeout"] == 30
    assert "state_file" not in fallbacks
    assert fallbacks["debug"] is False
