"""Tests for environment configuration loading."""

from pathlib import Path

import pytest

from wardrobe_gateway import config_loader
from wardrobe_gateway.model_resolution import PRO_MODEL, STANDARD_MODEL

ENV_VARS = [
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "GEMINI_API_KEY",
    "MEDIA_BUCKET",
    "MODEL_STANDARD",
    "STANDARD_ITEM_LIMIT",
    "DEBUG_OUTPUT_DIR",
    "PORT",
    "CORS_ALLOW_ORIGINS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Keep a developer's .env out of the tests
    monkeypatch.setattr(config_loader, "load_dotenv", lambda: False)


def test_defaults():
    config = config_loader.load_config_from_env()
    assert config.supabase_url == ""
    assert config.gemini_api_key is None
    assert config.media_bucket == "media"
    assert config.model_standard == STANDARD_MODEL
    assert config.model_composite == PRO_MODEL
    assert config.standard_item_limit == 2
    assert config.pro_item_limit == 7
    assert config.debug_output_dir is None
    assert config.port == 8765
    assert config.cors_allow_origins == ["*"]


def test_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("GEMINI_API_KEY", "key")
    monkeypatch.setenv("MODEL_STANDARD", "gemini-custom")
    monkeypatch.setenv("STANDARD_ITEM_LIMIT", "3")
    monkeypatch.setenv("DEBUG_OUTPUT_DIR", str(tmp_path))
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://a.example.com, https://b.example.com,")

    config = config_loader.load_config_from_env()
    assert config.supabase_url == "https://example.supabase.co"
    assert config.gemini_api_key == "key"
    assert config.debug_output_dir == Path(tmp_path)
    assert config.port == 9000
    assert config.cors_allow_origins == ["https://a.example.com", "https://b.example.com"]

    models = config.models()
    assert models.standard_model == "gemini-custom"
    assert models.item_limit("gemini-custom") == 3
