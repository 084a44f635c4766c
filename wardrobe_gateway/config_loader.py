"""Configuration loader for the AI job gateway - loads from environment variables."""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .app import GatewayConfig
from .gemini_client import DEFAULT_BASE_URL
from .model_resolution import PRO_MODEL, STANDARD_MODEL, TEXT_MODEL


def _split_origins(value: str) -> List[str]:
    origins = [origin.strip() for origin in value.split(",") if origin.strip()]
    return origins or ["*"]


def _optional_path(value: Optional[str]) -> Optional[Path]:
    return Path(value) if value else None


def load_config_from_env() -> GatewayConfig:
    """
    Load GatewayConfig from environment variables.

    Loads .env file if present and reads configuration values.

    Environment Variables:
        SUPABASE_URL: Supabase project URL
        SUPABASE_SERVICE_ROLE_KEY: Service role key for REST, Auth and Storage
        GEMINI_API_KEY: Gemini API key (model calls fail without it)
        GEMINI_BASE_URL: Gemini API base URL
        MEDIA_BUCKET: Storage bucket for images (default: media)
        REQUEST_TIMEOUT: Supabase request timeout in seconds (default: 30)
        GEMINI_TIMEOUT: Model call timeout in seconds (default: 120)
        SIGNED_URL_TTL_SECONDS: Signed download URL lifetime (default: 60)
        MODEL_STANDARD, MODEL_PRO, MODEL_TEXT, MODEL_COMPOSITE: Model names
        STANDARD_ITEM_LIMIT: Items per call for standard models (default: 2)
        PRO_ITEM_LIMIT: Items per call for pro models (default: 7)
        OPTIMIZE_MAX_DIM: Longest side after optimization (default: 1024)
        OPTIMIZE_JPEG_QUALITY: JPEG quality after optimization (default: 80)
        DEBUG_OUTPUT_DIR: Directory receiving a copy of every uploaded image
        HOST: Server host (default: 0.0.0.0)
        PORT: Server port (default: 8765)
        CORS_ALLOW_ORIGINS: Comma separated allowed origins (default: *)

    Returns:
        GatewayConfig object with values from environment
    """
    # Load .env file if it exists
    load_dotenv()

    return GatewayConfig(
        supabase_url=os.getenv("SUPABASE_URL", ""),
        supabase_service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""),
        gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
        gemini_base_url=os.getenv("GEMINI_BASE_URL", DEFAULT_BASE_URL),
        media_bucket=os.getenv("MEDIA_BUCKET", "media"),
        request_timeout=float(os.getenv("REQUEST_TIMEOUT", "30.0")),
        gemini_timeout=float(os.getenv("GEMINI_TIMEOUT", "120.0")),
        signed_url_ttl=int(os.getenv("SIGNED_URL_TTL_SECONDS", "60")),
        # Model settings
        model_standard=os.getenv("MODEL_STANDARD", STANDARD_MODEL),
        model_pro=os.getenv("MODEL_PRO", PRO_MODEL),
        model_text=os.getenv("MODEL_TEXT", TEXT_MODEL),
        model_composite=os.getenv("MODEL_COMPOSITE", PRO_MODEL),
        standard_item_limit=int(os.getenv("STANDARD_ITEM_LIMIT", "2")),
        pro_item_limit=int(os.getenv("PRO_ITEM_LIMIT", "7")),
        # Optimization settings
        optimize_max_dim=int(os.getenv("OPTIMIZE_MAX_DIM", "1024")),
        optimize_jpeg_quality=int(os.getenv("OPTIMIZE_JPEG_QUALITY", "80")),
        debug_output_dir=_optional_path(os.getenv("DEBUG_OUTPUT_DIR")),
        # Server settings
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8765")),
        cors_allow_origins=_split_origins(os.getenv("CORS_ALLOW_ORIGINS", "*")),
    )
