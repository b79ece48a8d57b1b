"""
NFTickr - Configuration & Constants

API keys, upstream base URLs, model names and advisory rate limits. Values
load from environment variables (or a local .env file) with fallback defaults.
The settings object is read-only after import and shared by every client.

Usage:
    from nftickr.config import settings
"""

from __future__ import annotations

import structlog
from pydantic_settings import BaseSettings

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Central configuration for NFTickr.

    Loads from environment variables with fallback defaults. API keys have
    no defaults; a missing key is reported by validate_api_keys().
    """

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # -----------------------------------------------------------------------
    # API Keys
    # -----------------------------------------------------------------------
    OPENSEA_API_KEY: str = ""
    GEMINI_API_KEY: str = ""
    TELEGRAM_BOT_TOKEN: str = ""

    # -----------------------------------------------------------------------
    # OpenSea (marketplace data, v1 REST API)
    # -----------------------------------------------------------------------
    OPENSEA_BASE_URL: str = "https://api.opensea.io/api/v1"
    OPENSEA_USER_AGENT: str = "NFTickr/1.0"
    OPENSEA_SEARCH_LIMIT: int = 20
    OPENSEA_HISTORY_LIMIT: int = 20

    # -----------------------------------------------------------------------
    # Gemini (generative text + vision)
    # -----------------------------------------------------------------------
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_TEXT_MODEL: str = "gemini-pro"
    GEMINI_VISION_MODEL: str = "gemini-pro-vision"

    # Transport budget only; no per-call timeouts beyond this.
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # -----------------------------------------------------------------------
    # Advisory rate limits (logged at startup, never enforced)
    # -----------------------------------------------------------------------
    OPENSEA_REQUESTS_PER_SECOND: int = 4
    OPENSEA_REQUESTS_PER_MINUTE: int = 240
    GEMINI_REQUESTS_PER_SECOND: int = 2
    GEMINI_REQUESTS_PER_MINUTE: int = 60

    # -----------------------------------------------------------------------
    # Logging
    # -----------------------------------------------------------------------
    LOG_LEVEL: str = "INFO"


# Well-known collections, handy for manual testing and bot examples.
POPULAR_COLLECTIONS: list[dict[str, str]] = [
    {
        "name": "Bored Ape Yacht Club",
        "slug": "boredapeyachtclub",
        "contract_address": "0xbc4ca0eda7647a8ab7c2061c2e118a18a936f13d",
    },
    {
        "name": "CryptoPunks",
        "slug": "cryptopunks",
        "contract_address": "0xb47e3cd837ddf8e4c57f05d70ab865de6e193bbb",
    },
    {
        "name": "Mutant Ape Yacht Club",
        "slug": "mutant-ape-yacht-club",
        "contract_address": "0x60e4d786628fea6478f785a6d7e704777c86a7c6",
    },
    {
        "name": "Azuki",
        "slug": "azuki",
        "contract_address": "0xed5af388653567af2f388e6224dc7c4b3241c544",
    },
]


def rate_limits(config: Settings | None = None) -> dict[str, dict[str, int]]:
    """Advisory per-service request budgets, keyed by service name."""
    config = config or settings
    return {
        "opensea": {
            "requests_per_second": config.OPENSEA_REQUESTS_PER_SECOND,
            "requests_per_minute": config.OPENSEA_REQUESTS_PER_MINUTE,
        },
        "gemini": {
            "requests_per_second": config.GEMINI_REQUESTS_PER_SECOND,
            "requests_per_minute": config.GEMINI_REQUESTS_PER_MINUTE,
        },
    }


def validate_api_keys(config: Settings | None = None) -> list[str]:
    """
    Return the names of missing upstream API keys.

    Logs a warning when anything is missing. Never raises; the clients will
    surface an UnauthorizedError on first use instead.
    """
    config = config or settings
    missing: list[str] = []

    if not config.OPENSEA_API_KEY:
        missing.append("OPENSEA_API_KEY")
    if not config.GEMINI_API_KEY:
        missing.append("GEMINI_API_KEY")

    if missing:
        logger.warning("config_api_keys_missing", missing=missing)

    return missing


# Singleton instance
settings = Settings()
