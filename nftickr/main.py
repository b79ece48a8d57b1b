"""
NFTickr - Application Entrypoint

Configures structlog, opens the shared OpenSea and Gemini clients once, and
runs the Telegram chat bot until interrupted.

Run via:
    python -m nftickr.main
"""

from __future__ import annotations

import asyncio
import logging
import sys

import structlog

from nftickr import __version__
from nftickr.analysis import NFTAnalyzer
from nftickr.bot.telegram import NFTChatBot
from nftickr.config import rate_limits, settings, validate_api_keys
from nftickr.pipeline.gemini import GeminiClient
from nftickr.pipeline.opensea import OpenSeaClient


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def configure_logging(log_level: str = "INFO") -> None:
    """
    Set up structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    # Configure stdlib logging first (for third-party libraries)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )
    # httpx logs full request URLs at INFO, and Gemini URLs carry the API key.
    logging.getLogger("httpx").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Application Startup
# ---------------------------------------------------------------------------


async def run_bot(analyzer: NFTAnalyzer, opensea: OpenSeaClient, gemini: GeminiClient) -> None:
    """Poll Telegram for updates until cancelled."""
    logger = structlog.get_logger(__name__)

    application = NFTChatBot(analyzer, opensea, gemini).build_application(
        settings.TELEGRAM_BOT_TOKEN
    )

    async with application:
        await application.start()
        await application.updater.start_polling(allowed_updates=["message"])
        logger.info("telegram_bot_polling")
        try:
            await asyncio.Event().wait()
        finally:
            await application.updater.stop()
            await application.stop()


async def main() -> None:
    """
    Application entrypoint.

    Execution order:
    1. Configure logging (structlog JSON)
    2. Report missing API keys and the advisory rate limits
    3. Open the shared upstream clients
    4. Run the Telegram bot until shutdown
    """
    configure_logging(log_level=settings.LOG_LEVEL)
    logger = structlog.get_logger(__name__)

    logger.info("nftickr_startup_begin", version=__version__)

    validate_api_keys()
    logger.info("rate_limits_advisory", **rate_limits())

    if not settings.TELEGRAM_BOT_TOKEN:
        logger.warning(
            "telegram_bot_disabled",
            reason="TELEGRAM_BOT_TOKEN is empty or not set",
        )
        return

    async with OpenSeaClient() as opensea, GeminiClient() as gemini:
        analyzer = NFTAnalyzer(opensea, gemini)
        logger.info("nftickr_startup_complete")

        try:
            await run_bot(analyzer, opensea, gemini)
        except asyncio.CancelledError:
            logger.info("nftickr_interrupted_by_user")
        except Exception as e:
            logger.error(
                "nftickr_fatal_error",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise
        finally:
            logger.info("nftickr_shutdown_complete")


# ---------------------------------------------------------------------------
# CLI Entry
# ---------------------------------------------------------------------------


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
