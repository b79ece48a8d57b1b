"""
NFTickr - Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- Opened OpenSea and Gemini clients pointed at fixed test URLs
- Async test support via pytest-asyncio

All HTTP traffic must be mocked with respx; payload builders live in
factories.py.
"""

from __future__ import annotations

import random
from typing import AsyncGenerator

import pytest_asyncio

from factories import (
    FIXED_TODAY,
    GEMINI_TEXT_MODEL,
    GEMINI_URL,
    GEMINI_VISION_MODEL,
    OPENSEA_URL,
)
from nftickr.pipeline.gemini import GeminiClient
from nftickr.pipeline.opensea import OpenSeaClient


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

pytest_plugins = ("pytest_asyncio",)


# ---------------------------------------------------------------------------
# Client fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def opensea_client() -> AsyncGenerator[OpenSeaClient, None]:
    """OpenSea client pointed at OPENSEA_URL."""
    async with OpenSeaClient(api_key="test-opensea-key", base_url=OPENSEA_URL) as client:
        yield client


@pytest_asyncio.fixture
async def gemini_client() -> AsyncGenerator[GeminiClient, None]:
    """Gemini client with a seeded fallback source and a fixed 'today'."""
    async with GeminiClient(
        api_key="test-gemini-key",
        base_url=GEMINI_URL,
        text_model=GEMINI_TEXT_MODEL,
        vision_model=GEMINI_VISION_MODEL,
        rng=random.Random(42),
        today=FIXED_TODAY,
    ) as client:
        yield client
