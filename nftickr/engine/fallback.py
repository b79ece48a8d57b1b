"""
NFTickr - Deterministic Prediction Fallback

Synthesizes monthly price points when the model output cannot be used. This
is the terminal branch of the prediction pipeline and must never fail.

For month offset i = 1..5:
    volatility  = uniform in [-15%, +15%]
    trend       = +5%/month with 50% probability, else -3%/month
    price       = max(current * (1 + trend * i + volatility), current * 0.5)
    confidence  = max(0.6, 0.9 - 0.05 * i)

Randomness comes from an injected random.Random so a seeded source yields
exactly reproducible output.
"""

from __future__ import annotations

import calendar
import random
from datetime import date

import structlog

from nftickr.models import PricePoint

logger = structlog.get_logger(__name__)

FALLBACK_MONTHS = 5
FALLBACK_VOLATILITY = 0.3          # total width, i.e. +/-15%
FALLBACK_TREND_UP = 0.05
FALLBACK_TREND_DOWN = -0.03
FALLBACK_PRICE_FLOOR_RATIO = 0.5
FALLBACK_CONFIDENCE_START = 0.9
FALLBACK_CONFIDENCE_STEP = 0.05
FALLBACK_CONFIDENCE_FLOOR = 0.6

FALLBACK_FACTORS: tuple[str, ...] = (
    "Historical trend analysis",
    "Collection performance",
    "Market sentiment",
    "Trait rarity assessment",
)


def add_months(start: date, months: int) -> date:
    """Shift `start` forward by whole months, clamping the day to the month end."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def fallback_confidence(month_offset: int) -> float:
    """Non-increasing in month_offset, floored at 0.6."""
    value = FALLBACK_CONFIDENCE_START - FALLBACK_CONFIDENCE_STEP * month_offset
    return round(max(FALLBACK_CONFIDENCE_FLOOR, value), 2)


def generate_fallback_predictions(
    current_price: float,
    rng: random.Random | None = None,
    today: date | None = None,
) -> list[PricePoint]:
    """
    Build FALLBACK_MONTHS forward-looking monthly points from current_price.

    Args:
        current_price: Latest known price; negative values are treated as 0.
        rng: Random source (default: a fresh, unseeded random.Random).
        today: Anchor date for the monthly offsets (default: date.today()).

    Returns:
        Chronological list of exactly FALLBACK_MONTHS PricePoints.
    """
    rng = rng or random.Random()
    today = today or date.today()
    base = max(0.0, float(current_price))
    floor = base * FALLBACK_PRICE_FLOOR_RATIO

    points: list[PricePoint] = []
    for i in range(1, FALLBACK_MONTHS + 1):
        volatility = (rng.random() - 0.5) * FALLBACK_VOLATILITY
        trend = FALLBACK_TREND_UP if rng.random() > 0.5 else FALLBACK_TREND_DOWN
        price = base * (1 + trend * i + volatility)

        points.append(
            PricePoint(
                date=add_months(today, i),
                price=max(price, floor),
                confidence=fallback_confidence(i),
                factors=list(FALLBACK_FACTORS),
            )
        )

    logger.info(
        "fallback_predictions_generated",
        current_price=base,
        count=len(points),
        source="fallback",
    )
    return points
