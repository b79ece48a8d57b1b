"""
NFTickr - Gemini API Client (generative text + vision)

Two model-backed operations:

- generate_price_predictions: prompt -> free-form text -> JSON extraction ->
  PricePoints, with the deterministic fallback as the terminal branch.
- analyze_image: image + instruction -> JSON extraction -> ImageAnalysis, with
  a fixed fallback record.

Decode failures never leave this module. Transport, auth and rate-limit
failures do. No retries.
"""

from __future__ import annotations

import json
import random
from datetime import date
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from nftickr.config import settings
from nftickr.engine.fallback import generate_fallback_predictions
from nftickr.engine.json_extract import extract_json_object
from nftickr.errors import (
    DecodeError,
    UpstreamError,
    network_error,
    raise_for_upstream,
)
from nftickr.models import ImageAnalysis, PredictionRequest, PricePoint

logger = structlog.get_logger(__name__)

SERVICE_NAME = "Gemini"

# Fixed generation parameters for price prediction.
PREDICTION_GENERATION_CONFIG: dict[str, Any] = {
    "temperature": 0.7,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 2048,
}

IMAGE_ANALYSIS_INSTRUCTION = (
    "Analyze this NFT image and identify its characteristics, traits, and possible "
    "collection. Provide a JSON response with name, traits, and description."
)

FALLBACK_IMAGE_NAME = "Unknown NFT"
FALLBACK_IMAGE_TRAITS: tuple[str, ...] = ("Digital Art", "Collectible")
FALLBACK_IMAGE_DESCRIPTION = "NFT analysis from uploaded image"


def fallback_image_analysis() -> ImageAnalysis:
    return ImageAnalysis(
        name=FALLBACK_IMAGE_NAME,
        traits=list(FALLBACK_IMAGE_TRAITS),
        description=FALLBACK_IMAGE_DESCRIPTION,
    )


# ---------------------------------------------------------------------------
# Pydantic Response Models
# ---------------------------------------------------------------------------


class GeminiPart(BaseModel):
    text: str | None = None


class GeminiContent(BaseModel):
    parts: list[GeminiPart] = Field(default_factory=list)


class GeminiCandidate(BaseModel):
    content: GeminiContent | None = None


class GeminiResponse(BaseModel):
    """Envelope of :generateContent: `{candidates: [{content: {parts: [{text}]}}]}`."""

    candidates: list[GeminiCandidate] = Field(default_factory=list)

    def first_text(self) -> str:
        """Text of the first part of the first candidate, or DecodeError."""
        if not self.candidates or self.candidates[0].content is None:
            raise DecodeError("Model response has no candidates.")
        parts = self.candidates[0].content.parts
        if not parts or parts[0].text is None:
            raise DecodeError("Model response has no text part.")
        return parts[0].text


# ---------------------------------------------------------------------------
# Prompt building & parsing
# ---------------------------------------------------------------------------


def build_prediction_prompt(request: PredictionRequest) -> str:
    """Natural-language prompt embedding the NFT data and the output contract."""
    historical = json.dumps(
        [{"date": p.date.isoformat(), "price": p.price} for p in request.historical_prices]
    )
    stats = json.dumps(request.collection_stats.model_dump())
    traits = json.dumps(
        [{"trait_type": t.trait_type, "value": t.value} for t in request.traits]
    )

    return f"""
You are an expert NFT price prediction AI. Analyze the following NFT data and provide price predictions:

NFT Details:
- Name: {request.nft_name}
- Current Price: {request.current_price} ETH
- Historical Prices: {historical}
- Collection Stats: {stats}
- Traits: {traits}

Please provide price predictions for the next 5 time periods (monthly) in the following JSON format:
{{
  "predictions": [
    {{
      "date": "2024-01-15",
      "price": 48.5,
      "confidence": 0.85,
      "factors": ["trait rarity", "collection trending", "market sentiment"]
    }}
  ]
}}

Consider these factors:
1. Historical price trends
2. Collection floor price movement
3. Trait rarity and desirability
4. Market sentiment and volume
5. Seasonal patterns
6. Upcoming events or roadmap items

Provide realistic predictions with confidence scores (0-1) and key factors influencing each prediction.
"""


def parse_predictions(decoded: dict[str, Any]) -> list[PricePoint]:
    """
    Usable prediction points from a decoded model object, in chronological order.

    Entries that are not objects, have no parsable date, or carry a missing,
    non-numeric or negative price are dropped. Confidence is clamped.

    Raises:
        DecodeError: No `predictions` list, or no usable entry in it.
    """
    raw_predictions = decoded.get("predictions")
    if not isinstance(raw_predictions, list):
        raise DecodeError("Model response has no predictions list.")

    points: list[PricePoint] = []
    for entry in raw_predictions:
        if not isinstance(entry, dict):
            continue
        factors = entry.get("factors")
        try:
            points.append(
                PricePoint(
                    date=entry.get("date"),
                    price=entry.get("price"),
                    confidence=entry.get("confidence", 0.0),
                    factors=[str(f) for f in factors] if isinstance(factors, list) else [],
                )
            )
        except (ValidationError, TypeError, ValueError) as e:
            logger.debug("gemini_prediction_entry_skipped", error=str(e))

    if not points:
        raise DecodeError("Model response has no usable predictions.")

    points.sort(key=lambda p: p.date)
    return points


def _stringify_trait(trait: Any) -> str:
    if isinstance(trait, dict):
        label = trait.get("trait_type") or trait.get("type") or trait.get("name")
        value = trait.get("value")
        if label and value is not None:
            return f"{label}: {value}"
        return str(value if value is not None else label or "")
    return str(trait)


def parse_image_analysis(decoded: dict[str, Any]) -> ImageAnalysis:
    """Decoded object -> ImageAnalysis, taking the fallback value per missing field."""
    name = decoded.get("name")
    name = name.strip() if isinstance(name, str) else ""

    raw_traits = decoded.get("traits")
    if isinstance(raw_traits, dict):
        traits = [f"{k}: {v}" for k, v in raw_traits.items()]
    elif isinstance(raw_traits, list):
        traits = [s for s in (_stringify_trait(t) for t in raw_traits) if s]
    else:
        traits = []

    description = decoded.get("description")
    description = description.strip() if isinstance(description, str) else ""

    return ImageAnalysis(
        name=name or FALLBACK_IMAGE_NAME,
        traits=traits or list(FALLBACK_IMAGE_TRAITS),
        description=description or FALLBACK_IMAGE_DESCRIPTION,
    )


# ---------------------------------------------------------------------------
# API Client
# ---------------------------------------------------------------------------


class GeminiClient:
    """
    Async client for the Gemini generateContent endpoint.

    Usage:
        async with GeminiClient() as gemini:
            points = await gemini.generate_price_predictions(request)

    `rng` and `today` feed the fallback generator; tests pass a seeded
    random.Random and a fixed date to get exact output.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        text_model: str | None = None,
        vision_model: str | None = None,
        timeout: float | None = None,
        rng: random.Random | None = None,
        today: date | None = None,
    ):
        self._api_key = api_key or settings.GEMINI_API_KEY
        self._base_url = base_url or settings.GEMINI_BASE_URL
        self._text_model = text_model or settings.GEMINI_TEXT_MODEL
        self._vision_model = vision_model or settings.GEMINI_VISION_MODEL
        self._timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self._rng = rng or random.Random()
        self._today = today
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> GeminiClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Content-Type": "application/json"},
            timeout=self._timeout,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    async def _generate(self, model: str, body: dict[str, Any]) -> str:
        """
        POST to /models/{model}:generateContent and return the first text part.

        Raises:
            DecodeError: The envelope has no usable text.
            NFTickrError: Transport/HTTP failures, mapped onto the taxonomy.
        """
        assert self._client is not None, "Client not initialized. Use 'async with'."

        path = f"/models/{model}:generateContent"
        try:
            response = await self._client.post(
                path, params={"key": self._api_key}, json=body
            )
        except httpx.RequestError as e:
            # str(e) may embed the request URL, which carries the key.
            logger.error("gemini_request_error", error_type=type(e).__name__, model=model)
            raise network_error(e) from e

        if not response.is_success:
            logger.error("gemini_http_error", status_code=response.status_code, model=model)
        raise_for_upstream(response, SERVICE_NAME)

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(
                response.status_code, "response body is not JSON", service=SERVICE_NAME
            ) from e

        try:
            return GeminiResponse.model_validate(payload).first_text()
        except ValidationError as e:
            raise DecodeError("Unexpected model response envelope.") from e

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def generate_price_predictions(
        self, request: PredictionRequest
    ) -> list[PricePoint]:
        """
        Forecast monthly prices for an NFT.

        The decoded model output is returned as-is when usable. Otherwise
        exactly five fallback points are synthesized from current_price.
        """
        body = {
            "contents": [{"parts": [{"text": build_prediction_prompt(request)}]}],
            "generationConfig": dict(PREDICTION_GENERATION_CONFIG),
        }
        logger.info(
            "gemini_prediction_requested",
            nft_name=request.nft_name,
            current_price=request.current_price,
        )

        try:
            text = await self._generate(self._text_model, body)
            points = parse_predictions(extract_json_object(text))
        except DecodeError as e:
            logger.warning(
                "gemini_prediction_fallback",
                nft_name=request.nft_name,
                reason=e.message,
            )
            return generate_fallback_predictions(
                request.current_price, rng=self._rng, today=self._today
            )

        logger.info(
            "gemini_prediction_complete",
            nft_name=request.nft_name,
            count=len(points),
        )
        return points

    async def analyze_image(
        self, base64_image: str, mime_type: str = "image/jpeg"
    ) -> ImageAnalysis:
        """Identify an NFT from an image. Fallback record when the output is unusable."""
        body = {
            "contents": [
                {
                    "parts": [
                        {"text": IMAGE_ANALYSIS_INSTRUCTION},
                        {"inline_data": {"mime_type": mime_type, "data": base64_image}},
                    ]
                }
            ]
        }
        logger.info("gemini_image_analysis_requested", mime_type=mime_type)

        try:
            text = await self._generate(self._vision_model, body)
            analysis = parse_image_analysis(extract_json_object(text))
        except DecodeError as e:
            logger.warning("gemini_image_analysis_fallback", reason=e.message)
            return fallback_image_analysis()

        logger.info("gemini_image_analysis_complete", name=analysis.name)
        return analysis

    async def answer_question(self, question: str) -> str:
        """Free-text answer to a general NFT question (chat bot). Empty when the model gave no text."""
        prompt = (
            "You are an expert NFT analyst. Answer this question about NFTs in a "
            f"helpful, informative way: {question}"
        )
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        try:
            answer = await self._generate(self._text_model, body)
        except DecodeError as e:
            logger.warning("gemini_answer_empty", reason=e.message)
            return ""
        return answer.strip()
