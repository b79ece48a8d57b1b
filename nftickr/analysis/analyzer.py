"""
NFTickr - Analysis Orchestrator

Sequences marketplace lookups and prediction calls into one analyze
operation and assembles the AnalysisResult.

Every failure inside an operation is caught once, at the public method
boundary, reduced to one user-facing sentence and re-raised as AnalysisError.
No partial result is ever returned.
"""

from __future__ import annotations

import asyncio
import base64
from typing import Awaitable, Callable

import structlog

from nftickr.errors import AnalysisError, InvalidInputError, NFTickrError, NotFoundError
from nftickr.models import AnalysisResult, AssetRecord, PredictionRequest
from nftickr.pipeline.gemini import GeminiClient
from nftickr.pipeline.opensea import OpenSeaClient, parse_opensea_url

logger = structlog.get_logger(__name__)

NAME_NOT_FOUND_MESSAGE = "NFT not found. Please check the name and try again."
IMAGE_NOT_IDENTIFIED_MESSAGE = (
    "Could not identify the NFT from the image. Please try searching by name."
)
GENERIC_ANALYSIS_MESSAGE = "An error occurred during analysis"
GENERIC_IMAGE_MESSAGE = "An error occurred during image analysis"

# Magic-byte prefixes for the image types the vision endpoint accepts.
_IMAGE_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"\xff\xd8\xff", "image/jpeg"),
)


def detect_image_mime_type(data: bytes) -> str:
    """Best guess at the MIME type of an image payload. Defaults to JPEG."""
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    for signature, mime_type in _IMAGE_SIGNATURES:
        if data.startswith(signature):
            return mime_type
    return "image/jpeg"


def encode_image(data: bytes) -> tuple[str, str]:
    """
    Turn a raw image upload into (base64 text, mime type).

    Accepts `data:` URL text as well as raw bytes.

    Raises:
        InvalidInputError: Empty payload.
    """
    if not data:
        raise InvalidInputError("Please upload a valid image file.")

    if data[:5] == b"data:" and b"," in data:
        header, _, encoded = data.partition(b",")
        mime_type = header[5:].split(b";")[0].decode("ascii", errors="ignore") or "image/jpeg"
        return encoded.decode("ascii").strip(), mime_type

    return base64.b64encode(data).decode("ascii"), detect_image_mime_type(data)


class NFTAnalyzer:
    """
    Orchestrates one analysis per call. Stateless between calls.

    The clients are shared, already-open instances created once at process
    start, so concurrent analyses need no coordination.
    """

    def __init__(self, opensea: OpenSeaClient, gemini: GeminiClient) -> None:
        self._opensea = opensea
        self._gemini = gemini

    # -----------------------------------------------------------------------
    # Public API (error boundary)
    # -----------------------------------------------------------------------

    async def analyze_by_name(self, query: str) -> AnalysisResult:
        """Search by free text, take the first hit, and predict its price."""
        return await self._guard(
            "analyze_by_name", lambda: self._analyze_by_name(query), GENERIC_ANALYSIS_MESSAGE
        )

    async def analyze_by_image(self, image: bytes) -> AnalysisResult:
        """Identify an NFT from an image upload, then analyze it by name."""
        return await self._guard(
            "analyze_by_image", lambda: self._analyze_by_image(image), GENERIC_IMAGE_MESSAGE
        )

    async def analyze_by_url(self, url: str) -> AnalysisResult:
        """Analyze the asset an OpenSea URL points at."""
        return await self._guard(
            "analyze_by_url", lambda: self._analyze_by_url(url), GENERIC_ANALYSIS_MESSAGE
        )

    async def analyze_by_contract(self, contract_address: str, token_id: str) -> AnalysisResult:
        """Analyze an asset identified by contract address and token id."""
        return await self._guard(
            "analyze_by_contract",
            lambda: self._analyze_by_contract(contract_address, token_id),
            GENERIC_ANALYSIS_MESSAGE,
        )

    async def _guard(
        self,
        operation: str,
        run: Callable[[], Awaitable[AnalysisResult]],
        generic_message: str,
    ) -> AnalysisResult:
        try:
            return await run()
        except NFTickrError as e:
            logger.warning(
                "analysis_failed",
                operation=operation,
                error_type=type(e).__name__,
                error=e.message,
            )
            raise AnalysisError(e.message) from e
        except Exception as e:
            logger.error(
                "analysis_unexpected_error",
                operation=operation,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise AnalysisError(generic_message) from e

    # -----------------------------------------------------------------------
    # Pipelines
    # -----------------------------------------------------------------------

    async def _analyze_by_name(self, query: str) -> AnalysisResult:
        query = (query or "").strip()
        if not query:
            raise InvalidInputError("Please enter an NFT name to analyze.")

        results = await self._opensea.search_assets(query)
        if not results:
            raise NotFoundError(NAME_NOT_FOUND_MESSAGE)

        # First hit is the canonical match; no ranking.
        asset = results[0]
        logger.info(
            "analysis_match_selected",
            query=query,
            asset_name=asset.name,
            candidates=len(results),
        )
        return await self._analyze_asset(asset)

    async def _analyze_by_image(self, image: bytes) -> AnalysisResult:
        encoded, mime_type = encode_image(image)
        identified = await self._gemini.analyze_image(encoded, mime_type=mime_type)

        results = await self._opensea.search_assets(identified.name)
        if not results:
            raise NotFoundError(IMAGE_NOT_IDENTIFIED_MESSAGE)

        return await self._analyze_by_name(identified.name)

    async def _analyze_by_url(self, url: str) -> AnalysisResult:
        if not url or not url.strip():
            raise InvalidInputError("Please enter a valid OpenSea URL.")
        contract_address, token_id = parse_opensea_url(url)
        return await self._analyze_by_contract(contract_address, token_id)

    async def _analyze_by_contract(self, contract_address: str, token_id: str) -> AnalysisResult:
        asset = await self._opensea.get_asset_by_contract_and_token(
            (contract_address or "").strip(), token_id
        )
        return await self._analyze_asset(asset)

    async def _analyze_asset(self, asset: AssetRecord) -> AnalysisResult:
        """Fetch price, history and stats concurrently, then predict."""
        current_price, historical_prices, collection_stats = await asyncio.gather(
            self._opensea.get_current_price(asset.collection_slug, asset.token_id),
            self._opensea.get_historical_prices(asset.contract_address, asset.token_id),
            self._opensea.get_collection_stats(asset.collection_slug),
        )

        # The re-read can miss; the record we already hold still knows its last sale.
        if not current_price and asset.last_sale_price is not None:
            current_price = asset.last_sale_price

        predictions = await self._gemini.generate_price_predictions(
            PredictionRequest(
                nft_name=asset.name,
                current_price=current_price,
                historical_prices=historical_prices,
                collection_stats=collection_stats,
                traits=list(asset.traits),
            )
        )

        result = AnalysisResult(
            name=asset.name,
            collection=asset.collection_name,
            current_price=current_price,
            image=asset.image_url,
            predictions=sorted(predictions, key=lambda p: p.date),
            asset=asset,
            collection_stats=collection_stats,
            historical_prices=historical_prices,
        )
        logger.info(
            "analysis_complete",
            asset_name=result.name,
            current_price=result.current_price,
            predictions=len(result.predictions),
        )
        return result
