"""
End-to-end tests for the analysis orchestrator (nftickr/analysis/analyzer.py).

Both upstreams are mocked with respx; the orchestrator runs against real
OpenSea and Gemini clients.

Covers:
- Name search -> first hit -> concurrent enrichment -> predictions
- Not-found and invalid-input messages surfacing as AnalysisError
- Image identification, URL and contract entry points
- Reduction of unexpected failures to the generic sentence
"""

from __future__ import annotations

import base64
import json
from datetime import date
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from factories import (
    GEMINI_TEXT_URL,
    GEMINI_VISION_URL,
    OPENSEA_URL,
    PUNKS_CONTRACT,
    gemini_json_response,
    gemini_text_response,
    json_response,
    make_raw_asset,
    wei,
)
from nftickr.analysis.analyzer import (
    NFTAnalyzer,
    detect_image_mime_type,
    encode_image,
)
from nftickr.errors import AnalysisError, InvalidInputError, RateLimitedError
from nftickr.pipeline.gemini import GeminiClient
from nftickr.pipeline.opensea import OpenSeaClient

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
STATS_PAYLOAD = {
    "stats": {
        "floor_price": 40.0,
        "market_cap": 400000.0,
        "num_owners": 3500,
        "total_supply": 10000,
        "total_volume": 1_000_000.5,
        "total_sales": 22000,
    }
}
EVENTS_PAYLOAD = {
    "asset_events": [
        {"total_price": wei("45.2"), "event_timestamp": "2023-12-01T10:00:00"},
        {"total_price": wei("30"), "event_timestamp": "2022-06-15T08:30:00"},
    ]
}


@pytest.fixture
def analyzer(opensea_client: OpenSeaClient, gemini_client: GeminiClient) -> NFTAnalyzer:
    return NFTAnalyzer(opensea_client, gemini_client)


def _assets_handler(
    search_results: list[dict[str, Any]],
    collection_results: list[dict[str, Any]] | None = None,
):
    """Dispatch /assets on its query: free-text search vs. collection+token lookup."""

    def handler(request: httpx.Request) -> httpx.Response:
        if "search" in request.url.params:
            return json_response({"assets": search_results})
        assets = search_results if collection_results is None else collection_results
        return json_response({"assets": assets})

    return handler


def _mock_opensea(
    mock: respx.MockRouter,
    search_results: list[dict[str, Any]],
    collection_results: list[dict[str, Any]] | None = None,
) -> None:
    mock.get(f"{OPENSEA_URL}/assets").mock(
        side_effect=_assets_handler(search_results, collection_results)
    )
    mock.get(f"{OPENSEA_URL}/events").mock(return_value=json_response(EVENTS_PAYLOAD))
    mock.get(f"{OPENSEA_URL}/collection/cryptopunks/stats").mock(
        return_value=json_response(STATS_PAYLOAD)
    )


# ---------------------------------------------------------------------------
# Image helpers
# ---------------------------------------------------------------------------


class TestImageEncoding:
    @pytest.mark.parametrize(
        "data,expected",
        [
            (PNG_BYTES, "image/png"),
            (b"GIF89a" + b"\x00" * 8, "image/gif"),
            (b"\xff\xd8\xff\xe0" + b"\x00" * 8, "image/jpeg"),
            (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
            (b"unknown bytes", "image/jpeg"),
        ],
    )
    def test_detect_mime_type(self, data: bytes, expected: str) -> None:
        assert detect_image_mime_type(data) == expected

    def test_raw_bytes_are_base64_encoded(self) -> None:
        encoded, mime_type = encode_image(PNG_BYTES)

        assert base64.b64decode(encoded) == PNG_BYTES
        assert mime_type == "image/png"

    def test_data_url_is_split(self) -> None:
        encoded, mime_type = encode_image(b"data:image/webp;base64,UklGRg==")

        assert encoded == "UklGRg=="
        assert mime_type == "image/webp"

    def test_empty_upload_rejected(self) -> None:
        with pytest.raises(InvalidInputError, match="Please upload a valid image file."):
            encode_image(b"")


# ---------------------------------------------------------------------------
# analyze_by_name
# ---------------------------------------------------------------------------


class TestAnalyzeByName:
    @pytest.mark.asyncio
    async def test_known_asset_with_fallback_predictions(self, analyzer: NFTAnalyzer) -> None:
        """Model prose-only output still yields five forward-looking points."""
        with respx.mock() as mock:
            _mock_opensea(mock, [make_raw_asset()])
            mock.post(GEMINI_TEXT_URL).mock(
                return_value=json_response(gemini_text_response("Prices look stable."))
            )
            result = await analyzer.analyze_by_name("CryptoPunks #7804")

        assert result.name == "CryptoPunk #7804"
        assert result.collection == "CryptoPunks"
        assert result.current_price == pytest.approx(45.2)
        assert result.image == "https://img.test/7804.png"
        assert len(result.predictions) == 5
        assert [p.date for p in result.predictions] == sorted(p.date for p in result.predictions)
        assert all(p.date > date(2024, 1, 15) for p in result.predictions)

        assert result.collection_stats.floor_price == 40.0
        assert [p.date for p in result.historical_prices] == [
            date(2022, 6, 15),
            date(2023, 12, 1),
        ]
        assert result.asset is not None
        assert result.asset.contract_address == PUNKS_CONTRACT

    @pytest.mark.asyncio
    async def test_model_predictions_pass_through(self, analyzer: NFTAnalyzer) -> None:
        prediction = {
            "date": "2024-01-15",
            "price": 48.5,
            "confidence": 0.85,
            "factors": ["trait rarity", "collection trending", "market sentiment"],
        }
        with respx.mock() as mock:
            _mock_opensea(mock, [make_raw_asset()])
            gemini = mock.post(GEMINI_TEXT_URL).mock(
                return_value=json_response(
                    gemini_json_response({"predictions": [prediction]}, prose="Sure!\n")
                )
            )
            result = await analyzer.analyze_by_name("CryptoPunks #7804")

        assert len(result.predictions) == 1
        point = result.predictions[0]
        assert (point.date, point.price, point.confidence) == (date(2024, 1, 15), 48.5, 0.85)
        assert point.factors == prediction["factors"]

        prompt = json.loads(gemini.calls.last.request.content)["contents"][0]["parts"][0]["text"]
        assert "- Current Price: 45.2 ETH" in prompt
        assert '"floor_price": 40.0' in prompt

    @pytest.mark.asyncio
    async def test_first_search_hit_is_used(self, analyzer: NFTAnalyzer) -> None:
        first = make_raw_asset(token_id="1", name="CryptoPunk #1", last_sale_eth="60")
        second = make_raw_asset(token_id="2", name="CryptoPunk #2", last_sale_eth="70")
        with respx.mock() as mock:
            _mock_opensea(mock, [first, second], collection_results=[first])
            mock.post(GEMINI_TEXT_URL).mock(
                return_value=json_response(gemini_text_response("n/a"))
            )
            result = await analyzer.analyze_by_name("CryptoPunk")

        assert result.name == "CryptoPunk #1"
        assert result.current_price == pytest.approx(60.0)

    @pytest.mark.asyncio
    async def test_current_price_from_collection_lookup(self, analyzer: NFTAnalyzer) -> None:
        searched = make_raw_asset(last_sale_eth="45.2")
        refreshed = make_raw_asset(last_sale_eth="50.1")
        with respx.mock() as mock:
            _mock_opensea(mock, [searched], collection_results=[refreshed])
            mock.post(GEMINI_TEXT_URL).mock(
                return_value=json_response(gemini_text_response("n/a"))
            )
            result = await analyzer.analyze_by_name("CryptoPunks #7804")

        assert result.current_price == pytest.approx(50.1)

    @pytest.mark.asyncio
    async def test_missed_collection_lookup_uses_known_last_sale(
        self, analyzer: NFTAnalyzer
    ) -> None:
        with respx.mock() as mock:
            _mock_opensea(mock, [make_raw_asset()], collection_results=[])
            mock.post(GEMINI_TEXT_URL).mock(
                return_value=json_response(gemini_text_response("n/a"))
            )
            result = await analyzer.analyze_by_name("CryptoPunks #7804")

        assert result.current_price == pytest.approx(45.2)

    @pytest.mark.asyncio
    async def test_no_match(self, analyzer: NFTAnalyzer) -> None:
        with respx.mock(assert_all_called=False) as mock:
            _mock_opensea(mock, [])
            gemini = mock.post(GEMINI_TEXT_URL)
            with pytest.raises(AnalysisError) as exc_info:
                await analyzer.analyze_by_name("zzz-nonexistent-zzz")

        assert exc_info.value.message == "NFT not found. Please check the name and try again."
        assert not gemini.called

    @pytest.mark.asyncio
    async def test_blank_query(self, analyzer: NFTAnalyzer) -> None:
        with pytest.raises(AnalysisError) as exc_info:
            await analyzer.analyze_by_name("   ")
        assert exc_info.value.message == "Please enter an NFT name to analyze."

    @pytest.mark.asyncio
    async def test_prediction_rate_limit_surfaces(self, analyzer: NFTAnalyzer) -> None:
        with respx.mock() as mock:
            _mock_opensea(mock, [make_raw_asset()])
            mock.post(GEMINI_TEXT_URL).mock(return_value=httpx.Response(429))
            with pytest.raises(AnalysisError) as exc_info:
                await analyzer.analyze_by_name("CryptoPunks #7804")

        assert exc_info.value.message == "Rate limit exceeded. Please try again in a moment."
        assert isinstance(exc_info.value.__cause__, RateLimitedError)

    @pytest.mark.asyncio
    async def test_unexpected_failure_reduced_to_generic_message(
        self, analyzer: NFTAnalyzer, gemini_client: GeminiClient, monkeypatch
    ) -> None:
        monkeypatch.setattr(
            gemini_client,
            "generate_price_predictions",
            AsyncMock(side_effect=RuntimeError("boom")),
        )
        with respx.mock() as mock:
            _mock_opensea(mock, [make_raw_asset()])
            with pytest.raises(AnalysisError) as exc_info:
                await analyzer.analyze_by_name("CryptoPunks #7804")

        assert exc_info.value.message == "An error occurred during analysis"
        assert isinstance(exc_info.value.__cause__, RuntimeError)


# ---------------------------------------------------------------------------
# analyze_by_image
# ---------------------------------------------------------------------------


class TestAnalyzeByImage:
    @pytest.mark.asyncio
    async def test_identified_image_is_analyzed_by_name(self, analyzer: NFTAnalyzer) -> None:
        identified = {"name": "CryptoPunk #7804", "traits": ["Alien"], "description": "A punk."}
        with respx.mock() as mock:
            _mock_opensea(mock, [make_raw_asset()])
            vision = mock.post(GEMINI_VISION_URL).mock(
                return_value=json_response(gemini_json_response(identified))
            )
            mock.post(GEMINI_TEXT_URL).mock(
                return_value=json_response(gemini_text_response("n/a"))
            )
            result = await analyzer.analyze_by_image(PNG_BYTES)

        assert result.name == "CryptoPunk #7804"
        assert len(result.predictions) == 5

        inline = json.loads(vision.calls.last.request.content)["contents"][0]["parts"][1]
        assert inline["inline_data"]["mime_type"] == "image/png"
        assert base64.b64decode(inline["inline_data"]["data"]) == PNG_BYTES

    @pytest.mark.asyncio
    async def test_unidentified_image(self, analyzer: NFTAnalyzer) -> None:
        with respx.mock(assert_all_called=False) as mock:
            _mock_opensea(mock, [])
            mock.post(GEMINI_VISION_URL).mock(
                return_value=json_response(gemini_text_response("No idea."))
            )
            with pytest.raises(AnalysisError) as exc_info:
                await analyzer.analyze_by_image(PNG_BYTES)

        assert exc_info.value.message == (
            "Could not identify the NFT from the image. Please try searching by name."
        )

    @pytest.mark.asyncio
    async def test_empty_upload(self, analyzer: NFTAnalyzer) -> None:
        with pytest.raises(AnalysisError) as exc_info:
            await analyzer.analyze_by_image(b"")
        assert exc_info.value.message == "Please upload a valid image file."

    @pytest.mark.asyncio
    async def test_unexpected_failure_uses_image_message(
        self, analyzer: NFTAnalyzer, gemini_client: GeminiClient, monkeypatch
    ) -> None:
        monkeypatch.setattr(
            gemini_client, "analyze_image", AsyncMock(side_effect=KeyError("parts"))
        )
        with pytest.raises(AnalysisError) as exc_info:
            await analyzer.analyze_by_image(PNG_BYTES)

        assert exc_info.value.message == "An error occurred during image analysis"


# ---------------------------------------------------------------------------
# analyze_by_url / analyze_by_contract
# ---------------------------------------------------------------------------


class TestDirectLookup:
    @pytest.mark.asyncio
    async def test_by_url(self, analyzer: NFTAnalyzer) -> None:
        url = f"https://opensea.io/assets/ethereum/{PUNKS_CONTRACT}/7804"
        with respx.mock() as mock:
            _mock_opensea(mock, [make_raw_asset()])
            asset = mock.get(f"{OPENSEA_URL}/asset/{PUNKS_CONTRACT}/7804/").mock(
                return_value=json_response(make_raw_asset())
            )
            mock.post(GEMINI_TEXT_URL).mock(
                return_value=json_response(gemini_text_response("n/a"))
            )
            result = await analyzer.analyze_by_url(url)

        assert asset.called
        assert result.name == "CryptoPunk #7804"
        assert result.current_price == pytest.approx(45.2)

    @pytest.mark.asyncio
    async def test_invalid_url(self, analyzer: NFTAnalyzer) -> None:
        with pytest.raises(AnalysisError) as exc_info:
            await analyzer.analyze_by_url("https://opensea.io/collection/cryptopunks")
        assert exc_info.value.message == (
            "Invalid OpenSea URL format. Please provide a valid OpenSea NFT URL."
        )

    @pytest.mark.asyncio
    async def test_by_contract_not_found(self, analyzer: NFTAnalyzer) -> None:
        with respx.mock() as mock:
            mock.get(f"{OPENSEA_URL}/asset/{PUNKS_CONTRACT}/99999/").mock(
                return_value=httpx.Response(404)
            )
            with pytest.raises(AnalysisError) as exc_info:
                await analyzer.analyze_by_contract(PUNKS_CONTRACT, "99999")

        assert exc_info.value.message == (
            "NFT not found. Please check the contract address and token ID."
        )

    @pytest.mark.asyncio
    async def test_by_contract_invalid_address(self, analyzer: NFTAnalyzer) -> None:
        with pytest.raises(AnalysisError) as exc_info:
            await analyzer.analyze_by_contract("0xnot-an-address", "1")
        assert exc_info.value.message.startswith("Invalid contract address format.")
