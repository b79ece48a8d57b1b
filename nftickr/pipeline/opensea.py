"""
NFTickr - OpenSea API Client (marketplace data)

Wraps the OpenSea v1 REST endpoints and normalizes raw asset payloads into
AssetRecord. Two failure policies apply:

- Identity lookups (get_asset_by_contract_and_token) raise, so callers can tell
  a missing asset from a degraded one.
- Enrichment calls (search, stats, history, collection listings) swallow
  upstream failures and return empty defaults.

No retries are performed; a 429 surfaces as RateLimitedError.
"""

from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from nftickr.config import settings
from nftickr.errors import (
    InvalidInputError,
    NFTickrError,
    NotFoundError,
    UpstreamError,
    network_error,
    raise_for_upstream,
)
from nftickr.models import AssetRecord, CollectionStats, PricePoint, Trait

logger = structlog.get_logger(__name__)

SERVICE_NAME = "OpenSea"

CONTRACT_ADDRESS_RE = re.compile(r"0x[a-fA-F0-9]{40}")

# Tried in order; first match wins.
OPENSEA_URL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"opensea\.io/assets/ethereum/0x(?P<contract>[a-fA-F0-9]{40})/(?P<token>\d+)"),
    re.compile(r"opensea\.io/assets/0x(?P<contract>[a-fA-F0-9]{40})/(?P<token>\d+)"),
    re.compile(r"opensea\.io/assets/(?P<chain>[^/]+)/0x(?P<contract>[a-fA-F0-9]{40})/(?P<token>\d+)"),
)

# ---------------------------------------------------------------------------
# Pydantic Response Models
# ---------------------------------------------------------------------------


def _blank_to_default(v: Any, default: Any) -> Any:
    return default if v is None else v


class OpenSeaAssetContract(BaseModel):
    address: str = ""
    name: str | None = None
    schema_name: str | None = None


class OpenSeaStats(BaseModel):
    """Collection stats as embedded in assets and returned by /collection/{slug}/stats."""

    floor_price: float = 0.0
    market_cap: float = 0.0
    num_owners: int = 0
    total_supply: int = 0
    total_volume: float = 0.0
    total_sales: int = 0

    @field_validator("*", mode="before")
    @classmethod
    def null_to_zero(cls, v: Any) -> Any:
        """OpenSea reports unknown figures as null."""
        return _blank_to_default(v, 0)


class OpenSeaCollectionRef(BaseModel):
    name: str = ""
    slug: str = ""
    stats: OpenSeaStats | None = None

    @field_validator("name", "slug", mode="before")
    @classmethod
    def null_to_empty(cls, v: Any) -> Any:
        return _blank_to_default(v, "")


class OpenSeaTrait(BaseModel):
    trait_type: str = ""
    value: str = ""
    display_type: str | None = None
    trait_count: int | None = None

    @field_validator("trait_type", "value", mode="before")
    @classmethod
    def stringify(cls, v: Any) -> str:
        """Numeric trait values ("level": 5) are rendered as strings."""
        return "" if v is None else str(v)


class OpenSeaPaymentToken(BaseModel):
    symbol: str | None = None
    decimals: int = 18


class OpenSeaSale(BaseModel):
    """A sale as embedded in `last_sale` or returned by /events."""

    total_price: str | None = None
    event_timestamp: str | None = None
    created_date: str | None = None
    payment_token: OpenSeaPaymentToken | None = None

    @field_validator("total_price", mode="before")
    @classmethod
    def price_to_str(cls, v: Any) -> str | None:
        return None if v is None else str(v)

    def price_in_units(self) -> float | None:
        """Convert base units (wei for ETH) into whole-token units."""
        if not self.total_price:
            return None
        decimals = self.payment_token.decimals if self.payment_token else 18
        try:
            return float(Decimal(self.total_price) / (Decimal(10) ** decimals))
        except (InvalidOperation, ValueError):
            return None

    def sale_date(self) -> datetime | None:
        raw = self.event_timestamp or self.created_date
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None


class OpenSeaV1Asset(BaseModel):
    """Raw v1 asset record, decoded defensively with per-field defaults."""

    id: int | str | None = None
    token_id: str = ""
    name: str | None = None
    description: str | None = None
    image_url: str | None = None
    image_preview_url: str | None = None
    image_thumbnail_url: str | None = None
    image_original_url: str | None = None
    permalink: str | None = None
    asset_contract: OpenSeaAssetContract = Field(default_factory=OpenSeaAssetContract)
    collection: OpenSeaCollectionRef = Field(default_factory=OpenSeaCollectionRef)
    traits: list[OpenSeaTrait] = Field(default_factory=list)
    last_sale: OpenSeaSale | None = None

    @field_validator("token_id", mode="before")
    @classmethod
    def token_to_str(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("asset_contract", "collection", mode="before")
    @classmethod
    def null_to_empty_obj(cls, v: Any) -> Any:
        return _blank_to_default(v, {})

    @field_validator("traits", mode="before")
    @classmethod
    def null_to_empty_list(cls, v: Any) -> Any:
        return _blank_to_default(v, [])


class OpenSeaAssetsResponse(BaseModel):
    """Envelope of /assets: `{assets: [...]}`. Entries stay raw until validated one by one."""

    assets: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("assets", mode="before")
    @classmethod
    def null_to_empty_list(cls, v: Any) -> Any:
        return _blank_to_default(v, [])


class OpenSeaStatsResponse(BaseModel):
    stats: OpenSeaStats = Field(default_factory=OpenSeaStats)

    @field_validator("stats", mode="before")
    @classmethod
    def null_to_empty_obj(cls, v: Any) -> Any:
        return _blank_to_default(v, {})


class OpenSeaCollectionsResponse(BaseModel):
    collections: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("collections", mode="before")
    @classmethod
    def null_to_empty_list(cls, v: Any) -> Any:
        return _blank_to_default(v, [])


class OpenSeaEventsResponse(BaseModel):
    asset_events: list[OpenSeaSale] = Field(default_factory=list)

    @field_validator("asset_events", mode="before")
    @classmethod
    def null_to_empty_list(cls, v: Any) -> Any:
        return _blank_to_default(v, [])


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def is_valid_contract_address(address: str) -> bool:
    return bool(CONTRACT_ADDRESS_RE.fullmatch(address or ""))


def parse_opensea_url(url: str) -> tuple[str, str]:
    """
    Extract (contract_address, token_id) from an OpenSea asset URL.

    Accepted shapes, tried in order:
        .../assets/ethereum/0x{40 hex}/{digits}
        .../assets/0x{40 hex}/{digits}
        .../assets/{chain}/0x{40 hex}/{digits}

    Raises:
        InvalidInputError: The URL matches none of the shapes.
    """
    clean_url = (url or "").strip()

    for pattern in OPENSEA_URL_PATTERNS:
        match = pattern.search(clean_url)
        if match:
            return f"0x{match.group('contract')}", match.group("token")

    raise InvalidInputError(
        "Invalid OpenSea URL format. Please provide a valid OpenSea NFT URL."
    )


def format_asset_record(raw: OpenSeaV1Asset | dict[str, Any]) -> AssetRecord:
    """
    Map a raw v1 asset onto the canonical AssetRecord.

    - Blank name falls back to "{collection name} #{token id}".
    - Image is the first non-blank of image_url, image_original_url,
      image_preview_url.
    - Traits keep the source order.
    """
    asset = raw if isinstance(raw, OpenSeaV1Asset) else OpenSeaV1Asset.model_validate(raw)

    name = (asset.name or "").strip()
    if not name:
        name = f"{asset.collection.name} #{asset.token_id}"

    image = next(
        (
            candidate
            for candidate in (asset.image_url, asset.image_original_url, asset.image_preview_url)
            if candidate and candidate.strip()
        ),
        "",
    )

    stats = asset.collection.stats or OpenSeaStats()

    return AssetRecord(
        id="" if asset.id is None else str(asset.id),
        name=name,
        collection_name=asset.collection.name,
        collection_slug=asset.collection.slug,
        contract_address=asset.asset_contract.address,
        token_id=asset.token_id,
        image_url=image,
        traits=tuple(
            Trait(
                trait_type=t.trait_type,
                value=t.value,
                display_type=t.display_type,
                trait_count=t.trait_count,
            )
            for t in asset.traits
        ),
        description=asset.description or "",
        permalink=asset.permalink or "",
        floor_price=stats.floor_price,
        total_supply=stats.total_supply,
        num_owners=stats.num_owners,
        total_volume=stats.total_volume,
        last_sale_price=asset.last_sale.price_in_units() if asset.last_sale else None,
    )


def _records_from_assets(payload: dict[str, Any]) -> list[AssetRecord]:
    """Format every decodable entry of an /assets envelope, skipping bad ones."""
    try:
        response = OpenSeaAssetsResponse.model_validate(payload or {})
    except ValidationError as e:
        logger.warning("opensea_assets_envelope_invalid", error=str(e))
        return []

    records: list[AssetRecord] = []
    for raw in response.assets:
        try:
            records.append(format_asset_record(raw))
        except ValidationError as e:
            logger.warning(
                "opensea_asset_parse_error",
                error=str(e),
                asset_data=str(raw)[:100],
            )
    return records


# ---------------------------------------------------------------------------
# API Client
# ---------------------------------------------------------------------------


class OpenSeaClient:
    """
    Async client for the OpenSea v1 API.

    One instance is created at process start and shared by reference:

        async with OpenSeaClient() as opensea:
            assets = await opensea.search_assets("CryptoPunks #7804")
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ):
        self._api_key = api_key or settings.OPENSEA_API_KEY
        self._base_url = base_url or settings.OPENSEA_BASE_URL
        self._timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> OpenSeaClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "X-API-KEY": self._api_key,
                "Accept": "application/json",
                "User-Agent": settings.OPENSEA_USER_AGENT,
            },
            timeout=self._timeout,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    async def _request(
        self,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """GET `path` and decode the JSON body, mapping failures onto the error taxonomy."""
        assert self._client is not None, "Client not initialized. Use 'async with'."

        try:
            response = await self._client.get(path, params=params)
        except httpx.RequestError as e:
            logger.error("opensea_request_error", error=str(e), path=path)
            raise network_error(e) from e

        if not response.is_success:
            logger.error(
                "opensea_http_error",
                status_code=response.status_code,
                path=path,
            )
        raise_for_upstream(response, SERVICE_NAME)

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(
                response.status_code, "response body is not JSON", service=SERVICE_NAME
            ) from e

    # -----------------------------------------------------------------------
    # Identity lookups (errors propagate)
    # -----------------------------------------------------------------------

    async def get_asset_by_contract_and_token(
        self, contract_address: str, token_id: str
    ) -> AssetRecord:
        """
        Fetch one asset by contract address and token id.

        Inputs are validated before any network call.

        Raises:
            InvalidInputError: Malformed contract address or blank token id.
            NotFoundError: OpenSea returned 404.
            NFTickrError: Any other upstream/network failure.
        """
        if not is_valid_contract_address(contract_address):
            raise InvalidInputError(
                "Invalid contract address format. "
                "Please provide a valid Ethereum contract address."
            )
        if not token_id or not token_id.strip():
            raise InvalidInputError("Token ID is required.")

        token_id = token_id.strip()
        logger.info(
            "opensea_fetch_asset",
            contract_address=contract_address,
            token_id=token_id,
        )

        data = await self._request(f"/asset/{contract_address.lower()}/{token_id}/")
        if not isinstance(data, dict) or not data:
            raise NotFoundError("NFT data not found in response.")
        return format_asset_record(data)

    # -----------------------------------------------------------------------
    # Enrichment (errors degrade to empty defaults)
    # -----------------------------------------------------------------------

    async def search_assets(
        self, query: str, limit: int | None = None
    ) -> list[AssetRecord]:
        """
        Free-text asset search. Empty list on zero matches or any upstream failure.
        """
        limit = limit or settings.OPENSEA_SEARCH_LIMIT
        logger.info("opensea_search", query=query, limit=limit)

        try:
            data = await self._request("/assets", params={"search": query, "limit": limit})
        except NFTickrError as e:
            logger.warning("opensea_search_failed", query=query, error=e.message)
            return []

        records = _records_from_assets(data)
        logger.info("opensea_search_complete", query=query, results_count=len(records))
        return records

    async def get_collection_stats(self, collection_slug: str) -> CollectionStats:
        """Aggregate stats for a collection. All-zero record on any failure."""
        try:
            data = await self._request(f"/collection/{collection_slug}/stats")
            stats = OpenSeaStatsResponse.model_validate(data or {}).stats
        except (NFTickrError, ValidationError) as e:
            logger.warning(
                "opensea_stats_failed",
                collection_slug=collection_slug,
                error=str(e),
            )
            return CollectionStats()

        return CollectionStats(**stats.model_dump())

    async def search_collections(self, query: str) -> list[dict[str, Any]]:
        """Raw collection entries matching `query` (max 10). Empty on failure."""
        try:
            data = await self._request("/collections", params={"q": query, "limit": 10})
            return OpenSeaCollectionsResponse.model_validate(data or {}).collections
        except (NFTickrError, ValidationError) as e:
            logger.warning("opensea_collections_failed", query=query, error=str(e))
            return []

    async def get_collection_assets(
        self, collection_slug: str, limit: int = 10
    ) -> list[AssetRecord]:
        try:
            data = await self._request(
                "/assets", params={"collection": collection_slug, "limit": limit}
            )
        except NFTickrError as e:
            logger.warning(
                "opensea_collection_assets_failed",
                collection_slug=collection_slug,
                error=e.message,
            )
            return []
        return _records_from_assets(data)

    async def get_asset_by_collection_and_token(
        self, collection_slug: str, token_id: str
    ) -> AssetRecord | None:
        """Single asset from a collection listing, or None when absent/unavailable."""
        try:
            data = await self._request(
                "/assets",
                params={"collection": collection_slug, "token_ids": token_id, "limit": 1},
            )
        except NFTickrError as e:
            logger.warning(
                "opensea_collection_token_failed",
                collection_slug=collection_slug,
                token_id=token_id,
                error=e.message,
            )
            return None

        records = _records_from_assets(data)
        return records[0] if records else None

    async def get_current_price(self, collection_slug: str, token_id: str) -> float:
        """
        Latest known price for a token, in whole-token units (ETH).

        Last sale when there is one, else the collection floor, else 0.0.
        """
        asset = await self.get_asset_by_collection_and_token(collection_slug, token_id)
        if asset is None:
            return 0.0
        if asset.last_sale_price is not None:
            return asset.last_sale_price
        return asset.floor_price

    async def get_historical_prices(
        self,
        contract_address: str,
        token_id: str,
        limit: int | None = None,
    ) -> list[PricePoint]:
        """
        Past successful sales of a token as chronological PricePoints.

        Entries without a parsable price or date are skipped. Empty on failure.
        """
        limit = limit or settings.OPENSEA_HISTORY_LIMIT
        try:
            data = await self._request(
                "/events",
                params={
                    "asset_contract_address": contract_address.lower(),
                    "token_id": token_id,
                    "event_type": "successful",
                    "limit": limit,
                },
            )
            events = OpenSeaEventsResponse.model_validate(data or {}).asset_events
        except (NFTickrError, ValidationError) as e:
            logger.warning(
                "opensea_history_failed",
                contract_address=contract_address,
                token_id=token_id,
                error=str(e),
            )
            return []

        points: list[PricePoint] = []
        for sale in events:
            price = sale.price_in_units()
            sold_at = sale.sale_date()
            if price is None or sold_at is None or price < 0:
                continue
            points.append(PricePoint(date=sold_at.date(), price=price))

        points.sort(key=lambda p: p.date)
        return points
