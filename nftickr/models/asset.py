"""
Canonical marketplace shapes: assets, their traits, and collection stats.

Built by the OpenSea client from raw v1 payloads. Immutable once created.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Trait(BaseModel):
    """One attribute/value pair. List order is the marketplace's display order."""

    model_config = ConfigDict(frozen=True)

    trait_type: str = ""
    value: str = ""
    display_type: str | None = None
    trait_count: int | None = None


class CollectionStats(BaseModel):
    """Aggregate market stats for a collection. All-zero when unavailable."""

    model_config = ConfigDict(frozen=True)

    floor_price: float = 0.0
    market_cap: float = 0.0
    num_owners: int = 0
    total_supply: int = 0
    total_volume: float = 0.0
    total_sales: int = 0

    @property
    def is_empty(self) -> bool:
        return self == CollectionStats()


class AssetRecord(BaseModel):
    """Canonical view of one marketplace asset."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    name: str
    collection_name: str = ""
    collection_slug: str = ""
    contract_address: str = ""
    token_id: str = ""
    image_url: str = ""
    traits: tuple[Trait, ...] = Field(default_factory=tuple)
    description: str = ""
    permalink: str = ""

    # Collection figures embedded in the asset payload
    floor_price: float = 0.0
    total_supply: int = 0
    num_owners: int = 0
    total_volume: float = 0.0

    last_sale_price: float | None = Field(
        default=None, description="Most recent sale, converted from base units"
    )
