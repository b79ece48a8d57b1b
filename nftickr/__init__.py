"""NFTickr: NFT identification and AI price prediction."""

__version__ = "0.1.0"
