"""Sei Analytics - entity tracking and fan-out for wallets, meme coins and NFTs."""

__version__ = "0.1.0"
