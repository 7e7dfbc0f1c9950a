"""Sticker exchange: two-party barter of sealed collectibles across separate repositories."""

__version__ = "0.1.0"
