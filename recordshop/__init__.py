"""Discogs inventory mirror, cart and order settlement service."""

__version__ = "0.1.0"
