"""Geo-tagged message storage with bounding box retrieval."""

__version__ = "1.0.0"
