"""Resilient multi-provider token price and metadata feed."""

__version__ = "1.0.0"
