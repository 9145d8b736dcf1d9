"""Mock API servers for testing."""

from .app import DEFAULT_PRICES, create_app, create_mock_app

__all__ = ["DEFAULT_PRICES", "create_app", "create_mock_app"]
