"""Wine Selector - LCBO catalog joined with Vivino quality signals."""

__version__ = "0.1.0"
