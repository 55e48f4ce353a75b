"""Command-line interface for Wine Selector."""
