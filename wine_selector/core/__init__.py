"""Core domain types for Wine Selector."""
