"""Web API for Wine Selector."""
