"""Adapters for the capability interfaces in `discat.plugins.base`."""
