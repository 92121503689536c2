"""Palettes and image export."""
