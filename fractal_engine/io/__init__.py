"""Configuration files and presets."""
