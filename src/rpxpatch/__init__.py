"""Preset-driven patch compiler for the U-King RPX image."""

__version__ = "0.1.0"
