"""Luxor stake-and-reward accounting engine."""

__version__ = "1.0.0"
