"""Supervised perspective-correction service."""

__version__ = "1.0.0"
