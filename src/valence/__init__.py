"""Valence: rule-driven structural and content validation for source trees."""

__version__ = "1.0.0"
