"""Mockup gallery: version registry editing and notes for a local UI gallery."""

__version__ = "0.1.0"
