"""HACCP batch lifecycle and provenance tracking."""

__version__ = "0.1.0"
