"""Availability & booking engine for salon providers."""

__version__ = "0.1.0"
