"""Lukaut - construction safety inspections with AI-assisted violation review."""

__version__ = "0.1.0"
