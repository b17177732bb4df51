"""Inspection photos."""
