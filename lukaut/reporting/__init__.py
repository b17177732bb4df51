"""Inspection report generation (PDF and Word)."""
