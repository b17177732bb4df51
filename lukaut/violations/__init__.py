"""Violations and the review queue."""
