"""Unit tests for the web layer.

Route tests mount a single router on a bare FastAPI app and patch the
service functions it calls. Middleware and helper tests build their own
minimal apps.
"""
