"""Subscription billing integration."""
