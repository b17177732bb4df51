"""Legacy site records."""
