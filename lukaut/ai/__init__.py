"""Image analysis providers and AI usage accounting."""
