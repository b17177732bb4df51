"""Background jobs: enqueueing, handlers and the runner used by the worker."""
