"""FastAPI web application: server-rendered pages and htmx partials."""
