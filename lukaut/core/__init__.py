"""Cross-cutting infrastructure: logging, queue, storage, audit trail."""
