"""Infrastructure integrations (logging)."""
