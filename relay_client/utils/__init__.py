"""Client configuration and logging."""
