"""Core modules: configuration, caching, errors and logging."""
