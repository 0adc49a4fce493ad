"""Core infrastructure: configuration, errors, logging, metrics."""
