"""Core configuration, errors, logging and shared utilities."""
