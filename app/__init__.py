"""Time-windowed one-time code check-in service."""
