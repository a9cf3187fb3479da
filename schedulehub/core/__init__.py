"""Core infrastructure: settings, logging, database and persistence helpers."""
