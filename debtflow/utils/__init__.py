"""Shared utilities: configuration, logging and retry policy."""
