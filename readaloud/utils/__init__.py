"""Shared utilities: configuration and console logging."""
