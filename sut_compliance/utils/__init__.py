"""Shared utilities: logging, errors and export formatting."""
