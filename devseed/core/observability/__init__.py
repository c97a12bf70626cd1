"""Observability: logging setup."""
