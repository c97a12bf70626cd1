"""SSH adapters."""
