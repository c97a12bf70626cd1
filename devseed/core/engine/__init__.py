"""Reconciliation engine: step reconciliation, pipeline, dry-run projection."""
