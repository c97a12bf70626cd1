"""Use cases: the operations the CLI invokes."""
