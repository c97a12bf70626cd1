"""Secret-handling adapters: gpg and pass."""
