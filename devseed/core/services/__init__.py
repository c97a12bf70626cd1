"""Core services: secret lifecycle, link reconciliation, privilege keepalive, platform probe."""
