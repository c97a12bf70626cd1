"""Shell adapters: command runner, progress indicator, sudo."""
