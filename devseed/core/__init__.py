"""Core: models, engine, services and provisioning plan."""
