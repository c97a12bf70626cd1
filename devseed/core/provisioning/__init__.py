"""Provisioning plan: the ordered steps that converge a workstation."""
