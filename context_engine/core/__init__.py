"""Core ContextEngine operations: scaffold setup, remote API client, orchestration."""
