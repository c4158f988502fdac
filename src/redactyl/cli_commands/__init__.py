"""CLI command implementations for redactyl."""
