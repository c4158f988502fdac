"""Utility modules for redactyl."""
